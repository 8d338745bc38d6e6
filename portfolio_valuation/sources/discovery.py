"""Token discovery through an Alchemy-compatible JSON-RPC endpoint."""
import asyncio
import logging
import re
import ssl
from typing import Any

import aiohttp
import certifi

from ..config import DiscoveryConfig
from ..errors import DiscoveryFailure
from ..models import DiscoveredToken

logger = logging.getLogger(__name__)

_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
_ZERO_BALANCES = {"0x", "0x0", "0x" + "0" * 64}


def validate_wallet_address(address: str) -> str:
    if not _ADDRESS_RE.match(address or ""):
        raise ValueError(f"Valid address required, got {address!r}")
    return address.lower()


class AlchemyTokenDiscovery:
    """List the ERC-20 tokens a wallet holds, with whatever metadata is known."""

    def __init__(self, config: DiscoveryConfig) -> None:
        self.url = config.url
        self.timeout = config.timeout

    async def _rpc(self, session: aiohttp.ClientSession, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        async with session.post(
            self.url,
            json=payload,
            timeout=aiohttp.ClientTimeout(total=self.timeout),
        ) as response:
            result = await response.json()
            if "error" in result:
                raise RuntimeError(f"RPC Error: {result['error']}")
            return result.get("result")

    async def _metadata(
        self, session: aiohttp.ClientSession, contract: str, raw_balance: int
    ) -> DiscoveredToken:
        try:
            meta = await self._rpc(session, "alchemy_getTokenMetadata", [contract]) or {}
        except Exception as e:
            logger.debug("Metadata lookup failed for %s: %s", contract, e)
            meta = {}
        decimals = meta.get("decimals")
        return DiscoveredToken(
            address=contract.lower(),
            raw_balance=raw_balance,
            symbol=meta.get("symbol") or None,
            name=meta.get("name") or None,
            decimals=int(decimals) if decimals is not None else None,
            logo_uri=meta.get("logo") or None,
        )

    async def discover(self, wallet_address: str) -> list[DiscoveredToken]:
        wallet = validate_wallet_address(wallet_address)
        if not self.url:
            raise DiscoveryFailure("Discovery URL not configured")

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                result = await self._rpc(
                    session, "alchemy_getTokenBalances", [wallet, "erc20"]
                )
                balances = (result or {}).get("tokenBalances", [])
                non_zero = [
                    b
                    for b in balances
                    if b.get("tokenBalance") and b["tokenBalance"] not in _ZERO_BALANCES
                ]
                tokens = await asyncio.gather(
                    *(
                        self._metadata(session, b["contractAddress"], int(b["tokenBalance"], 16))
                        for b in non_zero
                    )
                )
        except DiscoveryFailure:
            raise
        except Exception as e:
            raise DiscoveryFailure(f"Error fetching wallet tokens: {e}") from e

        logger.info("Discovered %d tokens for %s", len(tokens), wallet)
        return list(tokens)
