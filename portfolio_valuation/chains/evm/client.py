"""EVM JSON-RPC client with endpoint fallback."""
import logging
import ssl
from typing import Any

import aiohttp
import certifi

from ...config import NetworkConfig

logger = logging.getLogger(__name__)


class EvmRpcClient:
    """EVM JSON-RPC client with automatic endpoint fallback."""

    def __init__(self, config: NetworkConfig) -> None:
        self.endpoints = list(config.rpc_endpoints)
        self.timeout = config.rpc_timeout
        self.current_rpc_index = 0

    async def rpc_call(self, method: str, params: list[Any]) -> Any:
        """Make RPC call with fallback to alternative endpoints."""
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}

        ssl_context = ssl.create_default_context(cafile=certifi.where())

        last_error: Exception | None = None
        for attempt in range(len(self.endpoints)):
            rpc_index = (self.current_rpc_index + attempt) % len(self.endpoints)
            rpc_url = self.endpoints[rpc_index]

            try:
                connector = aiohttp.TCPConnector(ssl=ssl_context)
                async with aiohttp.ClientSession(connector=connector) as session:
                    async with session.post(
                        rpc_url,
                        json=payload,
                        timeout=aiohttp.ClientTimeout(total=self.timeout),
                    ) as response:
                        result = await response.json()
                        if "error" in result:
                            raise RuntimeError(f"RPC Error: {result['error']}")

                        if rpc_index != self.current_rpc_index:
                            logger.info("Switched to RPC endpoint: %s", rpc_url)
                            self.current_rpc_index = rpc_index

                        return result.get("result")
            except Exception as e:
                last_error = e
                logger.warning("RPC endpoint %s failed: %s", rpc_url, e)
                if attempt < len(self.endpoints) - 1:
                    logger.info("Trying next endpoint...")
                continue

        raise RuntimeError(f"All RPC endpoints failed. Last error: {last_error}")

    async def eth_call(self, to: str, data: bytes, block: str = "latest") -> bytes:
        """Execute a read-only call and return the raw return data."""
        result = await self.rpc_call(
            "eth_call", [{"to": to, "data": "0x" + data.hex()}, block]
        )
        return bytes.fromhex((result or "0x")[2:])

    async def block_number(self) -> int:
        return int(await self.rpc_call("eth_blockNumber", []), 16)

    async def gas_price(self) -> int:
        """Current gas price in wei."""
        return int(await self.rpc_call("eth_gasPrice", []), 16)

    async def get_block(self, number: int | str = "latest") -> dict[str, Any]:
        tag = hex(number) if isinstance(number, int) else number
        return await self.rpc_call("eth_getBlockByNumber", [tag, False]) or {}
