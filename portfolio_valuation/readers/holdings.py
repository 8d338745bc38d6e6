"""Spot balance reader: native asset plus every registry token."""
from __future__ import annotations

import logging

from ..abi import ERC20_BALANCE_OF
from ..chains.evm.reader import Call, ChainReader
from ..models import Holding
from ..registry import TokenRegistry

logger = logging.getLogger(__name__)


class HoldingsReader:
    def __init__(self, reader: ChainReader, registry: TokenRegistry) -> None:
        self._reader = reader
        self._registry = registry

    async def read_holdings(self, wallet_address: str) -> list[Holding]:
        """Fresh balances for every known token.

        A failed balance read falls back to what discovery last reported for
        that token, or zero.
        """
        tokens = sorted(self._registry.tokens.values(), key=lambda t: t.address)
        reported = {d.address.lower(): d.raw_balance for d in self._registry.discovered}

        calls = [
            self._reader.eth_balance_call(wallet_address)
            if token.is_native
            else Call(token.address, ERC20_BALANCE_OF, (wallet_address,))
            for token in tokens
        ]
        results = await self._reader.batch(calls)

        holdings: list[Holding] = []
        failed = 0
        for token, result in zip(tokens, results):
            if result.ok:
                balance = int(result.value)
            else:
                failed += 1
                balance = reported.get(token.address, 0)
            holdings.append(Holding(token=token, raw_balance=balance))

        if failed:
            logger.warning("%d of %d balance reads failed", failed, len(tokens))
        return holdings
