"""AMM liquidity pair reader."""
from __future__ import annotations

import logging

from ..abi import (
    ERC20_BALANCE_OF,
    ERC20_TOTAL_SUPPLY,
    FACTORY_ALL_PAIRS,
    FACTORY_ALL_PAIRS_LENGTH,
    PAIR_GET_RESERVES,
    PAIR_TOKEN0,
    PAIR_TOKEN1,
    normalize_address,
)
from ..chains.evm.reader import Call
from ..interfaces.chain import BatchReader
from ..models import LiquidityPair
from ..registry import TokenRegistry

logger = logging.getLogger(__name__)

_CALLS_PER_PAIR = 5


class LiquidityReader:
    """Enumerate factory pairs and read reserves plus a wallet's LP balance."""

    def __init__(self, reader: BatchReader, registry: TokenRegistry, factory_address: str) -> None:
        self._reader = reader
        self._registry = registry
        self._factory = factory_address

    async def read_pairs(self, wallet_address: str) -> list[LiquidityPair]:
        if not self._factory:
            return []

        count_result = await self._reader.call(Call(self._factory, FACTORY_ALL_PAIRS_LENGTH))
        if not count_result.ok:
            logger.warning("allPairsLength() failed: %s", count_result.reason)
            return []
        pair_count = int(count_result.value)
        if pair_count == 0:
            return []

        address_results = await self._reader.batch(
            [Call(self._factory, FACTORY_ALL_PAIRS, (i,)) for i in range(pair_count)]
        )
        pair_addresses = [normalize_address(r.value) for r in address_results if r.ok]

        calls: list[Call] = []
        for pair in pair_addresses:
            calls.extend(
                [
                    Call(pair, PAIR_TOKEN0),
                    Call(pair, PAIR_TOKEN1),
                    Call(pair, PAIR_GET_RESERVES),
                    Call(pair, ERC20_TOTAL_SUPPLY),
                    Call(pair, ERC20_BALANCE_OF, (wallet_address,)),
                ]
            )
        results = await self._reader.batch(calls)

        raw_pairs = []
        for i, pair in enumerate(pair_addresses):
            token0, token1, reserves, supply, balance = results[
                _CALLS_PER_PAIR * i : _CALLS_PER_PAIR * (i + 1)
            ]
            if not token0.ok or not token1.ok:
                logger.debug("Dropping pair %s: token addresses unreadable", pair)
                continue
            reserve0, reserve1, _ = reserves.unwrap_or((0, 0, 0))
            raw_pairs.append(
                (
                    pair,
                    normalize_address(token0.value),
                    normalize_address(token1.value),
                    int(reserve0),
                    int(reserve1),
                    int(supply.unwrap_or(0)),
                    int(balance.unwrap_or(0)),
                )
            )

        tokens = await self._registry.resolve(
            {p[1] for p in raw_pairs} | {p[2] for p in raw_pairs}
        )

        pairs: list[LiquidityPair] = []
        for pair, t0, t1, reserve0, reserve1, supply, balance in raw_pairs:
            if t0 not in tokens or t1 not in tokens:
                logger.debug("Dropping pair %s: token metadata unavailable", pair)
                continue
            pairs.append(
                LiquidityPair(
                    pair_address=pair,
                    token0=tokens[t0],
                    token1=tokens[t1],
                    reserve0=reserve0,
                    reserve1=reserve1,
                    total_lp_supply=supply,
                    user_lp_balance=balance,
                )
            )

        held = sum(1 for p in pairs if p.user_lp_balance > 0)
        logger.info("Read %d liquidity pairs (%d held) for %s", len(pairs), held, wallet_address)
        return pairs
