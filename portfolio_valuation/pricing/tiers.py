"""Price tier strategies and the first-success combinator.

A strategy takes a token and returns its USD price for one whole token, or
None when it has nothing to say. Strategies never raise; call failures are
treated as "no result" for that tier.
"""
from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence
from decimal import Decimal
from typing import TypeVar

from ..abi import (
    FACTORY_GET_PAIR,
    PAIR_GET_RESERVES,
    PAIR_TOKEN0,
    QUOTER_QUOTE_EXACT_INPUT_SINGLE,
    ZERO_ADDRESS,
    normalize_address,
)
from ..chains.evm.reader import Call
from ..interfaces.chain import BatchReader
from ..models import TokenDescriptor, scale_amount

logger = logging.getLogger(__name__)

T = TypeVar("T")

TierStrategy = Callable[[TokenDescriptor], Awaitable[Decimal | None]]
BasePrice = Callable[[], Awaitable[Decimal | None]]


async def first_success(attempts: Iterable[Callable[[], Awaitable[T | None]]]) -> T | None:
    """Await ``attempts`` in order and return the first non-None result.

    Later attempts are never started once one succeeds. An attempt that
    raises counts as no result.
    """
    for attempt in attempts:
        try:
            result = await attempt()
        except Exception as e:
            logger.debug("Attempt failed: %s", e)
            continue
        if result is not None:
            return result
    return None


async def quote_exact_input(
    reader: BatchReader,
    quoter: str,
    token_in: str,
    token_out: str,
    amount_in: int,
    fee_tiers: Sequence[int],
) -> int | None:
    """Output amount of the first fee tier (in order) that quotes above zero."""
    if not quoter or not fee_tiers:
        return None
    calls = [
        Call(
            quoter,
            QUOTER_QUOTE_EXACT_INPUT_SINGLE,
            ((token_in, token_out, amount_in, fee, 0),),
        )
        for fee in fee_tiers
    ]
    results = await reader.batch(calls)
    for fee, result in zip(fee_tiers, results):
        if not result.ok:
            logger.debug("Quote %s→%s fee %d failed: %s", token_in, token_out, fee, result.reason)
            continue
        amount_out = int(result.value[0])
        if amount_out > 0:
            return amount_out
    return None


def stable_tier(stable_symbols: Iterable[str]) -> TierStrategy:
    symbols = frozenset(s.upper() for s in stable_symbols)

    async def strategy(token: TokenDescriptor) -> Decimal | None:
        if token.symbol.upper() in symbols:
            return Decimal(1)
        return None

    return strategy


def direct_quote_tier(
    reader: BatchReader,
    quoter: str,
    stablecoin: TokenDescriptor,
    fee_tiers: Sequence[int],
) -> TierStrategy:
    async def strategy(token: TokenDescriptor) -> Decimal | None:
        if token.address == stablecoin.address:
            return None
        amount_out = await quote_exact_input(
            reader, quoter, token.address, stablecoin.address, token.unit, fee_tiers
        )
        if amount_out is None:
            return None
        return scale_amount(amount_out, stablecoin.decimals)

    return strategy


def routed_quote_tier(
    reader: BatchReader,
    quoter: str,
    base_asset: TokenDescriptor,
    fee_tiers: Sequence[int],
    base_price: BasePrice,
) -> TierStrategy:
    async def strategy(token: TokenDescriptor) -> Decimal | None:
        if token.address == base_asset.address or token.is_native:
            return None
        amount_out = await quote_exact_input(
            reader, quoter, token.address, base_asset.address, token.unit, fee_tiers
        )
        if amount_out is None:
            return None
        usd_per_base = await base_price()
        if usd_per_base is None:
            return None
        return scale_amount(amount_out, base_asset.decimals) * usd_per_base

    return strategy


def amm_reserve_tier(
    reader: BatchReader,
    factory: str,
    stablecoin: TokenDescriptor,
) -> TierStrategy:
    # Only token/stablecoin pairs are priced here; a token listed solely
    # against the wrapped native asset stays unpriced.
    async def strategy(token: TokenDescriptor) -> Decimal | None:
        if not factory or token.address == stablecoin.address:
            return None
        pair_result = await reader.call(
            Call(factory, FACTORY_GET_PAIR, (token.address, stablecoin.address))
        )
        if not pair_result.ok:
            return None
        pair = normalize_address(pair_result.value)
        if pair == ZERO_ADDRESS:
            return None

        reserves, token0 = await reader.batch(
            [Call(pair, PAIR_GET_RESERVES), Call(pair, PAIR_TOKEN0)]
        )
        if not reserves.ok or not token0.ok:
            return None
        reserve0, reserve1, _ = reserves.value
        if normalize_address(token0.value) == token.address:
            token_reserve, stable_reserve = int(reserve0), int(reserve1)
        else:
            token_reserve, stable_reserve = int(reserve1), int(reserve0)
        if token_reserve <= 0 or stable_reserve <= 0:
            return None
        return scale_amount(stable_reserve, stablecoin.decimals) / scale_amount(
            token_reserve, token.decimals
        )

    return strategy
