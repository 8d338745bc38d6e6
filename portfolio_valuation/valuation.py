"""Valuation engine — turns positions and quotes into a portfolio snapshot.

Everything here is pure: the same inputs always produce the same snapshot,
whatever order the inputs arrive in. Items are summed in a canonical order,
and a token without a quote contributes zero while being reported as
unpriced.
"""
from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from .models import (
    CollectionItem,
    Holding,
    LendingPosition,
    LiquidityPair,
    PortfolioSnapshot,
    Position,
    PriceQuote,
    StakingPool,
    TokenAmount,
    TokenDescriptor,
    Venue,
)
from .readers.lending import calc_health_factor, calc_ltv

ZERO = Decimal(0)


@dataclass
class _Pricer:
    """Values token amounts and remembers which tokens had no quote."""

    quotes: Mapping[str, PriceQuote]
    unpriced_tokens: set[str] = field(default_factory=set)
    unpriced_items: int = 0

    def value(self, amounts: Iterable[TokenAmount]) -> tuple[Decimal, bool]:
        """USD value of ``amounts`` and whether any non-zero leg lacked a price."""
        total = ZERO
        missing = False
        for amt in amounts:
            quote = self.quotes.get(amt.token.address)
            if quote is None:
                if amt.raw_amount != 0:
                    missing = True
                    self.unpriced_tokens.add(amt.token.address)
                continue
            total += amt.amount * quote.usd_price_per_unit
        return total, missing

    def flag(self, unpriced: bool) -> bool:
        if unpriced:
            self.unpriced_items += 1
        return unpriced


def value_holding(holding: Holding, quotes: Mapping[str, PriceQuote]) -> Decimal | None:
    """USD value of one holding, or None when its token is unpriced."""
    quote = quotes.get(holding.token.address)
    if quote is None:
        return None
    return TokenAmount(holding.token, holding.raw_balance).amount * quote.usd_price_per_unit


def _staking_position(pool: StakingPool, pricer: _Pricer) -> Position:
    legs = (
        TokenAmount(pool.staking_token, pool.user_staked),
        TokenAmount(pool.rewards_token, pool.user_pending_rewards),
    )
    value, unpriced = pricer.value(legs)
    return Position(
        venue=Venue.STAKING,
        label=f"Pool #{pool.pool_id} {pool.staking_token.symbol}",
        underlying_amounts=legs,
        net_usd_value=value,
        unpriced=pricer.flag(unpriced),
    )


def _liquidity_position(pair: LiquidityPair, pricer: _Pricer) -> Position:
    legs = (
        TokenAmount(pair.token0, pair.user_token0_amount),
        TokenAmount(pair.token1, pair.user_token1_amount),
    )
    value, unpriced = pricer.value(legs)
    return Position(
        venue=Venue.LIQUIDITY,
        label=pair.label,
        underlying_amounts=legs,
        net_usd_value=value,
        unpriced=pricer.flag(unpriced),
    )


def _lending_position(position: LendingPosition, pricer: _Pricer) -> Position:
    collateral_usd, collateral_unpriced = pricer.value(position.collateral)
    borrowed_usd, borrowed_unpriced = pricer.value(position.borrowed)
    return Position(
        venue=Venue.LENDING,
        label=f"{position.protocol} {position.position_id}".strip(),
        underlying_amounts=position.collateral + position.borrowed,
        # Undercollateralized positions go negative; that is real risk, not noise.
        net_usd_value=collateral_usd - borrowed_usd,
        unpriced=pricer.flag(collateral_unpriced or borrowed_unpriced),
        ltv=calc_ltv(float(collateral_usd), float(borrowed_usd)),
        health_factor=calc_health_factor(
            float(collateral_usd), float(borrowed_usd), position.liquidation_threshold
        ),
    )


def _collection_position(item: CollectionItem, pricer: _Pricer) -> Position:
    legs = (item.floor_price,) if item.floor_price is not None else ()
    value, unpriced = pricer.value(legs)
    unpriced = pricer.flag(unpriced or item.floor_price is None)
    return Position(
        venue=Venue.COLLECTION,
        label=item.name or f"{item.collection_address}#{item.token_id}",
        underlying_amounts=legs,
        net_usd_value=value,
        unpriced=unpriced,
    )


def compute_snapshot(
    wallet_address: str,
    holdings: Iterable[Holding],
    staking_pools: Iterable[StakingPool],
    liquidity_pairs: Iterable[LiquidityPair],
    lending_positions: Iterable[LendingPosition],
    collection_items: Iterable[CollectionItem],
    price_quotes: Mapping[str, PriceQuote],
    *,
    computed_at: datetime,
) -> PortfolioSnapshot:
    pricer = _Pricer(price_quotes)

    holdings_usd = ZERO
    asset_count = 0
    for holding in sorted(holdings, key=lambda h: h.token.address):
        if holding.raw_balance == 0:
            continue
        asset_count += 1
        value, unpriced = pricer.value([TokenAmount(holding.token, holding.raw_balance)])
        pricer.flag(unpriced)
        holdings_usd += value

    positions: list[Position] = []

    staking_usd = ZERO
    for pool in sorted(staking_pools, key=lambda p: p.pool_id):
        if pool.user_staked == 0 and pool.user_pending_rewards == 0:
            continue
        position = _staking_position(pool, pricer)
        staking_usd += position.net_usd_value
        positions.append(position)

    liquidity_usd = ZERO
    for pair in sorted(liquidity_pairs, key=lambda p: p.pair_address):
        if pair.user_lp_balance == 0:
            continue
        position = _liquidity_position(pair, pricer)
        liquidity_usd += position.net_usd_value
        positions.append(position)

    lending_net_usd = ZERO
    for lending in sorted(lending_positions, key=lambda p: (p.protocol, p.position_id)):
        position = _lending_position(lending, pricer)
        lending_net_usd += position.net_usd_value
        positions.append(position)

    collections_usd = ZERO
    for item in sorted(collection_items, key=lambda i: (i.collection_address, i.token_id)):
        position = _collection_position(item, pricer)
        collections_usd += position.net_usd_value
        positions.append(position)

    total_usd = holdings_usd + staking_usd + liquidity_usd + lending_net_usd + collections_usd

    return PortfolioSnapshot(
        wallet_address=wallet_address,
        holdings_usd=holdings_usd,
        staking_usd=staking_usd,
        liquidity_usd=liquidity_usd,
        lending_net_usd=lending_net_usd,
        collections_usd=collections_usd,
        total_usd=total_usd,
        asset_count=asset_count,
        position_count=len(positions),
        computed_at=computed_at,
        unpriced_count=pricer.unpriced_items,
        unpriced_tokens=tuple(sorted(pricer.unpriced_tokens)),
        positions=tuple(positions),
    )


def referenced_tokens(
    holdings: Iterable[Holding],
    staking_pools: Iterable[StakingPool],
    liquidity_pairs: Iterable[LiquidityPair],
    lending_positions: Iterable[LendingPosition],
    collection_items: Iterable[CollectionItem],
) -> list[TokenDescriptor]:
    """Every token whose price the snapshot will need, without duplicates."""
    tokens: dict[str, TokenDescriptor] = {}
    for holding in holdings:
        if holding.raw_balance:
            tokens[holding.token.address] = holding.token
    for pool in staking_pools:
        if pool.user_staked or pool.user_pending_rewards:
            tokens[pool.staking_token.address] = pool.staking_token
            tokens[pool.rewards_token.address] = pool.rewards_token
    for pair in liquidity_pairs:
        if pair.user_lp_balance:
            tokens[pair.token0.address] = pair.token0
            tokens[pair.token1.address] = pair.token1
    for lending in lending_positions:
        for amt in lending.collateral + lending.borrowed:
            tokens[amt.token.address] = amt.token
    for item in collection_items:
        if item.floor_price is not None:
            tokens[item.floor_price.token.address] = item.floor_price.token
    return [tokens[a] for a in sorted(tokens)]
