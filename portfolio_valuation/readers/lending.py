"""Lending (CDP) positions from an external feed — parsing and ratios."""
from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from ..abi import normalize_address
from ..interfaces.feed import PositionFeed
from ..models import LendingPosition, TokenAmount, TokenDescriptor
from ..registry import TokenRegistry

logger = logging.getLogger(__name__)


def parse_raw_amount(value: Any) -> int:
    """Accept ints, decimal strings and 0x-prefixed hex strings."""
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    s = str(value).strip()
    if not s:
        return 0
    return int(s, 16) if s.lower().startswith("0x") else int(s)


def entry_addresses(entries: Iterable[Mapping[str, Any]]) -> set[str]:
    """Token addresses referenced by the ``collateral``/``borrowed`` legs."""
    addresses: set[str] = set()
    for entry in entries:
        for leg in ("collateral", "borrowed"):
            for item in entry.get(leg, []) or []:
                if item.get("token"):
                    addresses.add(normalize_address(item["token"]))
    return addresses


def parse_token_amounts(
    items: Iterable[Mapping[str, Any]],
    tokens: Mapping[str, TokenDescriptor],
) -> tuple[TokenAmount, ...]:
    amounts: list[TokenAmount] = []
    for item in items:
        address = normalize_address(item.get("token", ""))
        token = tokens.get(address)
        if token is None:
            logger.debug("Skipping leg with unknown token %s", address)
            continue
        amounts.append(TokenAmount(token=token, raw_amount=parse_raw_amount(item.get("amount"))))
    return tuple(amounts)


def parse_lending_entry(
    entry: Mapping[str, Any],
    tokens: Mapping[str, TokenDescriptor],
) -> LendingPosition:
    return LendingPosition(
        protocol=str(entry.get("protocol", "")),
        position_id=str(entry.get("id", "")),
        collateral=parse_token_amounts(entry.get("collateral", []) or [], tokens),
        borrowed=parse_token_amounts(entry.get("borrowed", []) or [], tokens),
        liquidation_threshold=float(entry.get("liquidation_threshold", 85.0)),
    )


def calc_ltv(total_collateral_usd: float, total_borrowed_usd: float) -> float:
    """Calculate Loan-to-Value ratio as a percentage."""
    if total_collateral_usd <= 0:
        return 0.0
    return (total_borrowed_usd / total_collateral_usd) * 100


def calc_health_factor(
    total_collateral_usd: float,
    total_borrowed_usd: float,
    liquidation_threshold: float,
) -> float:
    """Calculate health factor.

    health_factor = (collateral * liquidation_threshold%) / borrowed
    """
    if total_borrowed_usd <= 0:
        return float("inf")
    return (total_collateral_usd * liquidation_threshold / 100) / total_borrowed_usd


class LendingReader:
    """Turn feed entries into lending positions with registry token metadata."""

    def __init__(self, feed: PositionFeed | None, registry: TokenRegistry) -> None:
        self._feed = feed
        self._registry = registry

    async def read_positions(self, wallet_address: str) -> list[LendingPosition]:
        if self._feed is None:
            return []
        entries = await self._feed.fetch(wallet_address)
        if not entries:
            return []

        tokens = await self._registry.resolve(entry_addresses(entries))
        positions: list[LendingPosition] = []
        for entry in entries:
            try:
                positions.append(parse_lending_entry(entry, tokens))
            except (TypeError, ValueError) as e:
                logger.warning("Skipping malformed lending entry: %s", e)

        logger.info("Found %d lending positions for %s", len(positions), wallet_address)
        return positions
