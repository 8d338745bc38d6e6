"""Non-fungible holdings from an external feed, valued at collection floor."""
from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from ..abi import normalize_address
from ..interfaces.feed import PositionFeed
from ..models import CollectionItem, TokenAmount, TokenDescriptor
from ..registry import TokenRegistry
from .lending import parse_raw_amount

logger = logging.getLogger(__name__)


def parse_collection_entry(
    entry: Mapping[str, Any],
    tokens: Mapping[str, TokenDescriptor],
) -> CollectionItem:
    floor = entry.get("floor_price") or {}
    floor_token = tokens.get(normalize_address(floor.get("token", "")))
    floor_price = None
    if floor_token is not None:
        floor_price = TokenAmount(token=floor_token, raw_amount=parse_raw_amount(floor.get("amount")))
    return CollectionItem(
        collection_address=normalize_address(str(entry.get("collection", ""))),
        token_id=parse_raw_amount(entry.get("token_id")),
        name=str(entry.get("name", "")),
        floor_price=floor_price,
    )


class CollectionReader:
    def __init__(self, feed: PositionFeed | None, registry: TokenRegistry) -> None:
        self._feed = feed
        self._registry = registry

    async def read_items(self, wallet_address: str) -> list[CollectionItem]:
        if self._feed is None:
            return []
        entries = await self._feed.fetch(wallet_address)
        if not entries:
            return []

        floor_tokens = {
            normalize_address(e["floor_price"]["token"])
            for e in entries
            if isinstance(e.get("floor_price"), dict) and e["floor_price"].get("token")
        }
        tokens = await self._registry.resolve(floor_tokens)

        items: list[CollectionItem] = []
        for entry in entries:
            try:
                items.append(parse_collection_entry(entry, tokens))
            except (TypeError, ValueError) as e:
                logger.warning("Skipping malformed collection entry: %s", e)
        logger.info("Found %d collection items for %s", len(items), wallet_address)
        return items
