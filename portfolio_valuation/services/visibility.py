"""Hide/unhide tokens from the displayed holdings total.

The filter only affects display. Snapshots always value every holding.
"""
from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from decimal import Decimal
from pathlib import Path

from ..abi import normalize_address
from ..models import Holding, PriceQuote
from ..valuation import value_holding

logger = logging.getLogger(__name__)


class VisibilityFilter:
    """Set of hidden token addresses, optionally persisted to a local JSON file."""

    def __init__(self, path: str | Path | None = None) -> None:
        self._path = Path(path) if path else None
        self._hidden: set[str] = set()
        self._load()

    @property
    def hidden(self) -> frozenset[str]:
        return frozenset(self._hidden)

    def is_hidden(self, address: str) -> bool:
        return normalize_address(address) in self._hidden

    def hide(self, address: str) -> None:
        self._hidden.add(normalize_address(address))
        self._save()

    def unhide(self, address: str) -> None:
        self._hidden.discard(normalize_address(address))
        self._save()

    def visible(self, holdings: Iterable[Holding]) -> list[Holding]:
        return [h for h in holdings if not self.is_hidden(h.token.address)]

    def visible_holdings_usd(
        self, holdings: Iterable[Holding], quotes: Mapping[str, PriceQuote]
    ) -> Decimal:
        total = Decimal(0)
        for holding in sorted(self.visible(holdings), key=lambda h: h.token.address):
            value = value_holding(holding, quotes)
            if value is not None:
                total += value
        return total

    def _load(self) -> None:
        if self._path is None or not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text())
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable hidden-token file %s: %s", self._path, e)
            return
        self._hidden = {normalize_address(a) for a in data.get("hidden", []) if isinstance(a, str)}

    def _save(self) -> None:
        if self._path is None:
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps({"hidden": sorted(self._hidden)}, indent=2))
        except OSError as e:
            logger.error("Could not persist hidden tokens to %s: %s", self._path, e)
