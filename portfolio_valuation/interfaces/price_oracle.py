"""Price resolver protocol — USD quotes for tokens."""
from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from ..models import PriceQuote, TokenDescriptor


class PriceResolverProtocol(Protocol):
    """Produces a USD unit price for a token, or None when unknown."""

    def new_cycle(self) -> None: ...

    async def resolve(self, token: TokenDescriptor) -> PriceQuote | None: ...

    async def resolve_many(
        self, tokens: Iterable[TokenDescriptor], timeout: float | None = None
    ) -> dict[str, PriceQuote]: ...
