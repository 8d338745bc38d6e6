"""Feed protocol — externally sourced position lists."""
from typing import Any, Protocol


class PositionFeed(Protocol):
    """Fetches raw JSON entries describing a wallet's off-chain-indexed positions."""

    async def fetch(self, wallet_address: str) -> list[dict[str, Any]]: ...
