"""Token discovery protocol."""
from typing import Protocol

from ..models import DiscoveredToken


class TokenDiscovery(Protocol):
    """Enumerates tokens held by a wallet. Raises DiscoveryFailure when unreachable."""

    async def discover(self, wallet_address: str) -> list[DiscoveredToken]: ...
