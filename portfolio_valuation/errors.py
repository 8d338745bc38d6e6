"""Error taxonomy for portfolio valuation.

None of these are fatal to a refresh cycle. Reads and quotes are recovered
locally (zero, dropped item or absent price); discovery failures degrade the
poll; stale-wallet results are discarded.
"""
from __future__ import annotations


class PortfolioError(Exception):
    """Base exception for the valuation engine."""


class ReadFailure(PortfolioError):
    """A single on-chain read reverted, timed out or could not be decoded.

    Instances double as the ``reason`` carried by a failed ``CallResult``.
    """

    REVERTED = "reverted"
    TIMEOUT = "timeout"
    TRANSPORT = "transport"
    DECODE = "decode"

    def __init__(self, kind: str, detail: str = "") -> None:
        super().__init__(f"{kind}: {detail}" if detail else kind)
        self.kind = kind
        self.detail = detail

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ReadFailure):
            return NotImplemented
        return self.kind == other.kind and self.detail == other.detail

    def __hash__(self) -> int:
        return hash((self.kind, self.detail))


class QuoteUnavailable(PortfolioError):
    """Every price tier was exhausted for a token."""

    def __init__(self, token_address: str) -> None:
        super().__init__(f"No price quote for {token_address}")
        self.token_address = token_address


class DiscoveryFailure(PortfolioError):
    """The token discovery service could not be reached."""


class StaleWallet(PortfolioError):
    """The connected wallet changed while a cycle was in flight."""

    def __init__(self, requested: str, current: str | None) -> None:
        super().__init__(f"Wallet changed from {requested} to {current}")
        self.requested = requested
        self.current = current
