"""Protocol interfaces for the portfolio valuation engine."""
from .chain import BatchReader, RpcTransport
from .discovery import TokenDiscovery
from .feed import PositionFeed
from .price_oracle import PriceResolverProtocol

__all__ = [
    "BatchReader",
    "PositionFeed",
    "PriceResolverProtocol",
    "RpcTransport",
    "TokenDiscovery",
]
