"""External collaborators: token discovery, network status, position feeds."""
from .discovery import AlchemyTokenDiscovery, validate_wallet_address
from .feeds import JsonPositionFeed
from .network import NetworkStatusProbe

__all__ = [
    "AlchemyTokenDiscovery",
    "JsonPositionFeed",
    "NetworkStatusProbe",
    "validate_wallet_address",
]
