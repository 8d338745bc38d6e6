"""Position readers, one per value source."""
from .collections import CollectionReader
from .holdings import HoldingsReader
from .lending import LendingReader
from .liquidity import LiquidityReader
from .staking import StakingReader, active_pools

__all__ = [
    "CollectionReader",
    "HoldingsReader",
    "LendingReader",
    "LiquidityReader",
    "StakingReader",
    "active_pools",
]
