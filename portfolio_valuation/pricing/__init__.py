"""USD price resolution."""
from .resolver import PriceResolver
from .tiers import first_success

__all__ = ["PriceResolver", "first_success"]
