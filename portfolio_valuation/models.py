"""Data models — all frozen (immutable)."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

NATIVE_ADDRESS = "0x" + "0" * 40


def scale_amount(raw_amount: int, decimals: int) -> Decimal:
    """Convert a raw integer token amount into whole-token units."""
    return Decimal(f"{int(raw_amount)}e-{int(decimals)}")


@dataclass(frozen=True)
class TokenDescriptor:
    """Token metadata keyed by lowercase contract address."""

    address: str
    symbol: str
    decimals: int
    display_name: str
    logo_uri: str | None = None

    @property
    def is_native(self) -> bool:
        return self.address == NATIVE_ADDRESS

    @property
    def glyph(self) -> str:
        """Placeholder shown when no logo is available."""
        return self.symbol[:3].upper()

    @property
    def unit(self) -> int:
        """Raw amount corresponding to one whole token."""
        return 10**self.decimals


class PriceTier(str, Enum):
    STABLE = "stable"
    DIRECT_POOL = "direct_pool"
    ROUTED_VIA_BASE = "routed_via_base"
    AMM_RESERVE = "amm_reserve"


@dataclass(frozen=True)
class PriceQuote:
    """USD price for one whole token, produced once per refresh cycle."""

    token_address: str
    usd_price_per_unit: Decimal
    source_tier: PriceTier
    resolved_at: datetime


@dataclass(frozen=True)
class TokenAmount:
    """Raw on-chain amount of a token."""

    token: TokenDescriptor
    raw_amount: int

    @property
    def amount(self) -> Decimal:
        return scale_amount(self.raw_amount, self.token.decimals)


@dataclass(frozen=True)
class Holding:
    """Spot balance held directly by the wallet."""

    token: TokenDescriptor
    raw_balance: int


@dataclass(frozen=True)
class StakingPool:
    pool_id: int
    staking_token: TokenDescriptor
    rewards_token: TokenDescriptor
    apr_basis_points: int
    lock_period_seconds: int
    total_staked: int
    user_staked: int = 0
    user_pending_rewards: int = 0

    @property
    def is_active(self) -> bool:
        return self.user_staked > 0

    @property
    def apr_percent(self) -> Decimal:
        return Decimal(self.apr_basis_points) / 100


def derive_underlying(reserve: int, user_balance: int, total_supply: int) -> int:
    """User's share of one reserve, floored. Zero when nothing is minted."""
    if total_supply <= 0:
        return 0
    return reserve * user_balance // total_supply


@dataclass(frozen=True)
class LiquidityPair:
    pair_address: str
    token0: TokenDescriptor
    token1: TokenDescriptor
    reserve0: int
    reserve1: int
    total_lp_supply: int
    user_lp_balance: int = 0

    @property
    def user_token0_amount(self) -> int:
        return derive_underlying(self.reserve0, self.user_lp_balance, self.total_lp_supply)

    @property
    def user_token1_amount(self) -> int:
        return derive_underlying(self.reserve1, self.user_lp_balance, self.total_lp_supply)

    @property
    def user_share(self) -> Decimal:
        if self.total_lp_supply <= 0:
            return Decimal(0)
        return Decimal(self.user_lp_balance) / Decimal(self.total_lp_supply)

    @property
    def label(self) -> str:
        return f"{self.token0.symbol}/{self.token1.symbol}"


@dataclass(frozen=True)
class LendingPosition:
    """Collateralized debt position sourced from an external feed."""

    protocol: str
    position_id: str
    collateral: tuple[TokenAmount, ...] = ()
    borrowed: tuple[TokenAmount, ...] = ()
    liquidation_threshold: float = 85.0


@dataclass(frozen=True)
class CollectionItem:
    """Non-fungible holding valued at its collection floor."""

    collection_address: str
    token_id: int
    name: str = ""
    floor_price: TokenAmount | None = None


class Venue(str, Enum):
    STAKING = "staking"
    LIQUIDITY = "liquidity"
    LENDING = "lending"
    COLLECTION = "collection"


@dataclass(frozen=True)
class Position:
    """Venue-independent view of a position used for drill-down display."""

    venue: Venue
    label: str
    underlying_amounts: tuple[TokenAmount, ...]
    net_usd_value: Decimal
    unpriced: bool = False
    ltv: float | None = None
    health_factor: float | None = None


@dataclass(frozen=True)
class PortfolioSnapshot:
    wallet_address: str
    holdings_usd: Decimal
    staking_usd: Decimal
    liquidity_usd: Decimal
    lending_net_usd: Decimal
    collections_usd: Decimal
    total_usd: Decimal
    asset_count: int
    position_count: int
    computed_at: datetime
    unpriced_count: int = 0
    unpriced_tokens: tuple[str, ...] = ()
    positions: tuple[Position, ...] = ()


@dataclass(frozen=True)
class DiscoveredToken:
    """Token reported by the discovery service. Metadata may be missing."""

    address: str
    raw_balance: int = 0
    symbol: str | None = None
    name: str | None = None
    decimals: int | None = None
    logo_uri: str | None = None


@dataclass(frozen=True)
class NetworkStatus:
    block_number: int
    gas_price_gwei: float
    is_healthy: bool
    last_block_timestamp: datetime
    network: str = ""
    error: str = ""
