"""Configuration loader — reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NetworkConfig:
    name: str = ""
    chain_id: int = 0
    rpc_endpoints: tuple[str, ...] = ()
    rpc_timeout: int = 30
    call_timeout: float = 15.0
    max_batch_size: int = 200
    max_block_age_seconds: int = 300


@dataclass(frozen=True)
class ContractsConfig:
    multicall: str = "0xca11bde05977b3631167028862be2a173976ca11"
    quoter: str = ""
    amm_factory: str = ""
    staking: str = ""


@dataclass(frozen=True)
class TokenConfig:
    address: str = ""
    symbol: str = ""
    decimals: int = 18
    name: str = ""
    logo_uri: str | None = None


@dataclass(frozen=True)
class PricingConfig:
    reference_stablecoin: TokenConfig = field(default_factory=TokenConfig)
    base_asset: TokenConfig = field(default_factory=TokenConfig)
    native: TokenConfig = field(
        default_factory=lambda: TokenConfig(symbol="ETH", decimals=18, name="Ether")
    )
    fee_tiers: tuple[int, ...] = (3000, 500, 10000)
    stable_symbols: tuple[str, ...] = ("USDT", "USDC", "DAI", "BUSD")


@dataclass(frozen=True)
class DiscoveryConfig:
    url: str = ""
    timeout: int = 15


@dataclass(frozen=True)
class FeedsConfig:
    lending_url: str = ""
    collections_url: str = ""
    timeout: int = 15


@dataclass(frozen=True)
class PollingConfig:
    discovery_interval_seconds: int = 60
    refresh_interval_seconds: int = 30
    settle_timeout_seconds: float = 20.0
    unavailable_after_failures: int = 5


@dataclass(frozen=True)
class DisplayConfig:
    hidden_tokens_path: str = ""


@dataclass(frozen=True)
class AppConfig:
    wallet: str = ""
    network: NetworkConfig = field(default_factory=NetworkConfig)
    contracts: ContractsConfig = field(default_factory=ContractsConfig)
    pricing: PricingConfig = field(default_factory=PricingConfig)
    tokens: tuple[TokenConfig, ...] = ()
    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    feeds: FeedsConfig = field(default_factory=FeedsConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    display: DisplayConfig = field(default_factory=DisplayConfig)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_network(raw: dict[str, Any]) -> NetworkConfig:
    return NetworkConfig(
        name=raw.get("name", ""),
        chain_id=int(raw.get("chain_id", 0)),
        rpc_endpoints=tuple(raw.get("rpc_endpoints", [])),
        rpc_timeout=int(raw.get("rpc_timeout", 30)),
        call_timeout=float(raw.get("call_timeout", 15.0)),
        max_batch_size=int(raw.get("max_batch_size", 200)),
        max_block_age_seconds=int(raw.get("max_block_age_seconds", 300)),
    )


def _build_contracts(raw: dict[str, Any]) -> ContractsConfig:
    return ContractsConfig(
        multicall=str(raw.get("multicall", ContractsConfig.multicall)).lower(),
        quoter=str(raw.get("quoter", "")).lower(),
        amm_factory=str(raw.get("amm_factory", "")).lower(),
        staking=str(raw.get("staking", "")).lower(),
    )


def _build_token(raw: dict[str, Any], defaults: TokenConfig | None = None) -> TokenConfig:
    defaults = defaults or TokenConfig()
    return TokenConfig(
        address=str(raw.get("address", defaults.address)).lower(),
        symbol=raw.get("symbol", defaults.symbol),
        decimals=int(raw.get("decimals", defaults.decimals)),
        name=raw.get("name", defaults.name),
        logo_uri=raw.get("logo_uri", defaults.logo_uri),
    )


def _build_pricing(raw: dict[str, Any]) -> PricingConfig:
    defaults = PricingConfig()
    return PricingConfig(
        reference_stablecoin=_build_token(raw.get("reference_stablecoin", {})),
        base_asset=_build_token(raw.get("base_asset", {})),
        native=_build_token(raw.get("native", {}), defaults.native),
        fee_tiers=tuple(int(f) for f in raw.get("fee_tiers", defaults.fee_tiers)),
        stable_symbols=tuple(
            str(s).upper() for s in raw.get("stable_symbols", defaults.stable_symbols)
        ),
    )


def _build_tokens(raw: list[dict[str, Any]]) -> tuple[TokenConfig, ...]:
    return tuple(_build_token(t) for t in raw)


def _build_discovery(raw: dict[str, Any]) -> DiscoveryConfig:
    return DiscoveryConfig(
        url=raw.get("url", ""),
        timeout=int(raw.get("timeout", 15)),
    )


def _build_feeds(raw: dict[str, Any]) -> FeedsConfig:
    return FeedsConfig(
        lending_url=raw.get("lending_url", ""),
        collections_url=raw.get("collections_url", ""),
        timeout=int(raw.get("timeout", 15)),
    )


def _build_polling(raw: dict[str, Any]) -> PollingConfig:
    return PollingConfig(
        discovery_interval_seconds=int(raw.get("discovery_interval_seconds", 60)),
        refresh_interval_seconds=int(raw.get("refresh_interval_seconds", 30)),
        settle_timeout_seconds=float(raw.get("settle_timeout_seconds", 20.0)),
        unavailable_after_failures=int(raw.get("unavailable_after_failures", 5)),
    )


def _build_display(raw: dict[str, Any]) -> DisplayConfig:
    return DisplayConfig(
        hidden_tokens_path=os.path.expanduser(raw.get("hidden_tokens_path", "")),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from this package).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = AppConfig(
        wallet=str(raw.get("wallet", "") or ""),
        network=_build_network(raw.get("network", {})),
        contracts=_build_contracts(raw.get("contracts", {})),
        pricing=_build_pricing(raw.get("pricing", {})),
        tokens=_build_tokens(raw.get("tokens", [])),
        discovery=_build_discovery(raw.get("discovery", {})),
        feeds=_build_feeds(raw.get("feeds", {})),
        polling=_build_polling(raw.get("polling", {})),
        display=_build_display(raw.get("display", {})),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.network.rpc_endpoints:
        raise ValueError("At least one RPC endpoint must be configured")
    if not cfg.contracts.multicall:
        raise ValueError("Multicall contract address is required")
    if not cfg.pricing.fee_tiers:
        raise ValueError("At least one quoter fee tier must be configured")
    if not cfg.pricing.reference_stablecoin.address:
        raise ValueError("pricing.reference_stablecoin.address is required")
    if not cfg.pricing.base_asset.address:
        raise ValueError("pricing.base_asset.address is required")
    for token in cfg.tokens:
        if not token.address:
            raise ValueError(f"Token '{token.symbol}' has no address")
