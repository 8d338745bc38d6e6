"""Shared test fixtures and sample data."""
from __future__ import annotations

import asyncio
import textwrap
from collections.abc import Sequence
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any

import pytest

from portfolio_valuation.chains.evm.reader import Call, CallResult
from portfolio_valuation.config import (
    AppConfig,
    ContractsConfig,
    NetworkConfig,
    PollingConfig,
    PricingConfig,
    TokenConfig,
)
from portfolio_valuation.errors import ReadFailure
from portfolio_valuation.models import (
    NATIVE_ADDRESS,
    PriceQuote,
    PriceTier,
    TokenDescriptor,
)

WALLET = "0x" + "ab" * 20
USDC_ADDRESS = "0x" + "11" * 20
WETH_ADDRESS = "0x" + "22" * 20
TOKEN_ADDRESS = "0x" + "33" * 20
OTHER_ADDRESS = "0x" + "44" * 20
QUOTER_ADDRESS = "0x" + "55" * 20
FACTORY_ADDRESS = "0x" + "66" * 20
STAKING_ADDRESS = "0x" + "77" * 20
MULTICALL_ADDRESS = "0xca11bde05977b3631167028862be2a173976ca11"

FIXED_NOW = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return FIXED_NOW


# ---------------------------------------------------------------------------
# Fake chain reader
# ---------------------------------------------------------------------------


class FakeReader:
    """In-memory batch reader.

    Responses are keyed by ``(target, function name)`` or, for calls with
    arguments, ``(target, function name, args)``; the more specific key wins.
    Values may be plain decoded values or ``CallResult`` instances. Anything
    unmapped reverts. Every call is recorded in ``calls``.
    """

    def __init__(self, responses: dict[tuple, Any] | None = None) -> None:
        self.responses: dict[tuple, Any] = dict(responses or {})
        self.calls: list[Call] = []
        self.batches: list[list[Call]] = []

    def set(self, target: str, function_name: str, value: Any, args: tuple | None = None) -> None:
        key = (target, function_name) if args is None else (target, function_name, args)
        self.responses[key] = value

    def _lookup(self, call: Call) -> CallResult:
        for key in ((call.target, call.function.name, call.args), (call.target, call.function.name)):
            if key in self.responses:
                value = self.responses[key]
                return value if isinstance(value, CallResult) else CallResult.success(value)
        return CallResult.failure(ReadFailure.REVERTED, call.function.signature)

    async def batch(self, calls: Sequence[Call]) -> list[CallResult]:
        calls = list(calls)
        self.batches.append(calls)
        self.calls.extend(calls)
        return [self._lookup(c) for c in calls]

    async def call(self, call: Call) -> CallResult:
        return (await self.batch([call]))[0]

    def eth_balance_call(self, wallet: str) -> Call:
        from portfolio_valuation.abi import MULTICALL_GET_ETH_BALANCE

        return Call(MULTICALL_ADDRESS, MULTICALL_GET_ETH_BALANCE, (wallet,))

    def called(self, function_name: str) -> list[Call]:
        return [c for c in self.calls if c.function.name == function_name]


class DelayedReader(FakeReader):
    """FakeReader whose batches sleep before answering.

    ``delays`` maps a call target or a function name to seconds; a batch waits
    for the longest delay any of its calls matches.
    """

    def __init__(self, delays: dict[str, float]) -> None:
        super().__init__()
        self.delays = delays

    async def batch(self, calls: Sequence[Call]) -> list[CallResult]:
        calls = list(calls)
        delay = max(
            (self.delays.get(key, 0.0) for c in calls for key in (c.target, c.function.name)),
            default=0.0,
        )
        if delay:
            await asyncio.sleep(delay)
        return await super().batch(calls)


@pytest.fixture()
def fake_reader() -> FakeReader:
    return FakeReader()


# ---------------------------------------------------------------------------
# Token fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def usdc() -> TokenDescriptor:
    return TokenDescriptor(USDC_ADDRESS, "USDC", 6, "USD Coin")


@pytest.fixture()
def weth() -> TokenDescriptor:
    return TokenDescriptor(WETH_ADDRESS, "WETH", 18, "Wrapped Ether")


@pytest.fixture()
def token() -> TokenDescriptor:
    return TokenDescriptor(TOKEN_ADDRESS, "TKN", 18, "Test Token")


@pytest.fixture()
def other_token() -> TokenDescriptor:
    return TokenDescriptor(OTHER_ADDRESS, "OTH", 18, "Other Token")


@pytest.fixture()
def native() -> TokenDescriptor:
    return TokenDescriptor(NATIVE_ADDRESS, "ETH", 18, "Ether")


def make_quote(address: str, price: str | int, tier: PriceTier = PriceTier.DIRECT_POOL) -> PriceQuote:
    return PriceQuote(
        token_address=address,
        usd_price_per_unit=Decimal(price),
        source_tier=tier,
        resolved_at=FIXED_NOW,
    )


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_network_config() -> NetworkConfig:
    return NetworkConfig(
        name="testnet",
        chain_id=1337,
        rpc_endpoints=("https://rpc1.example.com", "https://rpc2.example.com"),
        rpc_timeout=10,
        call_timeout=5.0,
        max_batch_size=200,
        max_block_age_seconds=300,
    )


@pytest.fixture()
def sample_contracts_config() -> ContractsConfig:
    return ContractsConfig(
        multicall=MULTICALL_ADDRESS,
        quoter=QUOTER_ADDRESS,
        amm_factory=FACTORY_ADDRESS,
        staking=STAKING_ADDRESS,
    )


@pytest.fixture()
def sample_pricing_config() -> PricingConfig:
    return PricingConfig(
        reference_stablecoin=TokenConfig(USDC_ADDRESS, "USDC", 6, "USD Coin"),
        base_asset=TokenConfig(WETH_ADDRESS, "WETH", 18, "Wrapped Ether"),
    )


@pytest.fixture()
def sample_app_config(
    sample_network_config: NetworkConfig,
    sample_contracts_config: ContractsConfig,
    sample_pricing_config: PricingConfig,
) -> AppConfig:
    return AppConfig(
        wallet=WALLET,
        network=sample_network_config,
        contracts=sample_contracts_config,
        pricing=sample_pricing_config,
        tokens=(TokenConfig(TOKEN_ADDRESS, "TKN", 18, "Test Token"),),
        polling=PollingConfig(
            discovery_interval_seconds=60,
            refresh_interval_seconds=30,
            settle_timeout_seconds=1.0,
            unavailable_after_failures=3,
        ),
    )


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent(f"""\
    wallet: "{WALLET}"
    network:
      name: testnet
      chain_id: 1337
      rpc_endpoints: ["https://rpc.example.com"]
      rpc_timeout: 10
    contracts:
      quoter: "{QUOTER_ADDRESS}"
      amm_factory: "{FACTORY_ADDRESS}"
    pricing:
      reference_stablecoin:
        address: "{USDC_ADDRESS}"
        symbol: USDC
        decimals: 6
      base_asset:
        address: "{WETH_ADDRESS}"
        symbol: WETH
      fee_tiers: [500, 3000]
      stable_symbols: [usdc, dai]
    tokens:
      - address: "{TOKEN_ADDRESS}"
        symbol: TKN
        decimals: 8
    discovery:
      url: "https://discovery.example.com"
    polling:
      refresh_interval_seconds: 10
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file
