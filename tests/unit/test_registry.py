"""Unit tests for the token registry merge and refresh."""
from __future__ import annotations

import asyncio

import pytest

from portfolio_valuation.config import AppConfig
from portfolio_valuation.models import NATIVE_ADDRESS, DiscoveredToken, TokenDescriptor
from portfolio_valuation.registry import OnChainMetadata, TokenRegistry, merge

from conftest import (
    OTHER_ADDRESS,
    TOKEN_ADDRESS,
    USDC_ADDRESS,
    WETH_ADDRESS,
    DelayedReader,
    FakeReader,
)

NEW_ADDRESS = "0x" + "aa" * 20


class TestMerge:
    def test_static_only(self, usdc: TokenDescriptor) -> None:
        assert merge([usdc], []) == {usdc.address: usdc}

    def test_static_keeps_display_name(self, usdc: TokenDescriptor) -> None:
        found = DiscoveredToken(usdc.address, 5, symbol="USDC.e", name="Bridged", decimals=6)
        merged = merge([usdc], [found])
        assert merged[usdc.address].display_name == "USD Coin"
        assert merged[usdc.address].symbol == "USDC.e"

    def test_discovered_decimals_win(self, usdc: TokenDescriptor) -> None:
        found = DiscoveredToken(usdc.address, decimals=8)
        assert merge([usdc], [found])[usdc.address].decimals == 8

    def test_onchain_decimals_before_static(self, usdc: TokenDescriptor) -> None:
        found = DiscoveredToken(usdc.address)
        merged = merge([usdc], [found], {usdc.address: OnChainMetadata(decimals=12)})
        assert merged[usdc.address].decimals == 12

    def test_unknown_defaults(self) -> None:
        merged = merge([], [DiscoveredToken(NEW_ADDRESS)])
        descriptor = merged[NEW_ADDRESS]
        assert descriptor.decimals == 18
        assert descriptor.symbol == "UNKNOWN"
        assert descriptor.display_name == "UNKNOWN"

    def test_discovered_logo_fills_static_gap(self, usdc: TokenDescriptor) -> None:
        found = DiscoveredToken(usdc.address, logo_uri="https://logo.example/usdc.png")
        assert merge([usdc], [found])[usdc.address].logo_uri == "https://logo.example/usdc.png"

    def test_addresses_normalized(self) -> None:
        merged = merge([], [DiscoveredToken(NEW_ADDRESS.upper().replace("0X", "0x"), symbol="N")])
        assert NEW_ADDRESS in merged


class TestTokenRegistry:
    def test_static_entries(self, sample_app_config: AppConfig) -> None:
        registry = TokenRegistry(FakeReader(), sample_app_config)
        assert NATIVE_ADDRESS in registry
        assert USDC_ADDRESS in registry
        assert WETH_ADDRESS in registry
        assert TOKEN_ADDRESS in registry
        assert len(registry) == 4
        assert registry.native.symbol == "ETH"

    @pytest.mark.asyncio
    async def test_refresh_introspects_missing_metadata(self, sample_app_config: AppConfig) -> None:
        reader = FakeReader()
        reader.set(NEW_ADDRESS, "symbol", "NEW")
        reader.set(NEW_ADDRESS, "name", "New Token")
        reader.set(NEW_ADDRESS, "decimals", 9)
        registry = TokenRegistry(reader, sample_app_config)

        await registry.refresh([DiscoveredToken(NEW_ADDRESS, raw_balance=10)])

        descriptor = registry.get(NEW_ADDRESS)
        assert descriptor is not None
        assert descriptor.symbol == "NEW"
        assert descriptor.display_name == "New Token"
        assert descriptor.decimals == 9
        assert {c.function.name for c in reader.calls} == {"symbol", "name", "decimals"}

    @pytest.mark.asyncio
    async def test_refresh_skips_introspection_when_complete(self, sample_app_config: AppConfig) -> None:
        reader = FakeReader()
        registry = TokenRegistry(reader, sample_app_config)
        await registry.refresh([DiscoveredToken(NEW_ADDRESS, 1, "N", "N", 6)])
        assert reader.calls == []
        assert registry.get(NEW_ADDRESS).decimals == 6

    @pytest.mark.asyncio
    async def test_unreadable_decimals_default(self, sample_app_config: AppConfig) -> None:
        reader = FakeReader()
        reader.set(NEW_ADDRESS, "symbol", "NEW")
        registry = TokenRegistry(reader, sample_app_config)
        await registry.refresh([DiscoveredToken(NEW_ADDRESS)])
        assert registry.get(NEW_ADDRESS).decimals == 18

    @pytest.mark.asyncio
    async def test_refresh_rebuilds_wholesale(self, sample_app_config: AppConfig) -> None:
        registry = TokenRegistry(FakeReader(), sample_app_config)
        await registry.refresh([DiscoveredToken(NEW_ADDRESS, 1, "N", "N", 6)])
        await registry.refresh([DiscoveredToken(OTHER_ADDRESS, 1, "O", "O", 6)])
        assert NEW_ADDRESS not in registry
        assert OTHER_ADDRESS in registry

    @pytest.mark.asyncio
    async def test_resolve_introspects_unknown(self, sample_app_config: AppConfig) -> None:
        reader = FakeReader()
        reader.set(OTHER_ADDRESS, "symbol", "OTH")
        reader.set(OTHER_ADDRESS, "decimals", 8)
        registry = TokenRegistry(reader, sample_app_config)

        tokens = await registry.resolve([OTHER_ADDRESS, USDC_ADDRESS])

        assert tokens[USDC_ADDRESS].symbol == "USDC"
        assert tokens[OTHER_ADDRESS].decimals == 8
        assert all(c.target == OTHER_ADDRESS for c in reader.calls)

    @pytest.mark.asyncio
    async def test_reset_drops_wallet_tokens(self, sample_app_config: AppConfig) -> None:
        registry = TokenRegistry(FakeReader(), sample_app_config)
        await registry.refresh([DiscoveredToken(NEW_ADDRESS, 1, "N", "N", 6)])
        registry.reset()
        assert NEW_ADDRESS not in registry
        assert registry.discovered == ()
        assert len(registry) == 4


class TestConcurrentUpdates:
    @pytest.mark.asyncio
    async def test_concurrent_resolves_keep_both_tokens(self, sample_app_config: AppConfig) -> None:
        reader = DelayedReader({NEW_ADDRESS: 0.05, OTHER_ADDRESS: 0.0})
        reader.set(NEW_ADDRESS, "symbol", "NEW")
        reader.set(OTHER_ADDRESS, "symbol", "OTH")
        registry = TokenRegistry(reader, sample_app_config)

        await asyncio.gather(registry.resolve([NEW_ADDRESS]), registry.resolve([OTHER_ADDRESS]))

        assert NEW_ADDRESS in registry
        assert OTHER_ADDRESS in registry

    @pytest.mark.asyncio
    async def test_refresh_keeps_tokens_resolved_meanwhile(self, sample_app_config: AppConfig) -> None:
        reader = DelayedReader({NEW_ADDRESS: 0.05})
        reader.set(OTHER_ADDRESS, "symbol", "OTH")
        registry = TokenRegistry(reader, sample_app_config)

        await asyncio.gather(
            registry.refresh([DiscoveredToken(NEW_ADDRESS, 1)]),
            registry.resolve([OTHER_ADDRESS]),
        )

        assert NEW_ADDRESS in registry
        assert OTHER_ADDRESS in registry
