"""Polling orchestration — discovery and on-chain refresh loops per wallet."""
from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, TypeVar

from ..abi import normalize_address
from ..chains.evm import ChainReader, EvmRpcClient
from ..config import AppConfig
from ..errors import DiscoveryFailure, StaleWallet
from ..interfaces.chain import RpcTransport
from ..interfaces.discovery import TokenDiscovery
from ..interfaces.feed import PositionFeed
from ..interfaces.price_oracle import PriceResolverProtocol
from ..models import Holding, NetworkStatus, PortfolioSnapshot, PriceQuote
from ..pricing import PriceResolver
from ..readers import (
    CollectionReader,
    HoldingsReader,
    LendingReader,
    LiquidityReader,
    StakingReader,
)
from ..registry import TokenRegistry
from ..sources import AlchemyTokenDiscovery, JsonPositionFeed, NetworkStatusProbe
from ..valuation import compute_snapshot, referenced_tokens
from .visibility import VisibilityFilter

logger = logging.getLogger(__name__)

T = TypeVar("T")
Subscriber = Callable[[PortfolioSnapshot], Any]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PortfolioMonitor:
    """Keeps the latest portfolio snapshot for one connected wallet.

    Discovery and on-chain reads poll on independent intervals. The last
    complete snapshot stays available until the next one is ready, and
    results computed for a wallet that has since been disconnected or
    replaced are dropped.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        transport: RpcTransport | None = None,
        reader: ChainReader | None = None,
        discovery: TokenDiscovery | None = None,
        lending_feed: PositionFeed | None = None,
        collections_feed: PositionFeed | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._config = config
        self._polling = config.polling
        self._clock = clock

        self._transport = transport or EvmRpcClient(config.network)
        self._reader = reader or ChainReader(self._transport, config.network, config.contracts)

        self.registry = TokenRegistry(self._reader, config)
        self.resolver: PriceResolverProtocol = PriceResolver(
            self._reader,
            config.pricing,
            config.contracts,
            stablecoin=self.registry.reference_stablecoin,
            base_asset=self.registry.base_asset,
            clock=clock,
        )

        if discovery is None and config.discovery.url:
            discovery = AlchemyTokenDiscovery(config.discovery)
        self._discovery = discovery

        if lending_feed is None and config.feeds.lending_url:
            lending_feed = JsonPositionFeed(config.feeds.lending_url, config.feeds.timeout, "lending feed")
        if collections_feed is None and config.feeds.collections_url:
            collections_feed = JsonPositionFeed(
                config.feeds.collections_url, config.feeds.timeout, "collections feed"
            )

        self._holdings_reader = HoldingsReader(self._reader, self.registry)
        self._staking_reader = StakingReader(self._reader, self.registry, config.contracts.staking)
        self._liquidity_reader = LiquidityReader(self._reader, self.registry, config.contracts.amm_factory)
        self._lending_reader = LendingReader(lending_feed, self.registry)
        self._collection_reader = CollectionReader(collections_feed, self.registry)
        self._probe = NetworkStatusProbe(self._transport, config.network, clock=clock)
        self.visibility = VisibilityFilter(config.display.hidden_tokens_path or None)

        self._wallet: str | None = None
        self._latest: PortfolioSnapshot | None = None
        self._latest_holdings: tuple[Holding, ...] = ()
        self._latest_quotes: dict[str, PriceQuote] = {}
        self._subscribers: list[Subscriber] = []
        self._tasks: list[asyncio.Task[None]] = []
        self._discovered_once = asyncio.Event()
        self._discovery_failures = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def wallet(self) -> str | None:
        return self._wallet

    @property
    def latest(self) -> PortfolioSnapshot | None:
        """Last complete snapshot (stale-while-revalidate)."""
        return self._latest

    @property
    def latest_holdings(self) -> tuple[Holding, ...]:
        return self._latest_holdings

    @property
    def latest_quotes(self) -> dict[str, PriceQuote]:
        return dict(self._latest_quotes)

    @property
    def discovery_failures(self) -> int:
        return self._discovery_failures

    @property
    def data_unavailable(self) -> bool:
        """True once discovery has failed for too many consecutive polls."""
        return self._discovery_failures >= self._polling.unavailable_after_failures

    def display_holdings_usd(self) -> Decimal:
        """Holdings total as displayed, excluding hidden tokens."""
        return self.visibility.visible_holdings_usd(self._latest_holdings, self._latest_quotes)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a consumer of published snapshots; returns an unsubscribe callable."""
        self._subscribers.append(callback)
        return lambda: self._subscribers.remove(callback)

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    async def connect(self, wallet_address: str, start_polling: bool = True) -> None:
        if self._wallet is not None:
            await self.disconnect()
        self._wallet = normalize_address(wallet_address)
        self._discovered_once = asyncio.Event()
        self._discovery_failures = 0
        logger.info("Connected wallet %s", self._wallet)

        if start_polling:
            self._tasks = [
                asyncio.create_task(self._discovery_loop()),
                asyncio.create_task(self._refresh_loop()),
            ]

    async def disconnect(self) -> None:
        """Stop polling and drop every wallet-scoped record."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        if self._wallet is not None:
            logger.info("Disconnected wallet %s", self._wallet)
        self._wallet = None
        self._latest = None
        self._latest_holdings = ()
        self._latest_quotes = {}
        self.registry.reset()
        self.resolver.new_cycle()

    # ------------------------------------------------------------------
    # Poll steps
    # ------------------------------------------------------------------

    async def poll_discovery(self) -> bool:
        """One discovery poll. On failure the previous registry is kept."""
        wallet = self._wallet
        if wallet is None:
            return False
        if self._discovery is None:
            self._discovered_once.set()
            return True

        try:
            found = await self._discovery.discover(wallet)
        except DiscoveryFailure as e:
            self._discovery_failures += 1
            logger.warning(
                "Discovery failed (%d consecutive): %s", self._discovery_failures, e
            )
            if self.data_unavailable:
                logger.error("Token discovery unavailable for %d polls", self._discovery_failures)
            return False

        try:
            self._ensure_current(wallet)
        except StaleWallet:
            logger.debug("Discarding discovery result for %s", wallet)
            return False

        await self.registry.refresh(found)
        self._discovery_failures = 0
        self._discovered_once.set()
        return True

    async def run_cycle(self) -> PortfolioSnapshot | None:
        """Read everything for the connected wallet and publish a new snapshot."""
        wallet = self._wallet
        if wallet is None:
            return None

        self.resolver.new_cycle()
        holdings, pools, pairs, lending, items = await asyncio.gather(
            self._settle(self._holdings_reader.read_holdings(wallet), [], "holdings"),
            self._settle(self._staking_reader.read_pools(wallet), [], "staking"),
            self._settle(self._liquidity_reader.read_pairs(wallet), [], "liquidity"),
            self._settle(self._lending_reader.read_positions(wallet), [], "lending"),
            self._settle(self._collection_reader.read_items(wallet), [], "collections"),
        )

        tokens = referenced_tokens(holdings, pools, pairs, lending, items)
        # Each token settles on its own; quotes that finished in time are kept.
        quotes = await self.resolver.resolve_many(
            tokens, timeout=self._polling.settle_timeout_seconds
        )

        snapshot = compute_snapshot(
            wallet, holdings, pools, pairs, lending, items, quotes,
            computed_at=self._clock(),
        )

        try:
            self._ensure_current(wallet)
        except StaleWallet:
            logger.debug("Discarding snapshot for %s", wallet)
            return None

        self._latest = snapshot
        self._latest_holdings = tuple(holdings)
        self._latest_quotes = dict(quotes)
        logger.info(
            "Snapshot for %s: total $%.2f (%d assets, %d positions, %d unpriced)",
            wallet,
            snapshot.total_usd,
            snapshot.asset_count,
            snapshot.position_count,
            snapshot.unpriced_count,
        )
        await self._publish(snapshot)
        return snapshot

    async def check_network(self) -> NetworkStatus:
        return await self._probe.check()

    async def run_continuous(self, wallet_address: str, interval_seconds: int | None = None) -> None:
        """Connect and keep polling until cancelled."""
        if interval_seconds:
            self._polling = replace(self._polling, refresh_interval_seconds=interval_seconds)
        await self.connect(wallet_address)
        logger.info(
            "Starting continuous refresh (every %d seconds)",
            self._polling.refresh_interval_seconds,
        )
        try:
            await asyncio.gather(*self._tasks)
        finally:
            await self.disconnect()

    # ------------------------------------------------------------------
    # Loops
    # ------------------------------------------------------------------

    async def _discovery_loop(self) -> None:
        while True:
            try:
                await self.poll_discovery()
            except Exception as e:
                logger.error("Error in discovery loop: %s", e)
            await asyncio.sleep(self._polling.discovery_interval_seconds)

    async def _refresh_loop(self) -> None:
        try:
            await asyncio.wait_for(
                self._discovered_once.wait(), timeout=self._polling.settle_timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.info("Discovery not settled, refreshing with static tokens")

        while True:
            try:
                await self.run_cycle()
            except Exception as e:
                logger.error("Error in refresh loop: %s", e)
            await asyncio.sleep(self._polling.refresh_interval_seconds)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _ensure_current(self, wallet: str) -> None:
        if self._wallet != wallet:
            raise StaleWallet(wallet, self._wallet)

    async def _settle(self, aw: Awaitable[T], default: T, label: str) -> T:
        """Await ``aw`` for at most the settle timeout; fall back to ``default``."""
        try:
            return await asyncio.wait_for(aw, timeout=self._polling.settle_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("%s did not settle in %.0fs", label, self._polling.settle_timeout_seconds)
        except Exception as e:
            logger.warning("%s read failed: %s", label, e)
        return default

    async def _publish(self, snapshot: PortfolioSnapshot) -> None:
        for callback in list(self._subscribers):
            try:
                result = callback(snapshot)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error("Snapshot subscriber failed: %s", e)
