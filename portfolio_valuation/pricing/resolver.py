"""Tiered USD price resolution with a per-cycle, write-once quote cache."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from functools import partial

from ..config import ContractsConfig, PricingConfig
from ..errors import QuoteUnavailable
from ..interfaces.chain import BatchReader
from ..models import PriceQuote, PriceTier, TokenDescriptor
from .tiers import (
    TierStrategy,
    amm_reserve_tier,
    direct_quote_tier,
    first_success,
    routed_quote_tier,
    stable_tier,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PriceResolver:
    """Resolve USD prices through an ordered list of tiers.

    The first tier producing a positive price wins; later tiers are not
    consulted. Concurrent requests for the same token share one resolution,
    and the native asset is priced through its wrapped representation so both
    share a single quote.
    """

    def __init__(
        self,
        reader: BatchReader,
        pricing: PricingConfig,
        contracts: ContractsConfig,
        stablecoin: TokenDescriptor,
        base_asset: TokenDescriptor,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._base_asset = base_asset
        self._clock = clock
        self._inflight: dict[str, asyncio.Task[PriceQuote]] = {}
        self.tiers: list[tuple[PriceTier, TierStrategy]] = [
            (PriceTier.STABLE, stable_tier(pricing.stable_symbols)),
            (
                PriceTier.DIRECT_POOL,
                direct_quote_tier(reader, contracts.quoter, stablecoin, pricing.fee_tiers),
            ),
            (
                PriceTier.ROUTED_VIA_BASE,
                routed_quote_tier(
                    reader,
                    contracts.quoter,
                    base_asset,
                    pricing.fee_tiers,
                    self._base_price,
                ),
            ),
            (PriceTier.AMM_RESERVE, amm_reserve_tier(reader, contracts.amm_factory, stablecoin)),
        ]

    def new_cycle(self) -> None:
        """Discard every quote from the previous cycle."""
        for task in self._inflight.values():
            if not task.done():
                task.cancel()
        self._inflight = {}

    def cached(self, token: TokenDescriptor) -> PriceQuote | None:
        task = self._inflight.get(self._cache_key(token))
        if task is None or not task.done() or task.cancelled() or task.exception() is not None:
            return None
        quote = task.result()
        return self._readdress(quote, token)

    async def resolve(self, token: TokenDescriptor) -> PriceQuote | None:
        """USD quote for ``token``, or None when every tier came up empty."""
        key = self._cache_key(token)
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._resolve_uncached(self._pricing_token(token)))
            self._inflight[key] = task
        try:
            quote = await asyncio.shield(task)
        except QuoteUnavailable:
            logger.debug("No price for %s from any tier", token.symbol)
            return None
        return self._readdress(quote, token)

    async def resolve_many(
        self, tokens: Iterable[TokenDescriptor], timeout: float | None = None
    ) -> dict[str, PriceQuote]:
        """Resolve distinct tokens concurrently; unpriced tokens are left out.

        With a ``timeout``, tokens still resolving when it expires are left out
        as well, and every quote that did finish is kept.
        """
        unique = {t.address: t for t in tokens}
        if not unique:
            return {}
        tasks = {address: asyncio.ensure_future(self.resolve(t)) for address, t in unique.items()}
        _, pending = await asyncio.wait(tasks.values(), timeout=timeout)
        if pending:
            logger.warning("%d of %d prices did not settle in %ss", len(pending), len(tasks), timeout)
            for task in pending:
                task.cancel()

        quotes: dict[str, PriceQuote] = {}
        for address, task in tasks.items():
            if task in pending or task.cancelled():
                continue
            if task.exception() is not None:
                logger.warning("Pricing %s failed: %s", address, task.exception())
                continue
            quote = task.result()
            if quote is not None:
                quotes[address] = quote
        return quotes

    async def _resolve_uncached(self, token: TokenDescriptor) -> PriceQuote:
        result = await first_success(
            partial(self._run_tier, tier, strategy, token) for tier, strategy in self.tiers
        )
        if result is None:
            raise QuoteUnavailable(token.address)
        tier, price = result
        logger.debug("Priced %s at $%s via %s", token.symbol, price, tier.value)
        return PriceQuote(
            token_address=token.address,
            usd_price_per_unit=price,
            source_tier=tier,
            resolved_at=self._clock(),
        )

    @staticmethod
    async def _run_tier(
        tier: PriceTier, strategy: TierStrategy, token: TokenDescriptor
    ) -> tuple[PriceTier, Decimal] | None:
        price = await strategy(token)
        if price is None or price <= 0:
            return None
        return tier, price

    async def _base_price(self) -> Decimal | None:
        quote = await self.resolve(self._base_asset)
        return quote.usd_price_per_unit if quote else None

    def _pricing_token(self, token: TokenDescriptor) -> TokenDescriptor:
        return self._base_asset if token.is_native else token

    def _cache_key(self, token: TokenDescriptor) -> str:
        return self._pricing_token(token).address

    @staticmethod
    def _readdress(quote: PriceQuote, token: TokenDescriptor) -> PriceQuote:
        if quote.token_address == token.address:
            return quote
        return replace(quote, token_address=token.address)
