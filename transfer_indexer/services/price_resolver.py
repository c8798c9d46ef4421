"""Resolve a transfer's calendar day to a market quote.

Two strategies are supported:

- ``point`` asks the provider for one day at a time. Provider failures are
  logged and priced at zero for that call only; the day stays uncached so the
  next request retries it.
- ``bulk`` downloads the provider's whole daily range on the first miss and
  fills every uncached day. A failed download aborts the batch because the
  cache cannot be decided without it.

Outbound calls go through a :class:`RequestThrottle` and concurrent misses are
coalesced so the provider sees at most one request per day (``point``) or one
range download at a time (``bulk``).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import TypeVar

from transfer_indexer.config import IndexerSettings, PriceStrategy
from transfer_indexer.core.errors import (
    PriceProviderFailure,
    ProviderUnavailable,
    RateLimited,
)
from transfer_indexer.models import UNKNOWN_PRICE
from transfer_indexer.providers.price_feed import PriceProvider
from transfer_indexer.providers.throttle import RequestThrottle
from transfer_indexer.services.price_cache import PriceCache

logger = logging.getLogger(__name__)

T = TypeVar("T")


def day_key(value: date | datetime | int) -> date:
    """Normalize a date, datetime or epoch-milliseconds timestamp to a UTC day."""

    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).date()
    if isinstance(value, date):
        return value
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).date()


class PriceResolver:
    """Cache-backed quote lookup with throttled, coalesced provider access."""

    def __init__(
        self,
        provider: PriceProvider,
        cache: PriceCache,
        *,
        asset: str,
        market: str,
        quotes_begin: date,
        strategy: PriceStrategy = "point",
        throttle: RequestThrottle | None = None,
        timeout_seconds: float = 15.0,
        retries: int = 1,
    ) -> None:
        if strategy not in ("point", "bulk"):
            raise ValueError(f"Unknown price strategy: {strategy}")
        self._provider = provider
        self._cache = cache
        self._asset = asset
        self._market = market
        self._quotes_begin = quotes_begin
        self._strategy = strategy
        self._throttle = throttle or RequestThrottle(0.0)
        self._timeout = timeout_seconds
        self._retries = max(0, retries)
        self._pending: dict[date, asyncio.Task[Decimal]] = {}
        self._warming: asyncio.Task[None] | None = None

    @property
    def strategy(self) -> PriceStrategy:
        return self._strategy

    @property
    def quotes_begin(self) -> date:
        return self._quotes_begin

    async def resolve_price(self, when: date | datetime | int) -> Decimal:
        day = day_key(when)
        if day < self._quotes_begin:
            return UNKNOWN_PRICE

        cached = self._cache.get(day)
        if cached is not None:
            return cached

        if self._strategy == "bulk":
            return await self._resolve_bulk(day)
        return await self._resolve_point(day)

    # Point strategy

    async def _resolve_point(self, day: date) -> Decimal:
        task = self._pending.get(day)
        if task is None:
            task = asyncio.ensure_future(self._fetch_point(day))
            self._pending[day] = task
            task.add_done_callback(lambda _t, d=day: self._pending.pop(d, None))
        return await asyncio.shield(task)

    async def _fetch_point(self, day: date) -> Decimal:
        attempts = self._retries + 1
        failure: PriceProviderFailure | None = None
        for attempt in range(1, attempts + 1):
            try:
                price = await self._call(lambda: self._provider.quote(self._asset, day))
            except RateLimited as exc:
                self._throttle.defer(exc.retry_after)
                failure = exc
                break
            except ProviderUnavailable as exc:
                failure = exc
                if attempt < attempts:
                    logger.warning("Price lookup for %s failed (attempt %d/%d): %s", day, attempt, attempts, exc)
                    continue
                break
            except PriceProviderFailure as exc:
                failure = exc
                break
            else:
                value = UNKNOWN_PRICE if price is None else price
                self._cache.set(day, value)
                return value

        self._cache.evict(day)
        logger.error("Price lookup for %s failed, recording unknown price: %s", day, failure)
        return UNKNOWN_PRICE

    # Bulk strategy

    async def _resolve_bulk(self, day: date) -> Decimal:
        if self._warming is None:
            self._warming = asyncio.ensure_future(self._warm())
            self._warming.add_done_callback(self._clear_warming)
        await asyncio.shield(self._warming)

        cached = self._cache.get(day)
        if cached is None:
            # No candle for this day; remember that so the miss cannot loop.
            self._cache.set(day, UNKNOWN_PRICE)
            return UNKNOWN_PRICE
        return cached

    async def _warm(self) -> None:
        try:
            quotes = await self._call(lambda: self._provider.daily_quotes(self._market))
        except PriceProviderFailure as exc:
            if isinstance(exc, RateLimited):
                self._throttle.defer(exc.retry_after)
            logger.error("Daily price range for market %s could not be fetched: %s", self._market, exc)
            raise
        added = sum(1 for quote in quotes if self._cache.set_missing(quote.day, quote.open))
        logger.info("Warmed price cache with %d new of %d daily quotes", added, len(quotes))

    def _clear_warming(self, _task: asyncio.Task[None]) -> None:
        self._warming = None

    async def _call(self, request: Callable[[], Awaitable[T]]) -> T:
        async with self._throttle.slot():
            try:
                return await asyncio.wait_for(request(), timeout=self._timeout)
            except asyncio.TimeoutError as exc:
                raise ProviderUnavailable(f"Price provider did not answer within {self._timeout}s") from exc


def build_price_resolver(
    settings: IndexerSettings,
    provider: PriceProvider,
    cache: PriceCache,
) -> PriceResolver:
    """Create a resolver configured from ``settings``."""

    return PriceResolver(
        provider,
        cache,
        asset=settings.price_asset,
        market=settings.price_market_id,
        quotes_begin=settings.quotes_begin,
        strategy=settings.price_strategy,
        throttle=RequestThrottle(settings.price_request_cooldown_seconds),
        timeout_seconds=settings.price_request_timeout_seconds,
    )


__all__ = ["PriceResolver", "build_price_resolver", "day_key"]
