"""Cached price resolver -- the read path behind get_price.

Decision order for every lookup:
  1. REALTIME: a polled record younger than freshness_window wins outright.
  2. BACKOFF: while the global rate-limit gate is armed, no cold fetch is
     made for any symbol; serve cache (any age), else realtime (any age),
     else None.
  3. CACHE: unless force_refresh, a cached record younger than
     cache_duration is returned.
  4. COLD FETCH: ask the single-symbol source. Success is cached. HTTP 429
     arms the global gate and falls back as in step 2. Other upstream
     errors propagate to the caller.

The rate-limit gate is global on purpose: one 429 suppresses cold fetches
for every symbol until backoff_duration has passed.
"""

import asyncio
import time
from collections.abc import Callable

from pricewatch.exceptions import RateLimitedError
from pricewatch.logging import get_logger
from pricewatch.market_data.realtime_table import RealtimeTable
from pricewatch.models import CachedPrice, PriceRecord
from pricewatch.sources.base import SingleQuoteSource

logger = get_logger(__name__)


class PriceResolver:
    """Owns the price cache and the global rate-limit state.

    Args:
        table: Realtime table filled by the poller (read only here).
        source: Single-symbol source used for cold fetches.
        freshness_window: Max realtime age served without further checks.
        cache_duration: Cache TTL for cold-fetched records.
        backoff_duration: How long a 429 suppresses cold fetches.
        clock: Time source.
    """

    def __init__(
        self,
        table: RealtimeTable,
        source: SingleQuoteSource,
        freshness_window: float = 15.0,
        cache_duration: float = 120.0,
        backoff_duration: float = 120.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._table = table
        self._source = source
        self._freshness_window = freshness_window
        self._cache_duration = cache_duration
        self._backoff_duration = backoff_duration
        self._clock = clock
        self._cache: dict[str, CachedPrice] = {}
        self._last_rate_limit_at: float | None = None
        # One cold fetch per symbol at a time; concurrent callers share it
        self._inflight: dict[str, asyncio.Task] = {}  # type: ignore[type-arg]
        self._cold_fetches = 0

    @property
    def last_rate_limit_at(self) -> float | None:
        return self._last_rate_limit_at

    def backoff_active(self, now: float | None = None) -> bool:
        """True while the global rate-limit gate suppresses cold fetches."""
        if self._last_rate_limit_at is None:
            return False
        now = self._clock() if now is None else now
        return now - self._last_rate_limit_at < self._backoff_duration

    def cached(self, symbol: str) -> CachedPrice | None:
        """Return the cache entry for a symbol regardless of age."""
        return self._cache.get(symbol.lower())

    async def get_price(
        self, symbol: str, force_refresh: bool = False
    ) -> PriceRecord | None:
        """Return the best available price for symbol, or None if no data.

        Args:
            symbol: Ticker symbol, any case.
            force_refresh: Treat the cache as stale. Fresh realtime data and
                an armed backoff gate still short-circuit.

        Raises:
            UpstreamError: The cold fetch failed for a reason other than
                rate limiting.
        """
        now = self._clock()

        realtime = self._table.get(symbol)
        if realtime is not None and now - realtime.observed_at < self._freshness_window:
            logger.debug(
                "realtime_price_hit",
                symbol=symbol,
                price=realtime.price,
                source=realtime.source.value,
            )
            return realtime

        if self.backoff_active(now):
            logger.info("rate_limit_backoff_active", symbol=symbol)
            return self._fallback(symbol)

        if not force_refresh:
            entry = self._cache.get(symbol.lower())
            if entry is not None and now - entry.cached_at < self._cache_duration:
                logger.debug("price_cache_hit", symbol=symbol, price=entry.record.price)
                return entry.record

        return await self._shared_cold_fetch(symbol, now)

    async def _shared_cold_fetch(self, symbol: str, now: float) -> PriceRecord | None:
        key = symbol.lower()
        task = self._inflight.get(key)
        if task is None or task.done():
            task = asyncio.ensure_future(self._cold_fetch(symbol, now))
            self._inflight[key] = task
            task.add_done_callback(lambda t: self._forget_inflight(key, t))
        else:
            logger.debug("cold_fetch_joined", symbol=symbol)
        return await asyncio.shield(task)

    def _forget_inflight(self, key: str, task: asyncio.Task) -> None:  # type: ignore[type-arg]
        if self._inflight.get(key) is task:
            del self._inflight[key]

    async def _cold_fetch(self, symbol: str, now: float) -> PriceRecord | None:
        self._cold_fetches += 1
        logger.info("cold_fetch_started", symbol=symbol, source=self._source.name)
        try:
            record = await self._source.fetch_quote(symbol)
        except RateLimitedError:
            self._last_rate_limit_at = now
            logger.warning(
                "rate_limit_backoff_armed",
                symbol=symbol,
                backoff_seconds=self._backoff_duration,
            )
            return self._fallback(symbol)

        if record is None:
            logger.info("price_not_found", symbol=symbol)
            return None

        self._cache[symbol.lower()] = CachedPrice(record=record, cached_at=now)
        logger.info("price_cached", symbol=symbol, price=record.price)
        return record

    def _fallback(self, symbol: str) -> PriceRecord | None:
        """Stale cache first, then stale realtime, then no data."""
        entry = self._cache.get(symbol.lower())
        if entry is not None:
            logger.info("stale_cache_served", symbol=symbol, cached_at=entry.cached_at)
            return entry.record
        realtime = self._table.get(symbol)
        if realtime is not None:
            logger.info("stale_realtime_served", symbol=symbol, observed_at=realtime.observed_at)
            return realtime
        logger.warning("no_price_data_during_backoff", symbol=symbol)
        return None

    def get_status(self) -> dict:
        """Return cache and backoff state for the status endpoint."""
        return {
            "cached_symbols": len(self._cache),
            "cold_fetches": self._cold_fetches,
            "backoff_active": self.backoff_active(),
            "last_rate_limit_at": self._last_rate_limit_at,
        }
