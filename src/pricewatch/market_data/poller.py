"""Realtime poller -- keeps the RealtimeTable populated for tracked symbols.

Each cycle walks the source tiers in strict priority order:
  1. PRIMARY: CryptoCompare batch request
  2. SECONDARY: CoinCap batch request
  3. TERTIARY: CoinGecko, one request per symbol with a fixed delay between
     requests, publishing whatever subset succeeds

The first batch tier that succeeds short-circuits the rest. Failures are
logged and never raised to the caller of poll_once.
"""

import asyncio
import time
from collections.abc import Callable, Iterable

from pricewatch.exceptions import RateLimitedError, UpstreamError
from pricewatch.logging import get_logger
from pricewatch.market_data.realtime_table import RealtimeTable
from pricewatch.models import PriceRecord, PriceSource
from pricewatch.sources.base import BatchQuoteSource, SingleQuoteSource

logger = get_logger(__name__)


class RealtimePoller:
    """Polls the source tiers on a fixed interval and publishes to the table.

    Args:
        table: Shared realtime table (this poller is its only writer).
        primary: Primary batch source.
        secondary: Secondary batch source.
        tertiary: Per-symbol fallback source.
        symbols: Tracked symbol set.
        poll_interval: Seconds between cycles.
        tertiary_delay: Seconds between per-symbol fallback requests.
        clock: Time source.
    """

    def __init__(
        self,
        table: RealtimeTable,
        primary: BatchQuoteSource,
        secondary: BatchQuoteSource,
        tertiary: SingleQuoteSource,
        symbols: list[str],
        poll_interval: float = 10.0,
        tertiary_delay: float = 0.5,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._table = table
        self._primary = primary
        self._secondary = secondary
        self._tertiary = tertiary
        self._symbols = [s.upper() for s in symbols]
        self._poll_interval = poll_interval
        self._tertiary_delay = tertiary_delay
        self._clock = clock
        self._cycle_lock = asyncio.Lock()
        self._running = False
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]
        self._last_source: PriceSource | None = None
        self._last_success_at: float | None = None
        self._skipped_cycles = 0

    @property
    def symbols(self) -> list[str]:
        return list(self._symbols)

    async def start(self) -> None:
        """Begin polling in the background. The first poll runs immediately."""
        if self._running:
            logger.warning("realtime_poller_already_running")
            return
        self._running = True
        self._task = asyncio.create_task(self._poll_loop(), name="realtime-poller")
        logger.info(
            "realtime_poller_started",
            poll_interval=self._poll_interval,
            symbols=len(self._symbols),
        )

    async def stop(self) -> None:
        """Stop the poller gracefully."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("realtime_poller_stopped")

    async def _poll_loop(self) -> None:
        while self._running:
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.error("realtime_poll_error", exc_info=True)
            if self._running:
                await asyncio.sleep(self._poll_interval)

    async def poll_once(self) -> PriceSource | None:
        """Run one cycle. Returns the tier that produced data, or None.

        A call made while another cycle is still in flight is skipped.
        """
        if self._cycle_lock.locked():
            self._skipped_cycles += 1
            logger.warning("realtime_poll_skipped_busy", skipped=self._skipped_cycles)
            return None

        async with self._cycle_lock:
            source = await self._poll_sources()

        if source is None:
            logger.error("all_price_sources_failed")
        else:
            self._last_source = source
            self._last_success_at = self._clock()
        return source

    async def _poll_sources(self) -> PriceSource | None:
        for tier, source in (
            (PriceSource.PRIMARY, self._primary),
            (PriceSource.SECONDARY, self._secondary),
        ):
            try:
                records = await source.fetch_quotes(self._symbols)
            except UpstreamError as e:
                logger.warning("realtime_source_failed", source=source.name, error=str(e))
                continue
            except Exception:
                logger.error("realtime_source_error", source=source.name, exc_info=True)
                continue

            self._publish(records.values())
            logger.info(
                "realtime_prices_updated",
                source=source.name,
                updated=len(records),
                total=len(self._table),
            )
            return tier

        logger.warning("realtime_tertiary_fallback", source=self._tertiary.name)
        updated = await self._poll_tertiary()
        return PriceSource.TERTIARY if updated else None

    async def _poll_tertiary(self) -> int:
        """Per-symbol fallback loop. Returns how many symbols were updated."""
        updated = 0
        for i, symbol in enumerate(self._symbols):
            if i > 0 and self._tertiary_delay > 0:
                await asyncio.sleep(self._tertiary_delay)
            try:
                record = await self._tertiary.fetch_quote(symbol)
            except RateLimitedError:
                logger.warning("realtime_tertiary_rate_limited", symbol=symbol)
                continue
            except UpstreamError as e:
                logger.debug("realtime_tertiary_failed", symbol=symbol, error=str(e))
                continue
            except Exception:
                logger.error("realtime_tertiary_error", symbol=symbol, exc_info=True)
                continue
            if record is not None:
                self._table.publish(record)
                updated += 1

        if updated:
            logger.info("realtime_prices_updated", source=self._tertiary.name, updated=updated)
        return updated

    def _publish(self, records: Iterable[PriceRecord]) -> None:
        for record in records:
            self._table.publish(record)

    def get_status(self) -> dict:
        """Return poller state for the status endpoint."""
        return {
            "running": self._running,
            "tracked_symbols": len(self._symbols),
            "published_symbols": len(self._table),
            "last_source": self._last_source.value if self._last_source else None,
            "last_success_at": self._last_success_at,
            "skipped_cycles": self._skipped_cycles,
        }
