"""Alert evaluation engine -- manual target alerts and auto-volatility alerts.

Each cycle:
  1. VOLATILITY: compare every realtime symbol against its baseline and
     broadcast moves beyond the threshold to subscribed chats
  2. MANUAL: for each chat, force-refresh the price of every active alert,
     apply the crossing rule, and notify once on trigger

A failed or empty price lookup skips that alert until the next cycle; it
never cancels the alert. ACTIVE -> TRIGGERED happens before any
notification is attempted, so each alert notifies at most once.
"""

import asyncio
import time
from collections.abc import Callable

from pricewatch.alerts.analysis import MarketContextLookup, build_alert_analysis
from pricewatch.alerts.formatting import format_trigger_message, format_volatility_message
from pricewatch.alerts.store import AlertStore, crosses_target
from pricewatch.logging import get_logger
from pricewatch.market_data.realtime_table import RealtimeTable
from pricewatch.market_data.resolver import PriceResolver
from pricewatch.models import Alert
from pricewatch.notify.base import Notifier

logger = get_logger(__name__)


class AlertEngine:
    """Runs alert evaluation cycles on a fixed interval.

    Args:
        store: Alert, baseline and subscription state.
        resolver: Price read path (called with force_refresh=True).
        table: Realtime table scanned by the volatility pass.
        notifier: Outbound message sink.
        market_context: Optional enrichment lookup for triggered alerts.
        check_interval: Seconds between cycles.
        alert_pacing_delay: Seconds between alerts of the same chat.
        volatility_pacing_delay: Seconds between symbols in the volatility pass.
        threshold_percent: Absolute percent move that fires a volatility alert.
        cooldown: Minimum seconds between volatility alerts for one symbol.
        clock: Time source.
    """

    def __init__(
        self,
        store: AlertStore,
        resolver: PriceResolver,
        table: RealtimeTable,
        notifier: Notifier,
        market_context: MarketContextLookup | None = None,
        check_interval: float = 30.0,
        alert_pacing_delay: float = 1.0,
        volatility_pacing_delay: float = 0.2,
        threshold_percent: float = 3.0,
        cooldown: float = 3600.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._table = table
        self._notifier = notifier
        self._market_context = market_context
        self._check_interval = check_interval
        self._alert_pacing_delay = alert_pacing_delay
        self._volatility_pacing_delay = volatility_pacing_delay
        self._threshold_percent = threshold_percent
        self._cooldown = cooldown
        self._clock = clock
        self._cycle_lock = asyncio.Lock()
        self._running = False
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]
        self._cycles = 0
        self._skipped_cycles = 0
        self._last_cycle_at: float | None = None

    async def start(self) -> None:
        """Begin evaluating alerts in the background."""
        if self._running:
            logger.warning("alert_engine_already_running")
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop(), name="alert-engine")
        logger.info("alert_engine_started", check_interval=self._check_interval)

    async def stop(self) -> None:
        """Stop the engine gracefully."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("alert_engine_stopped")

    async def _run_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._check_interval)
            try:
                await self.check_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.error("alert_cycle_error", exc_info=True)

    async def check_once(self) -> dict | None:
        """Run one evaluation cycle.

        Returns a summary dict, or None if a cycle was already in flight.
        """
        if self._cycle_lock.locked():
            self._skipped_cycles += 1
            logger.warning("alert_cycle_skipped_busy", skipped=self._skipped_cycles)
            return None

        async with self._cycle_lock:
            volatility_fired = await self.check_auto_volatility()
            triggered = 0
            chats = self._store.chats_with_active_alerts()
            logger.debug("alert_cycle_started", chats=len(chats))
            for chat_id in chats:
                triggered += await self._check_chat(chat_id)

        self._cycles += 1
        self._last_cycle_at = self._clock()
        return {"volatility_fired": volatility_fired, "triggered": triggered}

    async def _check_chat(self, chat_id: int) -> int:
        alerts = self._store.active_alerts(chat_id)
        triggered = 0
        for i, alert in enumerate(alerts):
            if i > 0 and self._alert_pacing_delay > 0:
                await asyncio.sleep(self._alert_pacing_delay)
            try:
                if await self._evaluate_alert(alert):
                    triggered += 1
            except Exception as e:
                logger.warning(
                    "alert_check_failed",
                    chat_id=chat_id,
                    alert_id=alert.alert_id,
                    symbol=alert.symbol,
                    error=str(e),
                )
        return triggered

    async def _evaluate_alert(self, alert: Alert) -> bool:
        if not alert.is_active:
            return False

        record = await self._resolver.get_price(alert.symbol, force_refresh=True)
        if record is None:
            logger.info("alert_price_unavailable", alert_id=alert.alert_id, symbol=alert.symbol)
            return False

        if not crosses_target(alert, record.price):
            logger.debug(
                "alert_not_triggered",
                alert_id=alert.alert_id,
                symbol=alert.symbol,
                current=record.price,
                target=alert.target_price,
            )
            return False

        now = self._clock()
        if not self._store.mark_triggered(alert, record.price, now):
            return False
        logger.info(
            "alert_triggered",
            chat_id=alert.chat_id,
            alert_id=alert.alert_id,
            symbol=alert.symbol,
            price=record.price,
            target=alert.target_price,
        )

        analysis = await build_alert_analysis(alert, record, now, self._market_context)
        await self._deliver(alert.chat_id, format_trigger_message(alert, analysis))
        return True

    async def check_auto_volatility(self) -> int:
        """Volatility pass over the realtime table. Returns alerts fired."""
        snapshot = self._table.snapshot()
        fired = 0
        for i, (symbol, record) in enumerate(snapshot.items()):
            if i > 0 and self._volatility_pacing_delay > 0:
                await asyncio.sleep(self._volatility_pacing_delay)
            try:
                if await self._evaluate_volatility(symbol, record.price):
                    fired += 1
            except Exception:
                logger.error("volatility_check_error", symbol=symbol, exc_info=True)
        return fired

    async def _evaluate_volatility(self, symbol: str, price: float) -> bool:
        now = self._clock()
        baseline = self._store.baseline(symbol)
        if baseline is None:
            self._store.seed_baseline(symbol, price, now)
            return False

        previous = baseline.last_alert_price
        if previous <= 0:
            self._store.seed_baseline(symbol, price, now)
            return False
        pct_change = (price - previous) / previous * 100

        if abs(pct_change) < self._threshold_percent:
            return False
        if now - baseline.last_alert_at <= self._cooldown:
            logger.debug("volatility_cooldown_active", symbol=symbol, pct_change=round(pct_change, 2))
            return False

        # Baseline moves before the first send suspends this cycle
        self._store.rebase_baseline(symbol, price, now)
        logger.info(
            "volatility_alert_fired",
            symbol=symbol,
            pct_change=round(pct_change, 2),
            price=price,
            previous=previous,
        )

        text = format_volatility_message(symbol, pct_change, price, previous)
        for chat_id in self._store.subscribers():
            await self._deliver(chat_id, text)
        return True

    async def _deliver(self, chat_id: int, text: str) -> None:
        try:
            await self._notifier.send(chat_id, text)
        except Exception as e:
            logger.warning("notification_failed", chat_id=chat_id, error=str(e))
        else:
            logger.debug("notification_sent", chat_id=chat_id)

    def get_status(self) -> dict:
        return {
            "running": self._running,
            "cycles": self._cycles,
            "skipped_cycles": self._skipped_cycles,
            "last_cycle_at": self._last_cycle_at,
        }
