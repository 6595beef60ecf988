"""Service orchestrator -- owns the pipeline and exposes the core contract.

Collaborators (HTTP API, command handlers, news or activity consumers)
reach prices and alerts only through this object:
  - get_price / get_realtime_snapshot
  - create_alert / add_alert / list_alerts / clear_alerts
  - set_auto_volatility / toggle_auto_volatility

start() launches the realtime poller and the alert engine as two
independent background loops; stop() cancels both.
"""

from __future__ import annotations

from collections.abc import Mapping

from pricewatch.alerts.engine import AlertEngine
from pricewatch.alerts.store import AlertStore
from pricewatch.exceptions import SymbolNotFoundError
from pricewatch.logging import get_logger
from pricewatch.market_data.poller import RealtimePoller
from pricewatch.market_data.realtime_table import RealtimeTable
from pricewatch.market_data.resolver import PriceResolver
from pricewatch.models import Alert, PriceRecord

logger = get_logger(__name__)


class Orchestrator:
    """Coordinates the realtime poller, resolver, alert store and engine.

    Args:
        table: Shared realtime table.
        poller: Realtime poller (sole writer of table).
        resolver: Cached price resolver.
        store: Alert state.
        engine: Alert evaluation engine.
    """

    def __init__(
        self,
        table: RealtimeTable,
        poller: RealtimePoller,
        resolver: PriceResolver,
        store: AlertStore,
        engine: AlertEngine,
    ) -> None:
        self._table = table
        self._poller = poller
        self._resolver = resolver
        self._store = store
        self._engine = engine
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the poller (first poll runs immediately) and the alert engine."""
        if self._running:
            logger.warning("orchestrator_already_running")
            return
        logger.info("orchestrator_starting", tracked_symbols=self._poller.symbols)
        self._running = True
        await self._poller.start()
        await self._engine.start()

    async def stop(self) -> None:
        """Stop both loops. In-memory state is kept until the process exits."""
        if not self._running:
            return
        logger.info("orchestrator_stopping")
        self._running = False
        await self._engine.stop()
        await self._poller.stop()
        logger.info("orchestrator_stopped")

    # ------------------------------------------------------------------
    # Prices
    # ------------------------------------------------------------------

    async def get_price(self, symbol: str, force_refresh: bool = False) -> PriceRecord | None:
        """Best available price, or None if no source has data.

        Raises:
            UpstreamError: A cold fetch failed for a non-rate-limit reason.
        """
        return await self._resolver.get_price(symbol, force_refresh=force_refresh)

    def get_realtime_snapshot(self) -> Mapping[str, PriceRecord]:
        return self._table.snapshot()

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    def create_alert(
        self, chat_id: int, symbol: str, target_price: float, original_price: float
    ) -> Alert:
        return self._store.create_alert(chat_id, symbol, target_price, original_price)

    async def add_alert(self, chat_id: int, symbol: str, target_price: float) -> Alert:
        """Create an alert using the current price as its original price.

        Raises:
            SymbolNotFoundError: No price is available for the symbol.
            UpstreamError: The price lookup failed.
        """
        record = await self._resolver.get_price(symbol)
        if record is None:
            raise SymbolNotFoundError(symbol.upper())
        return self._store.create_alert(chat_id, symbol, target_price, record.price)

    def list_alerts(self, chat_id: int) -> list[Alert]:
        return self._store.list_alerts(chat_id)

    def clear_alerts(self, chat_id: int) -> int:
        return self._store.clear_alerts(chat_id)

    def set_auto_volatility(self, chat_id: int, enabled: bool) -> None:
        self._store.set_auto_volatility(chat_id, enabled)

    def toggle_auto_volatility(self, chat_id: int) -> bool:
        return self._store.toggle_auto_volatility(chat_id)

    def auto_volatility_enabled(self, chat_id: int) -> bool:
        return self._store.auto_volatility_enabled(chat_id)

    def get_status(self) -> dict:
        """Return current service status.

        Returns:
            Dict with: running, poller, resolver, alerts, engine.
        """
        return {
            "running": self._running,
            "poller": self._poller.get_status(),
            "resolver": self._resolver.get_status(),
            "alerts": self._store.get_status(),
            "engine": self._engine.get_status(),
        }
