"""In-memory alert state: manual alerts, volatility baselines, subscriptions.

Nothing here survives a restart. The store is the single owner of these
maps; the HTTP API creates and clears alerts, the AlertEngine is the only
caller of mark_triggered and the baseline writers.
"""

import time
import uuid
from collections.abc import Callable

from pricewatch.exceptions import AlertError
from pricewatch.logging import get_logger
from pricewatch.models import Alert, AlertDirection, AlertStatus, VolatilityBaseline

logger = get_logger(__name__)


def direction_for(target_price: float, original_price: float) -> AlertDirection:
    """UP when the target is above the creation price, DOWN otherwise."""
    return AlertDirection.UP if target_price > original_price else AlertDirection.DOWN


def crosses_target(alert: Alert, current_price: float) -> bool:
    """Apply the crossing rule using the direction fixed at creation."""
    if alert.direction is AlertDirection.UP:
        return current_price >= alert.target_price
    return current_price <= alert.target_price


class AlertStore:
    """Per-chat alert lists, per-symbol baselines and per-chat opt-in flags."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._alerts: dict[int, list[Alert]] = {}
        self._auto_volatility: dict[int, bool] = {}
        self._baselines: dict[str, VolatilityBaseline] = {}

    # ------------------------------------------------------------------
    # Manual alerts
    # ------------------------------------------------------------------

    def create_alert(
        self,
        chat_id: int,
        symbol: str,
        target_price: float,
        original_price: float,
    ) -> Alert:
        """Register an active alert. Direction is computed here, once.

        Raises:
            AlertError: If either price is not a positive number.
        """
        if not target_price > 0:
            raise AlertError(f"target price must be positive, got {target_price}")
        if not original_price > 0:
            raise AlertError(f"original price must be positive, got {original_price}")

        symbol = symbol.upper()
        alert = Alert(
            alert_id=uuid.uuid4().hex[:12],
            chat_id=chat_id,
            symbol=symbol,
            target_price=target_price,
            original_price=original_price,
            direction=direction_for(target_price, original_price),
            created_at=self._clock(),
        )
        self._alerts.setdefault(chat_id, []).append(alert)
        logger.info(
            "alert_created",
            chat_id=chat_id,
            alert_id=alert.alert_id,
            symbol=symbol,
            target=target_price,
            original=original_price,
            direction=alert.direction.value,
        )
        return alert

    def list_alerts(self, chat_id: int) -> list[Alert]:
        """All alerts of a chat, active and triggered, in creation order."""
        return list(self._alerts.get(chat_id, []))

    def active_alerts(self, chat_id: int) -> list[Alert]:
        return [a for a in self._alerts.get(chat_id, []) if a.is_active]

    def chats_with_active_alerts(self) -> list[int]:
        return [
            chat_id
            for chat_id, alerts in self._alerts.items()
            if any(a.is_active for a in alerts)
        ]

    def clear_alerts(self, chat_id: int) -> int:
        """Delete every alert of a chat. Returns how many were removed."""
        removed = self._alerts.pop(chat_id, [])
        if removed:
            logger.info("alerts_cleared", chat_id=chat_id, count=len(removed))
        return len(removed)

    def mark_triggered(self, alert: Alert, price: float, at: float) -> bool:
        """Move an alert from ACTIVE to TRIGGERED.

        Returns False, changing nothing, if the alert is no longer active or
        was cleared from the store in the meantime.
        """
        if not alert.is_active:
            return False
        if not any(a is alert for a in self._alerts.get(alert.chat_id, [])):
            return False
        alert.status = AlertStatus.TRIGGERED
        alert.trigger_time = at
        alert.trigger_price = price
        return True

    # ------------------------------------------------------------------
    # Auto-volatility subscriptions
    # ------------------------------------------------------------------

    def set_auto_volatility(self, chat_id: int, enabled: bool) -> None:
        self._auto_volatility[chat_id] = enabled
        logger.info("auto_volatility_updated", chat_id=chat_id, enabled=enabled)

    def toggle_auto_volatility(self, chat_id: int) -> bool:
        """Flip the opt-in flag and return the new value."""
        enabled = not self._auto_volatility.get(chat_id, False)
        self.set_auto_volatility(chat_id, enabled)
        return enabled

    def auto_volatility_enabled(self, chat_id: int) -> bool:
        return self._auto_volatility.get(chat_id, False)

    def subscribers(self) -> list[int]:
        return [chat_id for chat_id, enabled in self._auto_volatility.items() if enabled]

    # ------------------------------------------------------------------
    # Volatility baselines
    # ------------------------------------------------------------------

    def baseline(self, symbol: str) -> VolatilityBaseline | None:
        return self._baselines.get(symbol.upper())

    def seed_baseline(self, symbol: str, price: float, at: float) -> VolatilityBaseline:
        """First observation of a symbol: reference price and time, no alert sent."""
        baseline = VolatilityBaseline(last_alert_price=price, last_alert_at=at)
        self._baselines[symbol.upper()] = baseline
        return baseline

    def rebase_baseline(self, symbol: str, price: float, at: float) -> VolatilityBaseline:
        """Replace the baseline with the price and time of the latest firing."""
        baseline = VolatilityBaseline(last_alert_price=price, last_alert_at=at)
        self._baselines[symbol.upper()] = baseline
        return baseline

    def get_status(self) -> dict:
        active = sum(len(self.active_alerts(c)) for c in self._alerts)
        total = sum(len(alerts) for alerts in self._alerts.values())
        return {
            "chats": len(self._alerts),
            "active_alerts": active,
            "triggered_alerts": total - active,
            "auto_volatility_subscribers": len(self.subscribers()),
            "baselines": len(self._baselines),
        }
