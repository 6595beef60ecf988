"""Alert layer -- alert state, evaluation engine, enrichment and message text."""

from pricewatch.alerts.engine import AlertEngine
from pricewatch.alerts.store import AlertStore, crosses_target, direction_for

__all__ = ["AlertEngine", "AlertStore", "crosses_target", "direction_for"]
