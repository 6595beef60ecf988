"""Shared data models for the price watch service.

Timestamps are unix seconds (float) taken from the injected clock of the
component that creates the record.
"""

from dataclasses import dataclass, field
from enum import Enum


class PriceSource(str, Enum):
    """Which upstream tier produced a price."""

    PRIMARY = "primary"  # CryptoCompare batch
    SECONDARY = "secondary"  # CoinCap batch
    TERTIARY = "tertiary"  # CoinGecko per-symbol


class AlertStatus(str, Enum):
    """Manual alert lifecycle. TRIGGERED is terminal."""

    ACTIVE = "active"
    TRIGGERED = "triggered"


class AlertDirection(str, Enum):
    """Which way the price must move to reach the target."""

    UP = "up"
    DOWN = "down"


@dataclass(frozen=True)
class PriceRecord:
    """Normalized quote from any source. Replaced wholesale, never mutated."""

    symbol: str
    price: float
    observed_at: float
    source: PriceSource
    change_24h_percent: float | None = None
    market_cap_usd: float | None = None
    volume_24h_usd: float | None = None


@dataclass(frozen=True)
class CachedPrice:
    """A cold-fetched record and the time the resolver stored it."""

    record: PriceRecord
    cached_at: float


@dataclass
class Alert:
    """A manual price alert owned by one chat."""

    alert_id: str
    chat_id: int
    symbol: str
    target_price: float
    original_price: float
    direction: AlertDirection
    created_at: float
    status: AlertStatus = AlertStatus.ACTIVE
    trigger_time: float | None = None
    trigger_price: float | None = None

    @property
    def is_active(self) -> bool:
        return self.status is AlertStatus.ACTIVE


@dataclass(frozen=True)
class VolatilityBaseline:
    """Reference point for the next auto-volatility trigger of a symbol.

    Seeding counts as an alert at the seed price, so the cooldown also runs
    from first sight.
    """

    last_alert_price: float
    last_alert_at: float


@dataclass(frozen=True)
class MarketContext:
    """Best-effort market enrichment for a triggered alert."""

    market_cap: float | None = None
    volume_24h: float | None = None
    market_cap_rank: int | None = None
    price_change_24h: float | None = None
    price_change_7d: float | None = None
    price_change_30d: float | None = None


@dataclass
class AlertAnalysis:
    """Context attached to a triggered alert notification."""

    direction: AlertDirection
    price_change: float = 0.0
    percent_change: float = 0.0
    time_to_trigger: float = 0.0  # seconds
    price_velocity: float = 0.0  # USD per hour
    percent_velocity: float = 0.0  # percent per hour
    market_context: MarketContext | None = None
    unusual_activity: list[str] = field(default_factory=list)
    sentiment: str | None = None  # "bullish" / "bearish"
