"""Best-effort enrichment attached to a triggered alert."""

from collections.abc import Awaitable, Callable

from pricewatch.logging import get_logger
from pricewatch.models import Alert, AlertAnalysis, MarketContext, PriceRecord

logger = get_logger(__name__)

MarketContextLookup = Callable[[str], Awaitable[MarketContext | None]]

# 24h move (percent) beyond which sentiment is called bullish/bearish
_SENTIMENT_THRESHOLD = 5.0
# Current 24h volume above this multiple of the reference volume is flagged
_VOLUME_SPIKE_RATIO = 2.0


async def build_alert_analysis(
    alert: Alert,
    record: PriceRecord,
    now: float,
    market_context: MarketContextLookup | None = None,
) -> AlertAnalysis:
    """Compute move statistics and fetch market context for an alert.

    A failing market context lookup leaves the context empty; it never
    prevents the analysis from being returned.
    """
    price_change = record.price - alert.original_price
    percent_change = price_change / alert.original_price * 100
    elapsed = max(now - alert.created_at, 0.0)
    hours = elapsed / 3600

    analysis = AlertAnalysis(
        direction=alert.direction,
        price_change=price_change,
        percent_change=percent_change,
        time_to_trigger=elapsed,
        price_velocity=price_change / hours if hours > 0 else 0.0,
        percent_velocity=percent_change / hours if hours > 0 else 0.0,
    )

    if market_context is None:
        return analysis

    try:
        context = await market_context(alert.symbol)
    except Exception as e:
        logger.warning("market_context_failed", symbol=alert.symbol, error=str(e))
        return analysis
    if context is None:
        return analysis

    analysis.market_context = context

    reference_volume = context.volume_24h
    current_volume = record.volume_24h_usd or reference_volume
    if reference_volume and current_volume and current_volume > reference_volume * _VOLUME_SPIKE_RATIO:
        analysis.unusual_activity.append(
            f"Unusual volume spike: {current_volume:,.0f} ({_VOLUME_SPIKE_RATIO:g}x normal)"
        )

    if context.price_change_24h is not None:
        if context.price_change_24h > _SENTIMENT_THRESHOLD:
            analysis.sentiment = "bullish"
        elif context.price_change_24h < -_SENTIMENT_THRESHOLD:
            analysis.sentiment = "bearish"

    return analysis
