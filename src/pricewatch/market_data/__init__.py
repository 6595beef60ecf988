"""Market data layer -- realtime polling, the shared realtime table, and cached price resolution."""

from pricewatch.market_data.poller import RealtimePoller
from pricewatch.market_data.realtime_table import RealtimeTable
from pricewatch.market_data.resolver import PriceResolver

__all__ = ["PriceResolver", "RealtimePoller", "RealtimeTable"]
