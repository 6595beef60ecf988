"""Shared in-memory table of the latest polled price per tracked symbol.

The RealtimePoller is the only writer; the resolver and the auto-volatility
evaluator only read. Writes replace whole PriceRecord objects and never
await, so readers on the event loop always see a complete record.
"""

from collections.abc import Mapping
from types import MappingProxyType

from pricewatch.models import PriceRecord


class RealtimeTable:
    """Latest PriceRecord per upper-case symbol, last writer wins."""

    def __init__(self) -> None:
        self._records: dict[str, PriceRecord] = {}

    def publish(self, record: PriceRecord) -> None:
        """Store a record, replacing any prior entry for its symbol."""
        self._records[record.symbol.upper()] = record

    def get(self, symbol: str) -> PriceRecord | None:
        """Return the latest record for a symbol, or None if never polled."""
        return self._records.get(symbol.upper())

    def snapshot(self) -> Mapping[str, PriceRecord]:
        """Return a read-only copy safe to iterate across await points."""
        return MappingProxyType(dict(self._records))

    def __contains__(self, symbol: object) -> bool:
        return isinstance(symbol, str) and symbol.upper() in self._records

    def __len__(self) -> int:
        return len(self._records)
