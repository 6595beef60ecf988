"""Primary batch quote source: CryptoCompare pricemultifull."""

import time
from collections.abc import Callable

import aiohttp

from pricewatch.exceptions import SourceUnavailableError
from pricewatch.logging import get_logger
from pricewatch.models import PriceRecord, PriceSource
from pricewatch.sources.base import BatchQuoteSource, HttpSource, to_float

logger = get_logger(__name__)


class CryptoCompareSource(HttpSource, BatchQuoteSource):
    """Fetches USD quotes for all tracked symbols in a single request."""

    name = "cryptocompare"

    def __init__(
        self,
        session: aiohttp.ClientSession,
        url: str = "https://min-api.cryptocompare.com/data/pricemultifull",
        timeout: float = 8.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(session, timeout, clock)
        self._url = url

    async def fetch_quotes(self, symbols: list[str]) -> dict[str, PriceRecord]:
        data = await self._get_json(
            self._url,
            params={"fsyms": ",".join(symbols), "tsyms": "USD"},
        )

        raw = data.get("RAW") if isinstance(data, dict) else None
        if not raw:
            # Errors come back as 200 with {"Response": "Error", "Message": ...}
            message = data.get("Message", "empty payload") if isinstance(data, dict) else "empty payload"
            raise SourceUnavailableError(self.name, str(message))

        now = self._clock()
        records: dict[str, PriceRecord] = {}
        for symbol, quotes in raw.items():
            usd = quotes.get("USD") if isinstance(quotes, dict) else None
            price = to_float(usd.get("PRICE")) if usd else None
            if price is None:
                logger.debug("cryptocompare_quote_skipped", symbol=symbol)
                continue
            records[symbol.upper()] = PriceRecord(
                symbol=symbol.upper(),
                price=price,
                observed_at=now,
                source=PriceSource.PRIMARY,
                change_24h_percent=to_float(usd.get("CHANGEPCT24HOUR")),
                market_cap_usd=to_float(usd.get("MKTCAP")),
                volume_24h_usd=to_float(usd.get("TOTALVOLUME24HTO")),
            )

        if not records:
            raise SourceUnavailableError(self.name, "no usable quotes")
        return records
