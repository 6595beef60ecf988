"""Secondary batch quote source: CoinCap v2 assets."""

import time
from collections.abc import Callable

import aiohttp

from pricewatch.exceptions import SourceUnavailableError
from pricewatch.logging import get_logger
from pricewatch.models import PriceRecord, PriceSource
from pricewatch.sources.base import BatchQuoteSource, HttpSource, to_float

logger = get_logger(__name__)


class CoinCapSource(HttpSource, BatchQuoteSource):
    """Fetches tracked assets by CoinCap ID.

    Symbols without a CoinCap ID mapping are silently left out of the request.
    """

    name = "coincap"

    def __init__(
        self,
        session: aiohttp.ClientSession,
        asset_ids: dict[str, str],
        url: str = "https://api.coincap.io/v2/assets",
        timeout: float = 8.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(session, timeout, clock)
        self._asset_ids = {k.upper(): v for k, v in asset_ids.items()}
        self._url = url

    async def fetch_quotes(self, symbols: list[str]) -> dict[str, PriceRecord]:
        id_to_symbol = {
            self._asset_ids[s.upper()]: s.upper()
            for s in symbols
            if s.upper() in self._asset_ids
        }
        if not id_to_symbol:
            raise SourceUnavailableError(self.name, "no mapped symbols")

        data = await self._get_json(
            self._url, params={"ids": ",".join(id_to_symbol)}
        )
        assets = data.get("data") if isinstance(data, dict) else None
        if not assets:
            raise SourceUnavailableError(self.name, "empty payload")

        now = self._clock()
        records: dict[str, PriceRecord] = {}
        for asset in assets:
            symbol = id_to_symbol.get(asset.get("id"))
            price = to_float(asset.get("priceUsd"))
            if symbol is None or price is None:
                continue
            records[symbol] = PriceRecord(
                symbol=symbol,
                price=price,
                observed_at=now,
                source=PriceSource.SECONDARY,
                change_24h_percent=to_float(asset.get("changePercent24Hr")),
                market_cap_usd=to_float(asset.get("marketCapUsd")),
                volume_24h_usd=to_float(asset.get("volumeUsd24Hr")),
            )

        if not records:
            raise SourceUnavailableError(self.name, "no usable quotes")
        return records
