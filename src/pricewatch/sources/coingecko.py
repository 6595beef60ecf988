"""Tertiary single-symbol quote source and market context: CoinGecko.

Symbols are translated to CoinGecko coin IDs through the configured map,
falling back to the lower-cased symbol for unmapped coins.
"""

import time
from collections.abc import Callable

import aiohttp

from pricewatch.exceptions import SourceUnavailableError, UpstreamError
from pricewatch.logging import get_logger
from pricewatch.models import MarketContext, PriceRecord, PriceSource
from pricewatch.sources.base import HttpSource, SingleQuoteSource, to_float

logger = get_logger(__name__)


def coingecko_id(symbol: str, symbol_map: dict[str, str]) -> str:
    """Map a ticker symbol to its CoinGecko coin ID."""
    return symbol_map.get(symbol.upper(), symbol.lower())


class CoinGeckoSource(HttpSource, SingleQuoteSource):
    """CoinGecko simple/price lookups plus the coins/{id} market snapshot.

    Args:
        session: Shared aiohttp session.
        symbol_map: Upper-case symbol -> CoinGecko coin ID.
        base_url: API root (switch to the pro root together with api_key).
        timeout: Total timeout for price requests, seconds.
        context_timeout: Total timeout for market context requests, seconds.
        api_key: Optional demo API key for higher rate limits.
        clock: Time source for observed_at stamps.
    """

    name = "coingecko"

    def __init__(
        self,
        session: aiohttp.ClientSession,
        symbol_map: dict[str, str],
        base_url: str = "https://api.coingecko.com/api/v3",
        timeout: float = 6.0,
        context_timeout: float = 5.0,
        api_key: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(session, timeout, clock)
        self._symbol_map = {k.upper(): v for k, v in symbol_map.items()}
        self._base_url = base_url.rstrip("/")
        self._context_timeout = aiohttp.ClientTimeout(total=context_timeout)
        self._headers = {"Accept": "application/json"}
        if api_key:
            self._headers["x-cg-demo-api-key"] = api_key

    async def fetch_quote(self, symbol: str) -> PriceRecord | None:
        coin_id = coingecko_id(symbol, self._symbol_map)
        data = await self._get_json(
            f"{self._base_url}/simple/price",
            params={
                "ids": coin_id,
                "vs_currencies": "usd",
                "include_24hr_change": "true",
                "include_market_cap": "true",
                "include_24hr_vol": "true",
            },
            headers=self._headers,
        )

        if not isinstance(data, dict):
            raise SourceUnavailableError(self.name, "malformed payload")
        quote = data.get(coin_id)
        price = to_float(quote.get("usd")) if isinstance(quote, dict) else None
        if price is None:
            logger.info("coingecko_symbol_unknown", symbol=symbol, coin_id=coin_id)
            return None

        return PriceRecord(
            symbol=symbol.upper(),
            price=price,
            observed_at=self._clock(),
            source=PriceSource.TERTIARY,
            change_24h_percent=to_float(quote.get("usd_24h_change")),
            market_cap_usd=to_float(quote.get("usd_market_cap")),
            volume_24h_usd=to_float(quote.get("usd_24h_vol")),
        )

    async def market_context(self, symbol: str) -> MarketContext | None:
        """Best-effort market snapshot. Returns None on any upstream failure."""
        coin_id = coingecko_id(symbol, self._symbol_map)
        try:
            data = await self._get_json(
                f"{self._base_url}/coins/{coin_id}",
                params={
                    "localization": "false",
                    "tickers": "false",
                    "community_data": "false",
                    "developer_data": "false",
                },
                headers=self._headers,
                timeout=self._context_timeout,
            )
        except UpstreamError as e:
            logger.info("market_context_unavailable", symbol=symbol, error=str(e))
            return None

        if not isinstance(data, dict):
            return None
        market = data.get("market_data") or {}
        rank = data.get("market_cap_rank")
        return MarketContext(
            market_cap=to_float((market.get("market_cap") or {}).get("usd")),
            volume_24h=to_float((market.get("total_volume") or {}).get("usd")),
            market_cap_rank=int(rank) if isinstance(rank, (int, float)) else None,
            price_change_24h=to_float(market.get("price_change_percentage_24h")),
            price_change_7d=to_float(market.get("price_change_percentage_7d")),
            price_change_30d=to_float(market.get("price_change_percentage_30d")),
        )
