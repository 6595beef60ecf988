"""Upstream price source adapters -- CryptoCompare, CoinCap and CoinGecko via aiohttp."""

from pricewatch.sources.base import BatchQuoteSource, HttpSource, SingleQuoteSource
from pricewatch.sources.coincap import CoinCapSource
from pricewatch.sources.coingecko import CoinGeckoSource, coingecko_id
from pricewatch.sources.cryptocompare import CryptoCompareSource

__all__ = [
    "BatchQuoteSource",
    "CoinCapSource",
    "CoinGeckoSource",
    "CryptoCompareSource",
    "HttpSource",
    "SingleQuoteSource",
    "coingecko_id",
]
