"""Abstract price source interfaces and the shared aiohttp request helper.

Resolver and poller code depends only on BatchQuoteSource and
SingleQuoteSource, keeping provider-specific payload parsing isolated in
the concrete adapters.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

import aiohttp

from pricewatch.exceptions import RateLimitedError, SourceUnavailableError
from pricewatch.models import PriceRecord


def to_float(value: Any) -> float | None:
    """Parse a numeric field that providers send as number, string or null."""
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class HttpSource:
    """Base for adapters that issue GET requests on a shared ClientSession.

    Translates transport outcomes into the UpstreamError family:
    HTTP 429 -> RateLimitedError, any other non-200, timeout, connection
    error or undecodable body -> SourceUnavailableError.
    """

    name = "http"

    def __init__(
        self,
        session: aiohttp.ClientSession,
        timeout: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._session = session
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._clock = clock

    async def _get_json(
        self,
        url: str,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
        timeout: aiohttp.ClientTimeout | None = None,
    ) -> Any:
        try:
            async with self._session.get(
                url,
                params=params,
                headers=headers,
                timeout=timeout or self._timeout,
            ) as resp:
                if resp.status == 429:
                    raise RateLimitedError(self.name, "rate limited", status=429)
                if resp.status != 200:
                    raise SourceUnavailableError(
                        self.name, f"HTTP {resp.status}", status=resp.status
                    )
                try:
                    return await resp.json(content_type=None)
                except ValueError as e:
                    raise SourceUnavailableError(self.name, f"invalid JSON: {e}") from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SourceUnavailableError(
                self.name, f"{type(e).__name__}: {e}"
            ) from e


class BatchQuoteSource(ABC):
    """A source that returns quotes for many symbols in one request."""

    name: str

    @abstractmethod
    async def fetch_quotes(self, symbols: list[str]) -> dict[str, PriceRecord]:
        """Return records keyed by upper-case symbol.

        Raises:
            UpstreamError: The request failed or produced no usable quotes.
        """
        ...


class SingleQuoteSource(ABC):
    """A source queried one symbol at a time."""

    name: str

    @abstractmethod
    async def fetch_quote(self, symbol: str) -> PriceRecord | None:
        """Return the record for symbol, or None if the source does not know it.

        Raises:
            RateLimitedError: The source answered HTTP 429.
            UpstreamError: Any other failed request.
        """
        ...
