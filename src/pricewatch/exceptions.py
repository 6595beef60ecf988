"""Custom exceptions for the price watch service.

Source adapters raise the UpstreamError family; the poller and alert engine
catch them, the resolver lets everything except RateLimitedError through.
"""


class PriceWatchError(Exception):
    """Base exception for all price watch errors."""


class UpstreamError(PriceWatchError):
    """Raised when an upstream price source returns an unusable response."""

    def __init__(self, source: str, message: str, status: int | None = None) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source
        self.status = status


class SourceUnavailableError(UpstreamError):
    """Transient failure: network error, timeout, 5xx or malformed payload."""


class RateLimitedError(UpstreamError):
    """Raised when a source answers HTTP 429."""


class SymbolNotFoundError(PriceWatchError):
    """Raised when no source knows a symbol and a price is required."""


class AlertError(PriceWatchError):
    """Raised when an alert cannot be created from the given input."""


class NotificationError(PriceWatchError):
    """Raised when a notification could not be delivered."""
