"""Shared test fixtures for the price watch service."""

from typing import Any

import pytest

from pricewatch.config import AlertSettings, AppSettings, CacheSettings, FeedSettings


class FakeClock:
    """Manually advanced time source injected in place of time.time."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeResponse:
    """Minimal stand-in for aiohttp.ClientResponse used as a context manager."""

    def __init__(self, status: int = 200, payload: Any = None, text: str = "", json_error: bool = False) -> None:
        self.status = status
        self._payload = payload
        self._text = text
        self._json_error = json_error

    async def json(self, content_type: str | None = None) -> Any:
        if self._json_error:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._payload

    async def text(self) -> str:
        return self._text

    async def __aenter__(self) -> "FakeResponse":
        return self

    async def __aexit__(self, *exc: object) -> bool:
        return False


class _RaisingContext:
    def __init__(self, exc: BaseException) -> None:
        self._exc = exc

    async def __aenter__(self) -> None:
        raise self._exc

    async def __aexit__(self, *exc: object) -> bool:
        return False


class FakeSession:
    """Replays queued responses (or exceptions) for get/post calls in order."""

    def __init__(self) -> None:
        self.queued: list[FakeResponse | BaseException] = []
        self.calls: list[dict[str, Any]] = []

    def queue(self, *items: FakeResponse | BaseException) -> None:
        self.queued.extend(items)

    def _next(self, method: str, url: str, kwargs: dict[str, Any]) -> Any:
        self.calls.append({"method": method, "url": url, **kwargs})
        item = self.queued.pop(0)
        if isinstance(item, BaseException):
            return _RaisingContext(item)
        return item

    def get(self, url: str, **kwargs: Any) -> Any:
        return self._next("GET", url, kwargs)

    def post(self, url: str, **kwargs: Any) -> Any:
        return self._next("POST", url, kwargs)


@pytest.fixture
def clock() -> FakeClock:
    """Fresh fake clock."""
    return FakeClock()


@pytest.fixture
def fake_session() -> FakeSession:
    """Fake aiohttp session with an empty response queue."""
    return FakeSession()


@pytest.fixture
def mock_settings() -> AppSettings:
    """Return AppSettings with test defaults (no pacing delays, small symbol set)."""
    return AppSettings(
        log_level="DEBUG",
        feed=FeedSettings(
            tracked_symbols=["BTC", "ETH", "SOL"],
            tertiary_request_delay=0.0,
        ),
        cache=CacheSettings(),
        alerts=AlertSettings(
            alert_pacing_delay=0.0,
            volatility_pacing_delay=0.0,
        ),
    )
