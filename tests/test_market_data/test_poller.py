"""Tests for RealtimePoller and RealtimeTable.

All tests use mocked sources to avoid real API calls.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from pricewatch.exceptions import RateLimitedError, SourceUnavailableError
from pricewatch.market_data.poller import RealtimePoller
from pricewatch.market_data.realtime_table import RealtimeTable
from pricewatch.models import PriceRecord, PriceSource

SYMBOLS = ["BTC", "ETH", "SOL"]


def _make_record(
    symbol: str = "BTC",
    price: float = 50000.0,
    observed_at: float = 1000.0,
    source: PriceSource = PriceSource.PRIMARY,
) -> PriceRecord:
    return PriceRecord(symbol=symbol, price=price, observed_at=observed_at, source=source)


def _batch(source: PriceSource, **prices: float) -> dict[str, PriceRecord]:
    return {s: _make_record(s, p, source=source) for s, p in prices.items()}


def _mock_source(name: str) -> AsyncMock:
    source = AsyncMock()
    source.name = name
    return source


@pytest.fixture
def table() -> RealtimeTable:
    return RealtimeTable()


@pytest.fixture
def primary() -> AsyncMock:
    source = _mock_source("cryptocompare")
    source.fetch_quotes.return_value = _batch(PriceSource.PRIMARY, BTC=50000.0, ETH=3000.0, SOL=100.0)
    return source


@pytest.fixture
def secondary() -> AsyncMock:
    source = _mock_source("coincap")
    source.fetch_quotes.return_value = _batch(PriceSource.SECONDARY, BTC=50100.0, ETH=3010.0)
    return source


@pytest.fixture
def tertiary() -> AsyncMock:
    source = _mock_source("coingecko")
    source.fetch_quote.side_effect = lambda s: _make_record(s, 42.0, source=PriceSource.TERTIARY)
    return source


@pytest.fixture
def poller(
    table: RealtimeTable, primary: AsyncMock, secondary: AsyncMock, tertiary: AsyncMock
) -> RealtimePoller:
    return RealtimePoller(
        table, primary, secondary, tertiary, symbols=SYMBOLS, poll_interval=0.01, tertiary_delay=0.0
    )


# ---------------------------------------------------------------------------
# RealtimeTable
# ---------------------------------------------------------------------------


class TestRealtimeTable:
    def test_publish_and_get_case_insensitive(self, table: RealtimeTable) -> None:
        table.publish(_make_record("BTC"))
        assert table.get("btc") is not None
        assert "btc" in table
        assert len(table) == 1

    def test_missing_symbol(self, table: RealtimeTable) -> None:
        assert table.get("NONEXISTENT") is None

    def test_last_writer_wins(self, table: RealtimeTable) -> None:
        table.publish(_make_record("BTC", price=1.0, observed_at=2000.0))
        table.publish(_make_record("BTC", price=2.0, observed_at=1000.0))
        assert table.get("BTC").price == 2.0  # type: ignore[union-attr]

    def test_snapshot_is_read_only_copy(self, table: RealtimeTable) -> None:
        table.publish(_make_record("BTC"))
        snapshot = table.snapshot()
        table.publish(_make_record("ETH"))

        assert list(snapshot) == ["BTC"]
        with pytest.raises(TypeError):
            snapshot["SOL"] = _make_record("SOL")  # type: ignore[index]


# ---------------------------------------------------------------------------
# RealtimePoller
# ---------------------------------------------------------------------------


class TestPollOnce:
    @pytest.mark.asyncio
    async def test_primary_success_short_circuits(
        self,
        poller: RealtimePoller,
        table: RealtimeTable,
        secondary: AsyncMock,
        tertiary: AsyncMock,
    ) -> None:
        result = await poller.poll_once()

        assert result is PriceSource.PRIMARY
        assert len(table) == 3
        assert table.get("BTC").source is PriceSource.PRIMARY  # type: ignore[union-attr]
        secondary.fetch_quotes.assert_not_called()
        tertiary.fetch_quote.assert_not_called()

    @pytest.mark.asyncio
    async def test_falls_back_to_secondary(
        self,
        poller: RealtimePoller,
        table: RealtimeTable,
        primary: AsyncMock,
        tertiary: AsyncMock,
    ) -> None:
        primary.fetch_quotes.side_effect = SourceUnavailableError("cryptocompare", "HTTP 500", status=500)

        result = await poller.poll_once()

        assert result is PriceSource.SECONDARY
        assert table.get("BTC").price == 50100.0  # type: ignore[union-attr]
        assert table.get("SOL") is None
        tertiary.fetch_quote.assert_not_called()

    @pytest.mark.asyncio
    async def test_falls_back_to_tertiary_per_symbol(
        self,
        poller: RealtimePoller,
        table: RealtimeTable,
        primary: AsyncMock,
        secondary: AsyncMock,
        tertiary: AsyncMock,
    ) -> None:
        primary.fetch_quotes.side_effect = SourceUnavailableError("cryptocompare", "empty payload")
        secondary.fetch_quotes.side_effect = RuntimeError("unexpected")

        result = await poller.poll_once()

        assert result is PriceSource.TERTIARY
        assert tertiary.fetch_quote.await_count == 3
        assert all(table.get(s).source is PriceSource.TERTIARY for s in SYMBOLS)  # type: ignore[union-attr]

    @pytest.mark.asyncio
    async def test_tertiary_updates_partial_subset(
        self,
        poller: RealtimePoller,
        table: RealtimeTable,
        primary: AsyncMock,
        secondary: AsyncMock,
        tertiary: AsyncMock,
    ) -> None:
        primary.fetch_quotes.side_effect = SourceUnavailableError("cryptocompare", "timeout")
        secondary.fetch_quotes.side_effect = SourceUnavailableError("coincap", "timeout")

        def _quote(symbol: str) -> PriceRecord | None:
            if symbol == "ETH":
                raise RateLimitedError("coingecko", "rate limited", status=429)
            if symbol == "SOL":
                return None
            return _make_record(symbol, 49000.0, source=PriceSource.TERTIARY)

        tertiary.fetch_quote.side_effect = _quote

        result = await poller.poll_once()

        assert result is PriceSource.TERTIARY
        assert list(table.snapshot()) == ["BTC"]

    @pytest.mark.asyncio
    async def test_total_failure_never_raises(
        self,
        poller: RealtimePoller,
        table: RealtimeTable,
        primary: AsyncMock,
        secondary: AsyncMock,
        tertiary: AsyncMock,
    ) -> None:
        primary.fetch_quotes.side_effect = SourceUnavailableError("cryptocompare", "down")
        secondary.fetch_quotes.side_effect = SourceUnavailableError("coincap", "down")
        tertiary.fetch_quote.side_effect = SourceUnavailableError("coingecko", "down")

        result = await poller.poll_once()

        assert result is None
        assert len(table) == 0

    @pytest.mark.asyncio
    async def test_tertiary_requests_are_spaced(
        self,
        table: RealtimeTable,
        primary: AsyncMock,
        secondary: AsyncMock,
        tertiary: AsyncMock,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        primary.fetch_quotes.side_effect = SourceUnavailableError("cryptocompare", "down")
        secondary.fetch_quotes.side_effect = SourceUnavailableError("coincap", "down")
        sleep = AsyncMock()
        monkeypatch.setattr("pricewatch.market_data.poller.asyncio.sleep", sleep)
        poller = RealtimePoller(table, primary, secondary, tertiary, symbols=SYMBOLS, tertiary_delay=0.5)

        await poller.poll_once()

        assert sleep.await_count == len(SYMBOLS) - 1
        sleep.assert_awaited_with(0.5)

    @pytest.mark.asyncio
    async def test_overwrites_existing_entries(
        self, poller: RealtimePoller, table: RealtimeTable, primary: AsyncMock
    ) -> None:
        await poller.poll_once()
        primary.fetch_quotes.return_value = _batch(PriceSource.PRIMARY, BTC=51000.0)

        await poller.poll_once()

        assert table.get("BTC").price == 51000.0  # type: ignore[union-attr]
        assert table.get("ETH").price == 3000.0  # type: ignore[union-attr]

    @pytest.mark.asyncio
    async def test_overlapping_cycle_is_skipped(
        self, poller: RealtimePoller, primary: AsyncMock
    ) -> None:
        release = asyncio.Event()

        async def _slow(symbols: list[str]) -> dict[str, PriceRecord]:
            await release.wait()
            return _batch(PriceSource.PRIMARY, BTC=50000.0)

        primary.fetch_quotes.side_effect = _slow

        first = asyncio.create_task(poller.poll_once())
        await asyncio.sleep(0)
        second = await poller.poll_once()
        release.set()

        assert second is None
        assert await first is PriceSource.PRIMARY
        assert primary.fetch_quotes.await_count == 1
        assert poller.get_status()["skipped_cycles"] == 1


class TestPollerLifecycle:
    @pytest.mark.asyncio
    async def test_start_polls_immediately_and_stop(
        self, poller: RealtimePoller, table: RealtimeTable, primary: AsyncMock
    ) -> None:
        await poller.start()
        await asyncio.sleep(0.05)
        await poller.stop()

        assert primary.fetch_quotes.await_count >= 1
        assert len(table) == 3
        status = poller.get_status()
        assert status["running"] is False
        assert status["last_source"] == "primary"

    @pytest.mark.asyncio
    async def test_double_start_is_noop(self, poller: RealtimePoller) -> None:
        await poller.start()
        task = poller._task
        await poller.start()
        assert poller._task is task
        await poller.stop()
