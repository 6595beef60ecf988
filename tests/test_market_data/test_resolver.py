"""Tests for PriceResolver -- realtime fast path, backoff gate, cache TTL, cold fetch."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from pricewatch.exceptions import RateLimitedError, SourceUnavailableError
from pricewatch.market_data.realtime_table import RealtimeTable
from pricewatch.market_data.resolver import PriceResolver
from pricewatch.models import PriceRecord, PriceSource

from conftest import FakeClock


def _make_record(
    symbol: str = "BTC",
    price: float = 50000.0,
    observed_at: float = 0.0,
    source: PriceSource = PriceSource.TERTIARY,
) -> PriceRecord:
    return PriceRecord(symbol=symbol, price=price, observed_at=observed_at, source=source)


def _rate_limited() -> RateLimitedError:
    return RateLimitedError("coingecko", "rate limited", status=429)


@pytest.fixture
def table() -> RealtimeTable:
    return RealtimeTable()


@pytest.fixture
def source() -> AsyncMock:
    source = AsyncMock()
    source.name = "coingecko"
    source.fetch_quote.side_effect = lambda s: _make_record(s.upper(), 50000.0)
    return source


@pytest.fixture
def resolver(table: RealtimeTable, source: AsyncMock, clock: FakeClock) -> PriceResolver:
    return PriceResolver(
        table,
        source,
        freshness_window=15.0,
        cache_duration=120.0,
        backoff_duration=120.0,
        clock=clock,
    )


class TestRealtimeFastPath:
    @pytest.mark.asyncio
    async def test_fresh_realtime_skips_fetch(
        self, resolver: PriceResolver, table: RealtimeTable, source: AsyncMock, clock: FakeClock
    ) -> None:
        record = _make_record(observed_at=clock.now - 5, source=PriceSource.PRIMARY)
        table.publish(record)

        assert await resolver.get_price("btc") is record
        source.fetch_quote.assert_not_called()

    @pytest.mark.asyncio
    async def test_fresh_realtime_wins_over_force_refresh_and_cache(
        self, resolver: PriceResolver, table: RealtimeTable, source: AsyncMock, clock: FakeClock
    ) -> None:
        await resolver.get_price("BTC")  # warm the cache
        source.fetch_quote.reset_mock()
        record = _make_record(price=51000.0, observed_at=clock.now, source=PriceSource.PRIMARY)
        table.publish(record)

        assert await resolver.get_price("BTC", force_refresh=True) is record
        source.fetch_quote.assert_not_called()

    @pytest.mark.asyncio
    async def test_realtime_at_window_edge_is_not_fresh(
        self, resolver: PriceResolver, table: RealtimeTable, source: AsyncMock, clock: FakeClock
    ) -> None:
        table.publish(_make_record(observed_at=clock.now - 15.0, source=PriceSource.PRIMARY))

        record = await resolver.get_price("BTC")

        source.fetch_quote.assert_awaited_once()
        assert record is not None and record.source is PriceSource.TERTIARY


class TestCacheTTL:
    @pytest.mark.asyncio
    async def test_cache_scenario(
        self, resolver: PriceResolver, source: AsyncMock, clock: FakeClock
    ) -> None:
        t0 = clock.now

        first = await resolver.get_price("BTC")
        assert first is not None and first.price == 50000.0
        assert source.fetch_quote.await_count == 1

        clock.now = t0 + 10.0
        cached = await resolver.get_price("BTC")
        assert cached is first
        assert source.fetch_quote.await_count == 1

        clock.now = t0 + 130.0
        await resolver.get_price("BTC")
        assert source.fetch_quote.await_count == 2

    @pytest.mark.asyncio
    async def test_served_until_just_before_ttl_and_refetched_at_ttl(
        self, resolver: PriceResolver, source: AsyncMock, clock: FakeClock
    ) -> None:
        t0 = clock.now
        await resolver.get_price("BTC")

        clock.now = t0 + 119.999
        await resolver.get_price("BTC")
        assert source.fetch_quote.await_count == 1

        clock.now = t0 + 120.0
        await resolver.get_price("BTC")
        assert source.fetch_quote.await_count == 2
        entry = resolver.cached("BTC")
        assert entry is not None and entry.cached_at == t0 + 120.0

    @pytest.mark.asyncio
    async def test_force_refresh_bypasses_warm_cache(
        self, resolver: PriceResolver, source: AsyncMock
    ) -> None:
        await resolver.get_price("BTC")
        await resolver.get_price("BTC", force_refresh=True)
        assert source.fetch_quote.await_count == 2

    @pytest.mark.asyncio
    async def test_cache_key_is_case_insensitive(
        self, resolver: PriceResolver, source: AsyncMock
    ) -> None:
        await resolver.get_price("btc")
        await resolver.get_price("BTC")
        assert source.fetch_quote.await_count == 1


class TestBackoffGate:
    @pytest.mark.asyncio
    async def test_rate_limit_arms_gate_for_all_symbols(
        self, resolver: PriceResolver, source: AsyncMock, clock: FakeClock
    ) -> None:
        source.fetch_quote.side_effect = _rate_limited()

        assert await resolver.get_price("BTC") is None
        assert resolver.last_rate_limit_at == clock.now
        assert resolver.backoff_active()

        clock.advance(60.0)
        assert await resolver.get_price("ETH") is None
        assert source.fetch_quote.await_count == 1

    @pytest.mark.asyncio
    async def test_gate_serves_stale_cache(
        self, resolver: PriceResolver, source: AsyncMock, clock: FakeClock
    ) -> None:
        cached = await resolver.get_price("ETH")
        clock.advance(500.0)  # far past cache TTL
        source.fetch_quote.side_effect = _rate_limited()
        await resolver.get_price("BTC")

        assert await resolver.get_price("ETH") is cached
        assert source.fetch_quote.await_count == 2

    @pytest.mark.asyncio
    async def test_gate_prefers_cache_over_stale_realtime(
        self, resolver: PriceResolver, table: RealtimeTable, source: AsyncMock, clock: FakeClock
    ) -> None:
        cached = await resolver.get_price("BTC")
        table.publish(_make_record(price=1.0, observed_at=clock.now - 300, source=PriceSource.PRIMARY))
        clock.advance(200.0)
        source.fetch_quote.side_effect = _rate_limited()

        assert await resolver.get_price("BTC") is cached

    @pytest.mark.asyncio
    async def test_gate_serves_stale_realtime_without_cache(
        self, resolver: PriceResolver, table: RealtimeTable, source: AsyncMock, clock: FakeClock
    ) -> None:
        stale = _make_record("SOL", 99.0, observed_at=clock.now - 600, source=PriceSource.SECONDARY)
        table.publish(stale)
        source.fetch_quote.side_effect = _rate_limited()

        assert await resolver.get_price("SOL") is stale
        clock.advance(10.0)
        assert await resolver.get_price("SOL", force_refresh=True) is stale
        assert source.fetch_quote.await_count == 1

    @pytest.mark.asyncio
    async def test_gate_expires_after_backoff_duration(
        self, resolver: PriceResolver, source: AsyncMock, clock: FakeClock
    ) -> None:
        source.fetch_quote.side_effect = _rate_limited()
        await resolver.get_price("BTC")

        clock.advance(119.0)
        assert resolver.backoff_active()
        clock.advance(1.0)
        assert not resolver.backoff_active()

        source.fetch_quote.side_effect = lambda s: _make_record(s.upper(), 48000.0)
        record = await resolver.get_price("ETH")
        assert record is not None and record.price == 48000.0
        assert source.fetch_quote.await_count == 2

    @pytest.mark.asyncio
    async def test_fresh_realtime_still_served_during_backoff(
        self, resolver: PriceResolver, table: RealtimeTable, source: AsyncMock, clock: FakeClock
    ) -> None:
        source.fetch_quote.side_effect = _rate_limited()
        await resolver.get_price("BTC")
        fresh = _make_record(price=50500.0, observed_at=clock.now, source=PriceSource.PRIMARY)
        table.publish(fresh)

        assert await resolver.get_price("BTC") is fresh


class TestColdFetch:
    @pytest.mark.asyncio
    async def test_unknown_symbol_returns_none_and_is_not_cached(
        self, resolver: PriceResolver, source: AsyncMock
    ) -> None:
        source.fetch_quote.side_effect = None
        source.fetch_quote.return_value = None

        assert await resolver.get_price("NOPE") is None
        assert resolver.cached("NOPE") is None
        assert not resolver.backoff_active()

    @pytest.mark.asyncio
    async def test_other_errors_propagate(
        self, resolver: PriceResolver, source: AsyncMock
    ) -> None:
        source.fetch_quote.side_effect = SourceUnavailableError("coingecko", "HTTP 500", status=500)

        with pytest.raises(SourceUnavailableError):
            await resolver.get_price("BTC")
        assert not resolver.backoff_active()

    @pytest.mark.asyncio
    async def test_untracked_symbol_uses_cache_and_fetch(
        self, resolver: PriceResolver, table: RealtimeTable, source: AsyncMock
    ) -> None:
        table.publish(_make_record("BTC", observed_at=0.0, source=PriceSource.PRIMARY))

        record = await resolver.get_price("PEPE")

        assert record is not None and record.symbol == "PEPE"
        source.fetch_quote.assert_awaited_once_with("PEPE")

    @pytest.mark.asyncio
    async def test_concurrent_lookups_share_one_fetch(
        self, resolver: PriceResolver, source: AsyncMock
    ) -> None:
        release = asyncio.Event()

        async def _slow(symbol: str) -> PriceRecord:
            await release.wait()
            return _make_record(symbol.upper(), 50000.0)

        source.fetch_quote.side_effect = _slow

        first = asyncio.create_task(resolver.get_price("BTC", force_refresh=True))
        second = asyncio.create_task(resolver.get_price("btc", force_refresh=True))
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(first, second)

        assert results[0] is results[1]
        assert source.fetch_quote.await_count == 1

    @pytest.mark.asyncio
    async def test_status(self, resolver: PriceResolver) -> None:
        await resolver.get_price("BTC")
        status = resolver.get_status()
        assert status["cached_symbols"] == 1
        assert status["cold_fetches"] == 1
        assert status["backoff_active"] is False
