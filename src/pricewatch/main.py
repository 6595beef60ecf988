"""Entry point for the price watch service.

Wires all components together, optionally embeds the FastAPI API, and
starts the orchestrator. When the API is enabled (default), the service and
the API share a single asyncio event loop via uvicorn's programmatic API and
FastAPI's lifespan context manager.

Handles SIGINT/SIGTERM for graceful shutdown.

Component wiring order (in _build_components):
1. aiohttp ClientSession (shared by all price sources)
2. Price sources (CryptoCompare, CoinCap, CoinGecko)
3. RealtimeTable (shared realtime prices)
4. RealtimePoller
5. PriceResolver (cache + global rate-limit gate)
6. AlertStore
7. Notifier (Telegram, or log-only without a token)
8. AlertEngine
9. Orchestrator
"""

import asyncio
import signal
from contextlib import asynccontextmanager
from typing import Any

import aiohttp
import uvicorn
from fastapi import FastAPI

from pricewatch.alerts.engine import AlertEngine
from pricewatch.alerts.store import AlertStore
from pricewatch.config import AppSettings
from pricewatch.logging import get_logger, setup_logging
from pricewatch.market_data.poller import RealtimePoller
from pricewatch.market_data.realtime_table import RealtimeTable
from pricewatch.market_data.resolver import PriceResolver
from pricewatch.notify.base import LogNotifier, Notifier
from pricewatch.notify.telegram import TelegramNotifier
from pricewatch.orchestrator import Orchestrator
from pricewatch.sources.coincap import CoinCapSource
from pricewatch.sources.coingecko import CoinGeckoSource
from pricewatch.sources.cryptocompare import CryptoCompareSource


async def _build_components(settings: AppSettings) -> dict[str, Any]:
    """Build all service components from settings.

    Must run inside the event loop: the aiohttp session binds to it.

    Args:
        settings: Application-wide settings.

    Returns:
        Dict mapping component names to instances.
    """
    logger = get_logger("pricewatch.main")
    feed = settings.feed

    session = aiohttp.ClientSession(headers={"User-Agent": "pricewatch/0.1"})

    primary = CryptoCompareSource(session, url=feed.cryptocompare_url, timeout=feed.primary_timeout)
    secondary = CoinCapSource(
        session, feed.coincap_ids, url=feed.coincap_url, timeout=feed.secondary_timeout
    )
    tertiary = CoinGeckoSource(
        session,
        feed.coingecko_ids,
        base_url=feed.coingecko_url,
        timeout=feed.tertiary_timeout,
        context_timeout=feed.market_context_timeout,
        api_key=feed.coingecko_api_key.get_secret_value() or None,
    )

    table = RealtimeTable()
    poller = RealtimePoller(
        table,
        primary,
        secondary,
        tertiary,
        symbols=feed.tracked_symbols,
        poll_interval=feed.poll_interval,
        tertiary_delay=feed.tertiary_request_delay,
    )
    resolver = PriceResolver(
        table,
        tertiary,
        freshness_window=settings.cache.freshness_window,
        cache_duration=settings.cache.cache_duration,
        backoff_duration=settings.cache.backoff_duration,
    )
    store = AlertStore()

    notifier: Notifier
    if settings.telegram.bot_token.get_secret_value():
        notifier = TelegramNotifier(settings.telegram)
    else:
        logger.warning(
            "no_telegram_token_configured",
            note="Notifications will only be written to the log.",
        )
        notifier = LogNotifier()

    engine = AlertEngine(
        store,
        resolver,
        table,
        notifier,
        market_context=tertiary.market_context,
        check_interval=settings.alerts.check_interval,
        alert_pacing_delay=settings.alerts.alert_pacing_delay,
        volatility_pacing_delay=settings.alerts.volatility_pacing_delay,
        threshold_percent=settings.alerts.auto_threshold_percent,
        cooldown=settings.alerts.auto_cooldown,
    )
    orchestrator = Orchestrator(table, poller, resolver, store, engine)

    return {
        "session": session,
        "table": table,
        "poller": poller,
        "resolver": resolver,
        "store": store,
        "notifier": notifier,
        "engine": engine,
        "orchestrator": orchestrator,
    }


async def _shutdown(components: dict[str, Any]) -> None:
    await components["orchestrator"].stop()
    await components["notifier"].close()
    await components["session"].close()


def _setup_signal_handlers(stop: asyncio.Event) -> None:
    """SIGINT/SIGTERM set the stop event. Must run inside the event loop."""
    logger = get_logger("pricewatch.main")
    loop = asyncio.get_running_loop()

    def _graceful_handler() -> None:
        logger.info("graceful_shutdown_signal")
        stop.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _graceful_handler)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the pipeline with the API server and stop it on shutdown."""
    logger = get_logger("pricewatch.main")
    components = app.state.components
    app.state.orchestrator = components["orchestrator"]

    await components["notifier"].start()
    await components["orchestrator"].start()
    logger.info("lifespan_started")

    yield

    await _shutdown(components)
    logger.info("pricewatch_stopped")


async def run() -> None:
    """Run the price watch service.

    With the API enabled (API_ENABLED=true, the default) uvicorn serves the
    routes and the lifespan manages component startup/shutdown; uvicorn
    installs its own signal handling. Otherwise the pipeline runs headless
    until SIGINT/SIGTERM.
    """
    settings = AppSettings()

    setup_logging(settings.log_level, settings.log_format)
    logger = get_logger("pricewatch.main")

    components = await _build_components(settings)

    if settings.api.enabled:
        from pricewatch.api.app import create_api_app

        app = create_api_app(lifespan=lifespan)
        app.state.settings = settings
        app.state.components = components

        logger.info("starting_with_api", host=settings.api.host, port=settings.api.port)
        config = uvicorn.Config(
            app,
            host=settings.api.host,
            port=settings.api.port,
            log_level="warning",  # Suppress uvicorn access logs
        )
        server = uvicorn.Server(config)
        await server.serve()
    else:
        stop = asyncio.Event()
        _setup_signal_handlers(stop)
        logger.info("starting_without_api", tracked_symbols=len(settings.feed.tracked_symbols))
        try:
            await components["notifier"].start()
            await components["orchestrator"].start()
            await stop.wait()
        finally:
            await _shutdown(components)
            logger.info("pricewatch_stopped")


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
