"""FastAPI application factory for the price watch HTTP API."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI

from pricewatch.api import routes


def create_api_app(lifespan: Any = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        lifespan: Optional async context manager for application lifespan events.
                  Used by main.py to inject startup/shutdown logic.

    Returns:
        FastAPI application with the JSON routes mounted under /api. Route
        handlers expect app.state.orchestrator to be set.
    """
    app = FastAPI(
        title="Price Watch",
        lifespan=lifespan,
    )
    app.include_router(routes.router, prefix="/api")
    return app
