"""HTTP API -- FastAPI routes over the orchestrator contract."""

from pricewatch.api.app import create_api_app

__all__ = ["create_api_app"]
