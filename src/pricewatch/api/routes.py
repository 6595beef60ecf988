"""JSON API endpoints for prices, alerts and auto-volatility subscriptions."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from pricewatch.alerts.formatting import format_alert_list
from pricewatch.exceptions import AlertError, SymbolNotFoundError, UpstreamError
from pricewatch.models import Alert, PriceRecord

log = structlog.get_logger(__name__)

router = APIRouter()

_LOOKUP_FAILED = "Sorry, the price lookup failed. Please try again later."


class CreateAlertBody(BaseModel):
    symbol: str = Field(min_length=1, max_length=20)
    target_price: float = Field(gt=0)
    original_price: float | None = Field(default=None, gt=0)


class AutoVolatilityBody(BaseModel):
    enabled: bool


def _record_to_dict(record: PriceRecord) -> dict[str, Any]:
    return {
        "symbol": record.symbol,
        "price": record.price,
        "change_24h_percent": record.change_24h_percent,
        "market_cap_usd": record.market_cap_usd,
        "volume_24h_usd": record.volume_24h_usd,
        "observed_at": record.observed_at,
        "source": record.source.value,
    }


def _alert_to_dict(alert: Alert) -> dict[str, Any]:
    return {
        "alert_id": alert.alert_id,
        "chat_id": alert.chat_id,
        "symbol": alert.symbol,
        "target_price": alert.target_price,
        "original_price": alert.original_price,
        "direction": alert.direction.value,
        "status": alert.status.value,
        "created_at": alert.created_at,
        "trigger_time": alert.trigger_time,
        "trigger_price": alert.trigger_price,
    }


@router.get("/prices")
async def get_realtime_prices(request: Request) -> JSONResponse:
    """Realtime snapshot of every tracked symbol polled so far."""
    snapshot = request.app.state.orchestrator.get_realtime_snapshot()
    return JSONResponse(content={s: _record_to_dict(r) for s, r in sorted(snapshot.items())})


@router.get("/prices/{symbol}")
async def get_price(request: Request, symbol: str, force_refresh: bool = False) -> JSONResponse:
    """Best available price for one symbol."""
    orchestrator = request.app.state.orchestrator
    try:
        record = await orchestrator.get_price(symbol, force_refresh=force_refresh)
    except UpstreamError as e:
        log.warning("price_lookup_failed", symbol=symbol, error=str(e))
        return JSONResponse(status_code=502, content={"error": _LOOKUP_FAILED})

    if record is None:
        return JSONResponse(
            status_code=404,
            content={"error": f"Couldn't find data for {symbol.upper()}."},
        )
    return JSONResponse(content=_record_to_dict(record))


@router.get("/alerts/{chat_id}")
async def list_alerts(request: Request, chat_id: int) -> JSONResponse:
    alerts = request.app.state.orchestrator.list_alerts(chat_id)
    return JSONResponse(content={
        "alerts": [_alert_to_dict(a) for a in alerts],
        "summary": format_alert_list(alerts),
    })


@router.post("/alerts/{chat_id}")
async def create_alert(request: Request, chat_id: int, body: CreateAlertBody) -> JSONResponse:
    """Create an alert. Without original_price the current price is looked up."""
    orchestrator = request.app.state.orchestrator
    try:
        if body.original_price is None:
            alert = await orchestrator.add_alert(chat_id, body.symbol, body.target_price)
        else:
            alert = orchestrator.create_alert(
                chat_id, body.symbol, body.target_price, body.original_price
            )
    except SymbolNotFoundError:
        return JSONResponse(
            status_code=404,
            content={"error": f"Couldn't find data for {body.symbol.upper()}."},
        )
    except AlertError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})
    except UpstreamError as e:
        log.warning("alert_price_lookup_failed", symbol=body.symbol, error=str(e))
        return JSONResponse(status_code=502, content={"error": _LOOKUP_FAILED})

    return JSONResponse(status_code=201, content=_alert_to_dict(alert))


@router.delete("/alerts/{chat_id}")
async def clear_alerts(request: Request, chat_id: int) -> JSONResponse:
    removed = request.app.state.orchestrator.clear_alerts(chat_id)
    return JSONResponse(content={"removed": removed})


@router.get("/auto-volatility/{chat_id}")
async def get_auto_volatility(request: Request, chat_id: int) -> JSONResponse:
    enabled = request.app.state.orchestrator.auto_volatility_enabled(chat_id)
    return JSONResponse(content={"chat_id": chat_id, "enabled": enabled})


@router.put("/auto-volatility/{chat_id}")
async def set_auto_volatility(
    request: Request, chat_id: int, body: AutoVolatilityBody
) -> JSONResponse:
    request.app.state.orchestrator.set_auto_volatility(chat_id, body.enabled)
    return JSONResponse(content={"chat_id": chat_id, "enabled": body.enabled})


@router.post("/auto-volatility/{chat_id}/toggle")
async def toggle_auto_volatility(request: Request, chat_id: int) -> JSONResponse:
    enabled = request.app.state.orchestrator.toggle_auto_volatility(chat_id)
    return JSONResponse(content={"chat_id": chat_id, "enabled": enabled})


@router.get("/status")
async def get_status(request: Request) -> JSONResponse:
    return JSONResponse(content=request.app.state.orchestrator.get_status())
