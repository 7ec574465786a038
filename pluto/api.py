"""REST endpoints for managing tracked tickers."""

from __future__ import annotations

import logging
import time

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from .errors import InvalidIdentifier, NotTracked, SourceUnavailable
from .market.engine import QuoteEngine

logger = logging.getLogger(__name__)


class AddTickerRequest(BaseModel):
    ticker: str


def _error(status_code: int, message: str, code: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"error": message, "code": code})


def create_tickers_router(engine: QuoteEngine) -> APIRouter:
    """Create the /api router bound to an engine."""
    router = APIRouter(prefix="/api", tags=["tickers"])

    @router.post("/tickers")
    async def add_ticker(body: AddTickerRequest) -> dict:
        try:
            ticker = engine.registry.normalize(body.ticker)
        except InvalidIdentifier as e:
            raise _error(400, e.reason, "INVALID_TICKER_FORMAT") from e

        if ticker in engine.registry:
            raise _error(409, "Ticker is already being tracked", "TICKER_EXISTS")

        try:
            await engine.add_ticker(ticker)
        except SourceUnavailable as e:
            raise _error(404, e.reason, "TICKER_NOT_FOUND") from e

        return {"success": True, "ticker": ticker, "message": f"Successfully added {ticker}"}

    @router.delete("/tickers/{ticker}")
    async def remove_ticker(ticker: str) -> dict:
        try:
            removed = await engine.remove_ticker(ticker)
        except NotTracked as e:
            raise _error(404, "Ticker not found", "TICKER_NOT_FOUND") from e

        return {"success": True, "ticker": removed, "message": f"Successfully removed {removed}"}

    @router.get("/tickers")
    async def list_tickers() -> dict:
        tickers = engine.get_tickers()
        return {"tickers": tickers, "count": len(tickers), "timestamp": int(time.time() * 1000)}

    @router.get("/websocket")
    async def websocket_info() -> dict:
        return {
            "path": "/ws",
            "clients": engine.get_client_count(),
            "streaming": engine.is_streaming,
        }

    return router
