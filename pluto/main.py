"""FastAPI application factory."""

from __future__ import annotations

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from .api import create_tickers_router
from .config import Settings
from .market.engine import QuoteEngine
from .market.factory import create_quote_source
from .market.interface import QuoteSource
from .market.stream import create_stream_router

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    """Send pluto's logs to stdout. Idempotent."""
    root = logging.getLogger("pluto")
    root.setLevel(level)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(asctime)s %(name)s %(levelname)s: %(message)s"))
        root.addHandler(handler)


def create_app(settings: Settings | None = None, source: QuoteSource | None = None) -> FastAPI:
    """Build the app. The engine starts and stops with the app's lifespan."""
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)
    engine = QuoteEngine(source or create_quote_source(settings), settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await engine.start()
        try:
            yield
        finally:
            await engine.stop()

    app = FastAPI(title="Pluto Quote Stream", lifespan=lifespan)
    app.state.engine = engine
    app.include_router(create_tickers_router(engine))
    app.include_router(create_stream_router(engine.hub))

    @app.get("/health")
    async def health() -> dict:
        return {
            "status": "healthy",
            "uptime": engine.uptime,
            "clients": engine.get_client_count(),
            "tickers": engine.get_ticker_count(),
            "streaming": engine.is_streaming,
        }

    return app


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    settings = Settings.from_env()
    logger.info("Serving on %s:%d (viewers at /ws)", settings.host, settings.port)
    uvicorn.run(
        "pluto.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
