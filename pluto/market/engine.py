"""QuoteEngine: wires registry, cache, scheduler and hub around one source."""

from __future__ import annotations

import logging
import time

from ..config import Settings
from .cache import QuoteCache
from .hub import BroadcastHub
from .interface import QuoteSource
from .protocol import active_tickers_message
from .registry import SessionRegistry
from .scheduler import PollingScheduler

logger = logging.getLogger(__name__)


class QuoteEngine:
    """The quote distribution engine for one process.

    Lifecycle:
        engine = QuoteEngine(source, settings)
        await engine.start()
        await engine.add_ticker("BTCUSD")      # broadcasts activeTickers
        await engine.remove_ticker("BTCUSD")   # broadcasts activeTickers
        await engine.stop()
    """

    def __init__(self, source: QuoteSource, settings: Settings | None = None) -> None:
        settings = settings or Settings()
        self.settings = settings
        self.source = source
        self.cache = QuoteCache(
            ttl=max(settings.cache_ttl, source.min_poll_interval),
            history_size=settings.history_size,
        )
        self.registry = SessionRegistry(
            source,
            cache=self.cache,
            suffix=settings.ticker_suffix,
            open_timeout=settings.open_timeout,
        )
        self.hub = BroadcastHub(
            snapshot=lambda: active_tickers_message(self.registry.list()),
            heartbeat_interval=settings.heartbeat_interval,
            client_timeout=settings.client_timeout,
            send_timeout=settings.send_timeout,
        )
        self.scheduler = PollingScheduler(
            self.registry,
            self.cache,
            self.hub,
            interval=settings.poll_interval,
            retrieval_timeout=settings.retrieval_timeout,
        )
        self.started_at: float | None = None

    async def start(self) -> None:
        """Start the source, track the default tickers, then start ticking."""
        if self.is_streaming:
            logger.warning("Quote engine already started")
            return
        await self.source.start()
        for ticker in self.settings.default_tickers:
            try:
                await self.registry.add(ticker)
            except Exception as e:
                logger.warning("Skipping default ticker %s: %s", ticker, e)
        await self.scheduler.start()
        await self.hub.start()
        self.started_at = time.time()
        logger.info("Quote engine started with %d tickers", self.registry.get_count())

    async def stop(self) -> None:
        """Stop ticking, disconnect every viewer, close every session and the source."""
        await self.scheduler.stop()
        await self.hub.stop()
        await self.hub.close_all()
        await self.registry.close_all()
        await self.source.close()
        self.started_at = None
        logger.info("Quote engine stopped")

    async def add_ticker(self, ticker: str) -> str:
        """Track a ticker and announce the new list. Returns the normalized ticker.

        Already-tracked tickers are a no-op (no broadcast).
        """
        normalized = self.registry.normalize(ticker)
        if await self.registry.add(normalized):
            await self.hub.broadcast(active_tickers_message(self.registry.list()))
            logger.info("Ticker %s added and announced to %d viewers", normalized, len(self.hub))
        return normalized

    async def remove_ticker(self, ticker: str) -> str:
        """Stop tracking a ticker and announce the new list. Raises NotTracked."""
        normalized = await self.registry.remove(ticker)
        await self.hub.broadcast(active_tickers_message(self.registry.list()))
        logger.info("Ticker %s removed and announced to %d viewers", normalized, len(self.hub))
        return normalized

    def get_tickers(self) -> list[str]:
        return self.registry.list()

    def get_ticker_count(self) -> int:
        return self.registry.get_count()

    def get_client_count(self) -> int:
        return len(self.hub)

    @property
    def is_streaming(self) -> bool:
        return self.scheduler.is_running

    @property
    def uptime(self) -> float:
        return time.time() - self.started_at if self.started_at else 0.0
