"""Fixed-period polling of every tracked ticker."""

from __future__ import annotations

import asyncio
import logging

from ..errors import RetrievalError, RetrievalFailure, RetrievalTimeout
from .cache import QuoteCache
from .hub import BroadcastHub
from .interface import QuoteSession
from .models import Quote
from .protocol import prices_message
from .registry import SessionRegistry
from .timing import IntervalTicker

logger = logging.getLogger(__name__)


class PollingScheduler:
    """Polls every tracked ticker each tick and broadcasts the batch.

    Each tick snapshots the registry, retrieves every ticker concurrently
    (cache first, then the session, bounded by `retrieval_timeout`) and hands
    whatever came back to the hub as one `prices` message. A ticker that
    times out or raises is logged and left out of this tick only; the
    next tick tries it again.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        cache: QuoteCache,
        hub: BroadcastHub,
        interval: float = 0.5,
        retrieval_timeout: float = 1.0,
    ) -> None:
        self._registry = registry
        self._cache = cache
        self._hub = hub
        self._interval = interval
        self._timeout = retrieval_timeout
        self._ticker: IntervalTicker | None = None
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.is_running:
            logger.warning("Polling scheduler already started")
            return
        self._ticker = IntervalTicker(self._interval)
        self._task = asyncio.create_task(self._run_loop(self._ticker), name="quote-poller")
        logger.info("Polling scheduler started (%.0fms interval)", self._interval * 1000)

    async def stop(self) -> None:
        if self._ticker is not None:
            self._ticker.stop()
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        self._ticker = None
        logger.info("Polling scheduler stopped")

    async def tick(self) -> list[Quote]:
        """Run one poll/broadcast cycle. Returns the batch that was broadcast."""
        sessions = self._registry.snapshot()
        if not sessions:
            return []

        results = await asyncio.gather(
            *(self._retrieve(ticker, session) for ticker, session in sessions.items())
        )
        # A ticker removed while this tick was in flight must not be published.
        batch = [
            quote for quote in results if quote is not None and quote.ticker in self._registry
        ]

        if batch:
            delivered = await self._hub.broadcast(prices_message(batch))
            logger.debug("Streamed %d quotes to %d viewers", len(batch), delivered)
        return batch

    # --- Internal ---

    async def _run_loop(self, ticker: IntervalTicker) -> None:
        async for _ in ticker.ticks():
            try:
                await self.tick()
            except Exception:
                logger.exception("Polling tick failed")

    async def _retrieve(self, ticker: str, session: QuoteSession) -> Quote | None:
        cached = self._cache.get(ticker)
        if cached is not None:
            return cached

        try:
            quote = await self._poll(ticker, session)
        except RetrievalError as e:
            logger.warning("Retrieval failed: %s", e)
            return None

        if quote is None or ticker not in self._registry:
            return None
        return self._cache.put(ticker, quote)

    async def _poll(self, ticker: str, session: QuoteSession) -> Quote | None:
        try:
            return await asyncio.wait_for(session.poll(), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise RetrievalTimeout(ticker, f"no quote within {self._timeout:.1f}s") from e
        except RetrievalError:
            raise
        except Exception as e:
            raise RetrievalFailure(ticker, str(e) or type(e).__name__) from e
