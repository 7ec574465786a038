"""Massive (Polygon.io) API client for real crypto quotes."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from ..errors import RetrievalFailure, TickerNotFound
from .interface import QuoteSession, QuoteSource
from .models import Quote

logger = logging.getLogger(__name__)


def _last_price(snap: Any) -> float | None:
    trade = getattr(snap, "last_trade", None)
    price = getattr(trade, "price", None)
    if isinstance(price, (int, float)) and price > 0:
        return float(price)
    return None


def _positive(value: Any) -> float | None:
    if isinstance(value, (int, float)) and value > 0:
        return float(value)
    return None


def _number(value: Any) -> float | None:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return None


def snapshot_to_quote(ticker: str, snap: Any) -> Quote | None:
    """Convert a Massive ticker snapshot into a Quote. None if it has no last trade."""
    price = _last_price(snap)
    if price is None:
        return None

    source_timestamp = None
    updated = getattr(snap, "updated", None)
    if isinstance(updated, int) and updated > 0:
        # Massive snapshot timestamps are Unix nanoseconds
        source_timestamp = datetime.fromtimestamp(updated / 1e9, tz=timezone.utc).isoformat()

    return Quote(
        ticker=ticker,
        price=price,
        change=_number(getattr(snap, "todays_change", None)),
        change_percent=_number(getattr(snap, "todays_change_percent", None)),
        open_price=_positive(getattr(getattr(snap, "day", None), "open", None)),
        source_timestamp=source_timestamp,
    )


class MassiveSession(QuoteSession):
    """Polls the single-ticker snapshot endpoint for one ticker."""

    def __init__(self, source: MassiveQuoteSource, ticker: str) -> None:
        super().__init__(ticker)
        self._source = source
        self._closed = False

    async def poll(self) -> Quote | None:
        if self._closed:
            return None
        snap = await self._source.fetch_snapshot(self.ticker)
        try:
            return snapshot_to_quote(self.ticker, snap)
        except (AttributeError, TypeError, ValueError, OverflowError, OSError) as e:
            raise RetrievalFailure(self.ticker, f"unreadable snapshot: {e}") from e

    async def close(self) -> None:
        self._closed = True


class MassiveQuoteSource(QuoteSource):
    """QuoteSource backed by the Massive (Polygon.io) REST API.

    Each session polls GET /v2/snapshot/locale/global/markets/crypto/tickers/X:{ticker}.
    open() fetches the snapshot once to confirm the ticker exists.

    Rate limits:
      - Free tier: 5 req/min -> min_poll_interval 15s (default)
      - Paid tiers: pass a smaller min_poll_interval
    """

    min_poll_interval: float = 15.0

    def __init__(
        self,
        api_key: str,
        min_poll_interval: float | None = None,
        client: Any = None,
    ) -> None:
        self._api_key = api_key
        self._client: Any = client
        if min_poll_interval is not None:
            self.min_poll_interval = min_poll_interval

    async def start(self) -> None:
        if self._client is not None:
            return
        # Lazy import: only import massive when actually using real market data.
        from massive import RESTClient

        self._client = RESTClient(api_key=self._api_key)
        logger.info("Massive client ready (%.1fs minimum poll interval)", self.min_poll_interval)

    async def close(self) -> None:
        self._client = None
        logger.info("Massive client closed")

    async def open(self, ticker: str) -> MassiveSession:
        if self._client is None:
            await self.start()
        try:
            snap = await self.fetch_snapshot(ticker)
        except Exception as e:
            logger.warning("Massive lookup for %s failed: %s", ticker, e)
            raise TickerNotFound(ticker, f'"{ticker}" is not available from Massive: {e}') from e
        if _last_price(snap) is None:
            raise TickerNotFound(ticker, f'"{ticker}" is not available from Massive')
        logger.info("Massive: opened %s", ticker)
        return MassiveSession(self, ticker)

    async def fetch_snapshot(self, ticker: str) -> Any:
        # The Massive RESTClient is synchronous, run it in a thread to
        # avoid blocking the event loop.
        return await asyncio.to_thread(self._fetch_snapshot, ticker)

    def _fetch_snapshot(self, ticker: str) -> Any:
        """Synchronous call to the Massive REST API. Runs in a thread."""
        from massive.rest.models import SnapshotMarketType

        client = self._client
        if client is None:
            raise RuntimeError("Massive client is closed")
        return client.get_snapshot_ticker(SnapshotMarketType.CRYPTO, f"X:{ticker}")
