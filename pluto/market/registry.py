"""Registry of tracked tickers and their quote sessions."""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from threading import Lock

from ..errors import InvalidIdentifier, NotTracked, SourceUnavailable, TickerNotFound
from .cache import QuoteCache
from .interface import QuoteSession, QuoteSource

logger = logging.getLogger(__name__)

_TICKER_RE = re.compile(r"^[A-Z0-9]{3,15}$")


def normalize_ticker(ticker: object, suffix: str = "") -> str:
    """Uppercase and strip a ticker, then validate it.

    Rules: 3-15 uppercase alphanumerics; when `suffix` is set the ticker must
    end with it and have at least one character in front of it.
    Raises InvalidIdentifier.
    """
    if not isinstance(ticker, str) or not ticker.strip():
        raise InvalidIdentifier(str(ticker), "Ticker must be a non-empty string")

    normalized = ticker.upper().strip()
    if not _TICKER_RE.match(normalized):
        raise InvalidIdentifier(
            normalized,
            "Ticker must be 3-15 characters long and contain only letters and numbers",
        )
    if suffix and (not normalized.endswith(suffix) or len(normalized) == len(suffix)):
        raise InvalidIdentifier(normalized, f"Ticker must end with {suffix} (e.g., BTC{suffix})")
    return normalized


class SessionRegistry:
    """Owns the set of tracked tickers and one QuoteSession per ticker.

    add()/remove() for the same ticker are serialized by a per-ticker lock;
    different tickers proceed independently. Readers always get a copy of
    the tracked set taken under the registry lock, so a tick never sees a
    half-applied mutation.
    """

    def __init__(
        self,
        source: QuoteSource,
        cache: QuoteCache | None = None,
        suffix: str = "",
        open_timeout: float = 10.0,
    ) -> None:
        self._source = source
        self._cache = cache
        self._suffix = suffix
        self._open_timeout = open_timeout
        self._sessions: dict[str, QuoteSession] = {}
        self._lock = Lock()
        # Per-ticker locks live only while someone holds or waits on them.
        self._ticker_locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    def normalize(self, ticker: object) -> str:
        return normalize_ticker(ticker, self._suffix)

    async def add(self, ticker: str) -> bool:
        """Start tracking a ticker. Returns True if added, False if it was already tracked.

        Raises InvalidIdentifier for malformed input (nothing is opened) and
        SourceUnavailable if the source cannot confirm the ticker.
        """
        ticker = self.normalize(ticker)
        async with self._exclusive(ticker):
            if ticker in self:
                logger.debug("Ticker %s is already being tracked", ticker)
                return False

            try:
                session = await asyncio.wait_for(self._source.open(ticker), self._open_timeout)
            except TickerNotFound as e:
                raise SourceUnavailable(ticker, str(e)) from e
            except asyncio.TimeoutError as e:
                raise SourceUnavailable(
                    ticker, f"Timed out confirming {ticker} with the quote source"
                ) from e
            except Exception as e:
                logger.error("Failed to open session for %s: %s", ticker, e)
                raise SourceUnavailable(ticker, f"Failed to add {ticker}: {e}") from e

            with self._lock:
                self._sessions[ticker] = session
            logger.info("Tracking ticker %s (%d total)", ticker, len(self))
            return True

    async def remove(self, ticker: str) -> str:
        """Stop tracking a ticker and release its session. Returns the normalized ticker.

        Once this returns, no later tick will retrieve or publish the ticker.
        Raises NotTracked if the ticker is absent.
        """
        ticker = ticker.upper().strip() if isinstance(ticker, str) else str(ticker)
        if ticker not in self and ticker not in self._ticker_locks:
            # Nothing tracked and no add in flight to wait for.
            raise NotTracked(ticker)
        async with self._exclusive(ticker):
            with self._lock:
                session = self._sessions.pop(ticker, None)
            if session is None:
                raise NotTracked(ticker)

            if self._cache is not None:
                self._cache.remove(ticker)
            try:
                await session.close()
            except Exception as e:
                logger.warning("Failed to close session for %s: %s", ticker, e)
        logger.info("Stopped tracking ticker %s (%d total)", ticker, len(self))
        return ticker

    def list(self) -> list[str]:
        """Tracked tickers, sorted lexicographically."""
        with self._lock:
            return sorted(self._sessions)

    def get_count(self) -> int:
        return len(self)

    def snapshot(self) -> dict[str, QuoteSession]:
        """Consistent copy of ticker -> session for one tick."""
        with self._lock:
            return dict(self._sessions)

    async def close_all(self) -> None:
        """Close every session and forget all tickers (full shutdown)."""
        with self._lock:
            sessions = dict(self._sessions)
            self._sessions.clear()
        for ticker, session in sessions.items():
            if self._cache is not None:
                self._cache.remove(ticker)
            try:
                await session.close()
            except Exception as e:
                logger.warning("Failed to close session for %s: %s", ticker, e)

    @asynccontextmanager
    async def _exclusive(self, ticker: str) -> AsyncIterator[None]:
        """Hold the ticker's lock, dropping it once the last user is done."""
        lock = self._ticker_locks.get(ticker)
        if lock is None:
            lock = self._ticker_locks[ticker] = asyncio.Lock()
        self._lock_users[ticker] = self._lock_users.get(ticker, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[ticker] -= 1
            if not self._lock_users[ticker]:
                del self._lock_users[ticker]
                del self._ticker_locks[ticker]

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, ticker: str) -> bool:
        with self._lock:
            return ticker in self._sessions
