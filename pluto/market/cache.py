"""Short-TTL quote cache that gates retrieval per ticker."""

from __future__ import annotations

import dataclasses
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from threading import Lock

from .models import Quote


@dataclass(slots=True)
class CacheEntry:
    ticker: str
    last_quote: Quote
    last_fetch_time: float
    first_price: float
    history: deque[Quote] = field(default_factory=deque)


class QuoteCache:
    """Thread-safe cache of the latest quote per ticker.

    get() answers "has this ticker been fetched within the TTL?". A miss
    (None) tells the caller to retrieve fresh data and put() it. This keeps
    the source from being polled faster than it usefully changes, however
    fast the tick runs.

    Writers: PollingScheduler (one task per ticker, each touching only its own entry).
    Readers: PollingScheduler, SessionRegistry (on remove), status endpoints.
    """

    def __init__(
        self,
        ttl: float = 0.2,
        history_size: int = 20,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl
        self._history_size = history_size
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = Lock()
        self._version: int = 0  # Monotonically increasing; bumped on every put

    @property
    def ttl(self) -> float:
        return self._ttl

    def get(self, ticker: str) -> Quote | None:
        """Return the cached quote if it is younger than the TTL, else None."""
        with self._lock:
            entry = self._entries.get(ticker)
            if entry is None:
                return None
            if self._clock() - entry.last_fetch_time < self._ttl:
                return entry.last_quote
            return None

    def put(self, ticker: str, quote: Quote) -> Quote:
        """Store a freshly retrieved quote and restart the TTL. Returns the stored Quote.

        If the source gave no daily open, the first price ever seen for the
        ticker stands in for it, flagged with open_price_estimated=True.
        change/change_percent are derived from that estimate only when the
        source supplied none.
        """
        with self._lock:
            entry = self._entries.get(ticker)
            first_price = entry.first_price if entry else quote.price

            if quote.open_price is None:
                quote = _with_estimated_open(quote, first_price)

            if entry is None:
                entry = CacheEntry(
                    ticker=ticker,
                    last_quote=quote,
                    last_fetch_time=self._clock(),
                    first_price=first_price,
                    history=deque(maxlen=self._history_size),
                )
                self._entries[ticker] = entry
            else:
                entry.last_quote = quote
                entry.last_fetch_time = self._clock()

            entry.history.append(quote)
            self._version += 1
            return quote

    def latest(self, ticker: str) -> Quote | None:
        """Last quote stored for a ticker regardless of age, or None if unknown."""
        with self._lock:
            entry = self._entries.get(ticker)
            return entry.last_quote if entry else None

    def history(self, ticker: str) -> list[Quote]:
        """Recent quotes for a ticker, oldest first. Bounded by history_size."""
        with self._lock:
            entry = self._entries.get(ticker)
            return list(entry.history) if entry else []

    def get_all(self) -> dict[str, Quote]:
        """Snapshot of the latest quote per ticker. Returns a shallow copy."""
        with self._lock:
            return {ticker: entry.last_quote for ticker, entry in self._entries.items()}

    def remove(self, ticker: str) -> None:
        """Drop a ticker's entry (e.g., when it stops being tracked)."""
        with self._lock:
            self._entries.pop(ticker, None)

    @property
    def version(self) -> int:
        return self._version

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, ticker: str) -> bool:
        with self._lock:
            return ticker in self._entries


def _with_estimated_open(quote: Quote, first_price: float) -> Quote:
    change = quote.change
    change_percent = quote.change_percent
    if change is None:
        change = round(quote.price - first_price, 8)
    if change_percent is None:
        change_percent = round((quote.price - first_price) / first_price * 100, 4)
    return dataclasses.replace(
        quote,
        open_price=first_price,
        open_price_estimated=True,
        change=change,
        change_percent=change_percent,
    )
