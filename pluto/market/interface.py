"""Abstract interface for quote sources."""

from __future__ import annotations

from abc import ABC, abstractmethod

from .models import Quote


class QuoteSession(ABC):
    """Live retrieval handle bound to exactly one ticker.

    Created by QuoteSource.open(), owned by the SessionRegistry until the
    ticker is removed. poll() is called at most once per tick.
    """

    def __init__(self, ticker: str) -> None:
        self.ticker = ticker

    @abstractmethod
    async def poll(self) -> Quote | None:
        """Return a best-effort current quote, or None if there is no data yet.

        May raise; the scheduler treats any exception as a transient
        retrieval failure for this tick only.
        """

    @abstractmethod
    async def close(self) -> None:
        """Release whatever the session holds. Safe to call multiple times."""


class QuoteSource(ABC):
    """Contract for quote providers.

    Lifecycle:
        source = create_quote_source(settings)
        await source.start()
        session = await source.open("BTCUSD")   # TickerNotFound if unknown
        quote = await session.poll()
        await session.close()
        # ... app shutting down ...
        await source.close()
    """

    # Sources with a rate limit raise this so the cache never lets the
    # scheduler poll them faster.
    min_poll_interval: float = 0.0

    async def start(self) -> None:
        """Acquire shared resources (clients, background tasks). Default: nothing."""

    async def close(self) -> None:
        """Release shared resources. Safe to call multiple times. Default: nothing."""

    @abstractmethod
    async def open(self, ticker: str) -> QuoteSession:
        """Open a session for a normalized ticker.

        Raises TickerNotFound if the source cannot confirm the ticker exists.
        """
