"""Fixtures for market engine tests.

Fakes stand in for the engine's seams (quote source, viewer channel, clock)
so tests drive ticks and heartbeats explicitly instead of waiting on timers.
"""

import asyncio
import json

import pytest

from pluto.errors import TickerNotFound
from pluto.market.interface import QuoteSession, QuoteSource
from pluto.market.models import Quote


class FakeSession(QuoteSession):
    """Session returning a fixed price; polls, failures and delays are scriptable."""

    def __init__(self, ticker: str, price: float | None = 100.0) -> None:
        super().__init__(ticker)
        self.price = price
        self.error: Exception | None = None
        self.delay = 0.0
        self.polls = 0
        self.closed = False

    async def poll(self):
        self.polls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.price is None:
            return None
        return Quote(ticker=self.ticker, price=self.price)

    async def close(self):
        self.closed = True


class FakeQuoteSource(QuoteSource):
    """Source that knows every ticker except those listed in `unknown`."""

    def __init__(self, prices=None, unknown=()) -> None:
        self.prices = dict(prices or {})
        self.unknown = set(unknown)
        self.sessions: dict[str, FakeSession] = {}
        self.opened: list[str] = []
        self.started = False
        self.closed = False

    async def start(self):
        self.started = True

    async def close(self):
        self.closed = True

    async def open(self, ticker):
        self.opened.append(ticker)
        if ticker in self.unknown:
            raise TickerNotFound(ticker, f'"{ticker}" is not found on the source')
        session = FakeSession(ticker, self.prices.get(ticker, 100.0))
        self.sessions[ticker] = session
        return session


class FakeChannel:
    """Viewer channel that records what it was sent."""

    def __init__(self, fail: bool = False, hang: bool = False) -> None:
        self.fail = fail
        self.hang = hang
        self.sent: list[str] = []
        self.closed = False
        self.close_code: int | None = None

    async def send_text(self, data: str) -> None:
        if self.fail:
            raise ConnectionResetError("broken pipe")
        if self.hang:
            await asyncio.sleep(3600)
        self.sent.append(data)

    async def close(self, code: int = 1000) -> None:
        self.closed = True
        self.close_code = code

    def messages(self) -> list[dict]:
        return [json.loads(raw) for raw in self.sent]

    def types(self) -> list[str]:
        return [message["type"] for message in self.messages()]


class ManualClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def source():
    return FakeQuoteSource(prices={"BTCUSD": 65000.12, "ETHUSD": 3400.50})


@pytest.fixture
def make_source():
    return FakeQuoteSource


@pytest.fixture
def make_channel():
    return FakeChannel
