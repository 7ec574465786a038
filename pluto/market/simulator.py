"""GBM-based market simulator and the QuoteSource built on it."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

import numpy as np

from ..errors import TickerNotFound
from .interface import QuoteSession, QuoteSource
from .models import Quote
from .seed_prices import (
    CORRELATION_GROUPS,
    CROSS_GROUP_CORR,
    DEFAULT_PARAMS,
    DOGE_CORR,
    INTRA_GROUP_CORR,
    INTRA_MAJORS_CORR,
    SEED_PRICES,
    TICKER_PARAMS,
)
from .timing import IntervalTicker

logger = logging.getLogger(__name__)


def round_price(price: float) -> float:
    """Two decimals for prices above $1, six for sub-dollar coins."""
    return round(price, 2) if price >= 1 else round(price, 6)


def _group_of(ticker: str) -> str | None:
    for name, members in CORRELATION_GROUPS.items():
        if ticker in members:
            return name
    return None


class GBMSimulator:
    """Correlated geometric Brownian motion over a market that never closes.

    Each step moves every price at once:

        S <- S * exp((mu - sigma^2/2) * dt + sigma * sqrt(dt) * (L @ Z))

    Z is a vector of independent standard normals and L the Cholesky factor
    of the pairwise correlation matrix, so the majors drift together while
    DOGE mostly does its own thing. dt is one half-second tick as a fraction
    of a 365-day year. With probability `event_probability` per ticker per
    step a 2-5% shock is applied on top.

    State lives in numpy arrays aligned with `tickers`. Pass `seed` for a
    reproducible path.
    """

    SECONDS_PER_YEAR = 365 * 24 * 3600  # 31,536,000
    DEFAULT_DT = 0.5 / SECONDS_PER_YEAR  # ~1.59e-8

    def __init__(
        self,
        tickers: Iterable[str] = (),
        dt: float = DEFAULT_DT,
        event_probability: float = 0.001,
        seed: int | None = None,
    ) -> None:
        self._dt = dt
        self._event_prob = event_probability
        self._rng = np.random.default_rng(seed)

        self._tickers: list[str] = []
        self._prices = np.empty(0)
        self._mu = np.empty(0)
        self._sigma = np.empty(0)
        self._cholesky: np.ndarray | None = None

        for ticker in tickers:
            if ticker not in self._tickers:
                self._append(ticker)
        self._rebuild_cholesky()

    def step(self) -> dict[str, float]:
        """Advance every ticker one dt. Returns {ticker: new_price}."""
        n = len(self._tickers)
        if n == 0:
            return {}

        z = self._rng.standard_normal(n)
        if self._cholesky is not None:
            z = self._cholesky @ z
        drift = (self._mu - 0.5 * self._sigma**2) * self._dt
        self._prices = self._prices * np.exp(drift + self._sigma * np.sqrt(self._dt) * z)

        shocked = self._rng.random(n) < self._event_prob
        if shocked.any():
            moves = self._rng.uniform(0.02, 0.05, n) * self._rng.choice((-1.0, 1.0), n)
            self._prices = np.where(shocked, self._prices * (1 + moves), self._prices)
            for i in np.flatnonzero(shocked):
                logger.debug("Random event on %s: %+.1f%%", self._tickers[i], moves[i] * 100)

        return {ticker: round_price(float(price)) for ticker, price in zip(self._tickers, self._prices)}

    def add_ticker(self, ticker: str) -> None:
        if ticker in self._tickers:
            return
        self._append(ticker)
        self._rebuild_cholesky()

    def remove_ticker(self, ticker: str) -> None:
        if ticker not in self._tickers:
            return
        i = self._tickers.index(ticker)
        del self._tickers[i]
        self._prices = np.delete(self._prices, i)
        self._mu = np.delete(self._mu, i)
        self._sigma = np.delete(self._sigma, i)
        self._rebuild_cholesky()

    def get_price(self, ticker: str) -> float | None:
        """Current rounded price, or None if the ticker is not simulated."""
        if ticker not in self._tickers:
            return None
        return round_price(float(self._prices[self._tickers.index(ticker)]))

    @property
    def tickers(self) -> list[str]:
        return list(self._tickers)

    def _append(self, ticker: str) -> None:
        params = TICKER_PARAMS.get(ticker, DEFAULT_PARAMS)
        seed_price = SEED_PRICES.get(ticker)
        if seed_price is None:
            seed_price = float(self._rng.uniform(1.0, 500.0))
        self._tickers.append(ticker)
        self._prices = np.append(self._prices, seed_price)
        self._mu = np.append(self._mu, params["mu"])
        self._sigma = np.append(self._sigma, params["sigma"])

    def _rebuild_cholesky(self) -> None:
        n = len(self._tickers)
        if n <= 1:
            self._cholesky = None
            return

        corr = np.eye(n)
        for i, j in zip(*np.triu_indices(n, k=1)):
            corr[i, j] = corr[j, i] = self._pairwise_correlation(self._tickers[i], self._tickers[j])
        self._cholesky = np.linalg.cholesky(corr)

    @staticmethod
    def _pairwise_correlation(t1: str, t2: str) -> float:
        """Majors 0.8, same platform/DeFi group 0.6, DOGE 0.3, otherwise 0.5."""
        if "DOGEUSD" in (t1, t2):
            return DOGE_CORR
        group = _group_of(t1)
        if group is None or group != _group_of(t2):
            return CROSS_GROUP_CORR
        return INTRA_MAJORS_CORR if group == "majors" else INTRA_GROUP_CORR


class SimulatorSession(QuoteSession):
    """Reads one ticker's current simulated price.

    The simulator has no notion of a trading day, so quotes carry no daily
    open; the cache fills in an estimate from the first observed price.
    """

    def __init__(self, source: SimulatorQuoteSource, ticker: str) -> None:
        super().__init__(ticker)
        self._source = source
        self._closed = False

    async def poll(self) -> Quote | None:
        if self._closed:
            return None
        price = self._source.current_price(self.ticker)
        if price is None:
            return None
        return Quote(ticker=self.ticker, price=price)

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._source.release(self.ticker)


class SimulatorQuoteSource(QuoteSource):
    """QuoteSource backed by the GBM simulator.

    A background task steps the simulator every `update_interval` seconds;
    sessions read the latest simulated price. If `known_tickers` is given,
    open() rejects anything outside it, mimicking a source that can tell
    real tickers from typos.
    """

    def __init__(
        self,
        update_interval: float = 0.5,
        event_probability: float = 0.001,
        known_tickers: Iterable[str] | None = None,
        seed: int | None = None,
    ) -> None:
        self._interval = update_interval
        self._known = set(known_tickers) if known_tickers is not None else None
        self._sim = GBMSimulator(event_probability=event_probability, seed=seed)
        self._ticker: IntervalTicker | None = None
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._ticker = IntervalTicker(self._interval, immediate=False)
        self._task = asyncio.create_task(self._run_loop(self._ticker), name="simulator-loop")
        logger.info("Simulator started (%.0fms steps)", self._interval * 1000)

    async def close(self) -> None:
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
        logger.info("Simulator stopped")

    async def open(self, ticker: str) -> SimulatorSession:
        if self._known is not None and ticker not in self._known:
            raise TickerNotFound(ticker)
        self._sim.add_ticker(ticker)
        logger.info("Simulator: opened %s at %s", ticker, self._sim.get_price(ticker))
        return SimulatorSession(self, ticker)

    def current_price(self, ticker: str) -> float | None:
        return self._sim.get_price(ticker)

    def release(self, ticker: str) -> None:
        self._sim.remove_ticker(ticker)
        logger.info("Simulator: released %s", ticker)

    def get_tickers(self) -> list[str]:
        return self._sim.tickers

    async def _run_loop(self, ticker: IntervalTicker) -> None:
        async for _ in ticker.ticks():
            try:
                self._sim.step()
            except Exception:
                logger.exception("Simulator step failed")
