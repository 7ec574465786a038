"""Data models for market data."""

from __future__ import annotations

import time
from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class Quote:
    """Immutable snapshot of a single ticker's price at a point in time.

    `retrieved_at` is monotonic-clock seconds at retrieval time.
    `timestamp` is wall-clock Unix seconds and is what viewers see.
    When `open_price_estimated` is True, `open_price` is the first price
    observed for the ticker rather than the source's authoritative daily open.
    """

    ticker: str
    price: float
    retrieved_at: float = field(default_factory=time.monotonic)
    timestamp: float = field(default_factory=time.time)
    change: float | None = None
    change_percent: float | None = None
    open_price: float | None = None
    open_price_estimated: bool = False
    source_timestamp: str | None = None

    def __post_init__(self) -> None:
        if not self.price > 0:
            raise ValueError(f"Quote price must be positive, got {self.price!r} for {self.ticker}")

    def to_dict(self) -> dict:
        """Serialize for JSON / WebSocket transmission.

        Optional fields are omitted when unknown so viewers can tell
        "no data" apart from zero.
        """
        payload: dict = {
            "ticker": self.ticker,
            "price": self.price,
            "timestamp": int(self.timestamp * 1000),  # Viewers expect epoch milliseconds
        }
        if self.change is not None:
            payload["change"] = self.change
        if self.change_percent is not None:
            payload["changePercent"] = self.change_percent
        if self.open_price is not None:
            payload["dailyOpenPrice"] = self.open_price
            payload["dailyOpenEstimated"] = self.open_price_estimated
        if self.source_timestamp is not None:
            payload["sourceTimestamp"] = self.source_timestamp
        return payload
