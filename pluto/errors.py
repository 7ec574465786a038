"""Exception hierarchy for the quote distribution engine."""

from __future__ import annotations


class PlutoError(Exception):
    """Base class for every error raised by pluto."""


class ConfigError(PlutoError):
    """An environment variable holds a value that cannot be parsed."""


class InvalidIdentifier(PlutoError):
    """Ticker failed normalization/validation. Raised before any resource is opened."""

    def __init__(self, ticker: str, reason: str) -> None:
        super().__init__(reason)
        self.ticker = ticker
        self.reason = reason


class NotTracked(PlutoError):
    """remove() on a ticker that is not being tracked."""

    def __init__(self, ticker: str) -> None:
        super().__init__(f"Ticker {ticker} is not being tracked")
        self.ticker = ticker


class TickerNotFound(PlutoError):
    """Raised by a QuoteSource when it cannot confirm that a ticker exists."""

    def __init__(self, ticker: str, reason: str | None = None) -> None:
        super().__init__(reason or f'"{ticker}" was not found. Please verify the ticker and try again.')
        self.ticker = ticker


class SourceUnavailable(PlutoError):
    """The quote source rejected or could not confirm a ticker during add()."""

    def __init__(self, ticker: str, reason: str) -> None:
        super().__init__(reason)
        self.ticker = ticker
        self.reason = reason


class RetrievalError(PlutoError):
    """A single quote retrieval failed. Transient; retried on the next tick."""

    def __init__(self, ticker: str, reason: str) -> None:
        super().__init__(f"{ticker}: {reason}")
        self.ticker = ticker
        self.reason = reason


class RetrievalTimeout(RetrievalError):
    pass


class RetrievalFailure(RetrievalError):
    pass


class ViewerSendFailure(PlutoError):
    def __init__(self, viewer_id: str, reason: str) -> None:
        super().__init__(f"Send to {viewer_id} failed: {reason}")
        self.viewer_id = viewer_id


class HeartbeatTimeout(PlutoError):
    def __init__(self, viewer_id: str, silent_for: float) -> None:
        super().__init__(f"Viewer {viewer_id} silent for {silent_for:.1f}s")
        self.viewer_id = viewer_id
        self.silent_for = silent_for


class MaxReconnectAttemptsExceeded(PlutoError):
    def __init__(self, attempts: int) -> None:
        super().__init__("Max reconnection attempts reached")
        self.attempts = attempts


class ProtocolError(PlutoError):
    """Inbound payload is not a well-formed protocol message."""


class UnknownMessageType(ProtocolError):
    """Well-formed JSON naming a message type outside the protocol."""

    def __init__(self, kind: object) -> None:
        super().__init__(f"Unknown message type: {kind!r}")
        self.kind = kind
