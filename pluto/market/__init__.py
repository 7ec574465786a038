"""Quote distribution engine for Pluto.

Public API:
    Quote               - Immutable price snapshot dataclass
    QuoteCache          - Short-TTL gate in front of quote retrieval
    QuoteSource         - Abstract interface for quote providers
    SessionRegistry     - Tracked tickers and their source sessions
    PollingScheduler    - Fixed-period poll + broadcast cycle
    BroadcastHub        - Viewer registry, fan-out and heartbeat eviction
    QuoteEngine         - Wires all of the above around one source
    create_quote_source - Factory that selects simulator or Massive
    create_stream_router - FastAPI router factory for the viewer WebSocket
"""

from .cache import QuoteCache
from .engine import QuoteEngine
from .factory import create_quote_source
from .hub import BroadcastHub, Viewer
from .interface import QuoteSession, QuoteSource
from .models import Quote
from .protocol import Message, MessageType
from .registry import SessionRegistry, normalize_ticker
from .scheduler import PollingScheduler
from .stream import create_stream_router
from .timing import IntervalTicker

__all__ = [
    "Quote",
    "QuoteCache",
    "QuoteSource",
    "QuoteSession",
    "SessionRegistry",
    "normalize_ticker",
    "PollingScheduler",
    "IntervalTicker",
    "BroadcastHub",
    "Viewer",
    "Message",
    "MessageType",
    "QuoteEngine",
    "create_quote_source",
    "create_stream_router",
]
