"""Viewer-side connection management.

Public API:
    ClientConnectionController - Connect/reconnect state machine
    ConnectionState            - disconnected/connecting/connected/reconnect_pending/failed
    ConnectionEvent, EventKind - What the controller puts on its events queue
    backoff_delay              - Reconnect delay for a given attempt
"""

from .controller import (
    ClientConnectionController,
    ConnectionEvent,
    ConnectionState,
    EventKind,
    backoff_delay,
)
from .transport import Channel, websocket_connector

__all__ = [
    "ClientConnectionController",
    "ConnectionEvent",
    "ConnectionState",
    "EventKind",
    "backoff_delay",
    "Channel",
    "websocket_connector",
]
