"""Transport seam for the client controller."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Protocol

import websockets


class Channel(Protocol):
    """An open bidirectional text channel. websockets' ClientConnection satisfies it."""

    async def send(self, message: str) -> None: ...

    async def recv(self) -> str | bytes: ...

    async def close(self) -> None: ...


Connector = Callable[[str], Awaitable[Channel]]


async def websocket_connector(url: str) -> Channel:
    """Open a WebSocket to the quote server.

    Protocol-level pings are off because the server runs its own
    ping/pong heartbeat in the message stream. Compression is off to keep
    latency down.
    """
    return await websockets.connect(
        url,
        ping_interval=None,
        close_timeout=5,
        compression=None,
    )
