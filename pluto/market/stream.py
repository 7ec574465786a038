"""WebSocket endpoint that attaches viewers to the BroadcastHub."""

from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from .hub import BroadcastHub
from .protocol import error_message

logger = logging.getLogger(__name__)


def create_stream_router(hub: BroadcastHub, path: str = "/ws") -> APIRouter:
    """Create the viewer WebSocket router bound to a hub.

    This factory pattern lets us inject the hub without globals.
    """
    router = APIRouter(tags=["streaming"])

    @router.websocket(path)
    async def stream_quotes(websocket: WebSocket) -> None:
        """Live quote stream.

        On connect the viewer receives `activeTickers`, then a `prices`
        message every tick. Inbound frames (`ping`, `pong`, `getTickers`)
        are handled by the hub; a malformed frame gets an `error` reply and
        the connection stays open.
        """
        await websocket.accept()
        viewer = await hub.register(websocket)
        client_ip = websocket.client.host if websocket.client else "unknown"
        logger.info("Viewer %s attached from %s", viewer.id, client_ip)

        try:
            while viewer.id in hub:
                frame = await websocket.receive()
                if frame["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(frame.get("code", 1000), frame.get("reason"))
                # Binary frames carry the same JSON as text frames.
                raw = frame.get("text")
                if raw is None:
                    raw = frame.get("bytes")
                if raw is None:
                    await hub.send(viewer.id, error_message("Invalid message format"))
                    continue
                await hub.handle_message(viewer.id, raw)
        except WebSocketDisconnect as e:
            logger.info("Viewer %s closed the connection (code %s)", viewer.id, e.code)
        except RuntimeError as e:
            # Raised by Starlette when the hub closed the socket under us.
            logger.debug("Viewer %s stream ended: %s", viewer.id, e)
        finally:
            await hub.unregister(viewer.id)

    return router
