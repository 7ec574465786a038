"""Fan-out of protocol messages to connected viewers, with heartbeat eviction."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from threading import Lock
from typing import Protocol

from ..errors import HeartbeatTimeout, ProtocolError, UnknownMessageType, ViewerSendFailure
from .protocol import Message, MessageType, error_message, ping_message, pong_message
from .timing import IntervalTicker

logger = logging.getLogger(__name__)


class ViewerChannel(Protocol):
    """What the hub needs from a connection. Starlette's WebSocket satisfies it."""

    async def send_text(self, data: str) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


@dataclass(slots=True)
class Viewer:
    id: str
    channel: ViewerChannel
    last_ack: float  # Monotonic seconds of the last heartbeat acknowledgment
    # Sends to one viewer go out one at a time, in the order they were started.
    outbox: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)


def new_viewer_id() -> str:
    return f"client_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class BroadcastHub:
    """Owns the connected viewers.

    Every send is bounded by `send_timeout`; a viewer whose send fails or
    times out is unregistered and closed without affecting anyone else.
    The heartbeat loop probes every viewer each `heartbeat_interval` and
    evicts those that have not acknowledged within `client_timeout`, even
    if their channel still accepts writes.

    `snapshot` builds the message a viewer gets on connect and on
    `getTickers`. The hub knows nothing else about tickers.
    """

    def __init__(
        self,
        snapshot: Callable[[], Message] | None = None,
        heartbeat_interval: float = 60.0,
        client_timeout: float = 120.0,
        send_timeout: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._snapshot = snapshot
        self._heartbeat_interval = heartbeat_interval
        self._client_timeout = client_timeout
        self._send_timeout = send_timeout
        self._clock = clock
        self._viewers: dict[str, Viewer] = {}
        self._lock = Lock()
        self._ticker: IntervalTicker | None = None
        self._task: asyncio.Task | None = None

    # --- Registry ---

    async def register(self, channel: ViewerChannel, viewer_id: str | None = None) -> Viewer:
        """Add a viewer and immediately send it the current snapshot.

        The snapshot is written before anything broadcast after the viewer
        joined, so a viewer never sees `prices` ahead of `activeTickers`.
        """
        viewer = Viewer(id=viewer_id or new_viewer_id(), channel=channel, last_ack=self._clock())
        ok = True
        async with viewer.outbox:
            with self._lock:
                self._viewers[viewer.id] = viewer
                total = len(self._viewers)
            logger.info("Viewer connected: %s (%d total)", viewer.id, total)
            if self._snapshot is not None:
                ok = await self._write(viewer, self._snapshot().to_json())
        if not ok:
            await self._evict(viewer)
        return viewer

    async def unregister(self, viewer_id: str) -> bool:
        """Remove a viewer. Returns False if it was not registered."""
        with self._lock:
            viewer = self._viewers.pop(viewer_id, None)
            total = len(self._viewers)
        if viewer is None:
            return False
        logger.info("Viewer disconnected: %s (%d total)", viewer_id, total)
        return True

    def acknowledge(self, viewer_id: str) -> None:
        """Record a heartbeat acknowledgment."""
        with self._lock:
            viewer = self._viewers.get(viewer_id)
            if viewer is not None:
                viewer.last_ack = self._clock()

    def viewer_ids(self) -> list[str]:
        with self._lock:
            return list(self._viewers)

    def __len__(self) -> int:
        with self._lock:
            return len(self._viewers)

    def __contains__(self, viewer_id: str) -> bool:
        with self._lock:
            return viewer_id in self._viewers

    # --- Sending ---

    async def broadcast(self, message: Message) -> int:
        """Send to every registered viewer. Returns how many deliveries succeeded."""
        viewers = self._members()
        if not viewers:
            return 0
        data = message.to_json()
        results = await asyncio.gather(*(self._deliver(viewer, data) for viewer in viewers))
        return sum(results)

    async def send(self, viewer_id: str, message: Message) -> bool:
        """Send to one viewer. Returns False if it is unknown or the send failed."""
        with self._lock:
            viewer = self._viewers.get(viewer_id)
        if viewer is None:
            return False
        return await self._deliver(viewer, message.to_json())

    async def handle_message(self, viewer_id: str, raw: str | bytes) -> None:
        """Process one inbound frame from a viewer.

        Malformed frames get an `error` reply and the viewer stays connected.
        """
        try:
            message = Message.from_json(raw)
        except UnknownMessageType as e:
            logger.info("Unknown message type from viewer %s: %r", viewer_id, e.kind)
            return
        except ProtocolError as e:
            logger.warning("Invalid message from viewer %s: %s", viewer_id, e)
            await self.send(viewer_id, error_message("Invalid message format"))
            return

        if message.type is MessageType.PING:
            self.acknowledge(viewer_id)
            await self.send(viewer_id, pong_message())
        elif message.type is MessageType.PONG:
            self.acknowledge(viewer_id)
        elif message.type is MessageType.GET_TICKERS:
            if self._snapshot is not None:
                await self.send(viewer_id, self._snapshot())
        else:
            logger.debug("Ignoring %s message from viewer %s", message.type.value, viewer_id)

    # --- Heartbeat ---

    async def heartbeat(self) -> list[str]:
        """Run one heartbeat cycle. Returns the ids of evicted viewers."""
        now = self._clock()
        evicted: list[str] = []
        alive: list[Viewer] = []
        for viewer in self._members():
            silent_for = now - viewer.last_ack
            if silent_for > self._client_timeout:
                logger.warning("Evicting viewer: %s", HeartbeatTimeout(viewer.id, silent_for))
                await self._evict(viewer)
                evicted.append(viewer.id)
            else:
                alive.append(viewer)

        if alive:
            probe = ping_message().to_json()
            results = await asyncio.gather(*(self._deliver(viewer, probe) for viewer in alive))
            evicted.extend(viewer.id for viewer, ok in zip(alive, results) if not ok)
        return evicted

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.is_running:
            return
        self._ticker = IntervalTicker(self._heartbeat_interval, immediate=False)
        self._task = asyncio.create_task(self._heartbeat_loop(self._ticker), name="viewer-heartbeat")
        logger.info(
            "Heartbeat started (%.0fs interval, %.0fs timeout)",
            self._heartbeat_interval,
            self._client_timeout,
        )

    async def stop(self) -> None:
        """Stop the heartbeat loop. Viewers stay registered; see close_all()."""
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

    async def close_all(self, code: int = 1001) -> None:
        """Unregister and close every viewer (server shutdown)."""
        with self._lock:
            viewers = list(self._viewers.values())
            self._viewers.clear()
        for viewer in viewers:
            await self._close_channel(viewer, code)
        if viewers:
            logger.info("Closed %d viewer connections", len(viewers))

    # --- Internal ---

    def _members(self) -> list[Viewer]:
        with self._lock:
            return list(self._viewers.values())

    async def _heartbeat_loop(self, ticker: IntervalTicker) -> None:
        async for _ in ticker.ticks():
            try:
                evicted = await self.heartbeat()
                if evicted:
                    logger.info("Heartbeat evicted %d viewers", len(evicted))
            except Exception:
                logger.exception("Heartbeat cycle failed")

    async def _deliver(self, viewer: Viewer, data: str) -> bool:
        async with viewer.outbox:
            ok = await self._write(viewer, data)
        if not ok:
            await self._evict(viewer)
        return ok

    async def _write(self, viewer: Viewer, data: str) -> bool:
        """One bounded send. Caller holds viewer.outbox."""
        try:
            await asyncio.wait_for(viewer.channel.send_text(data), timeout=self._send_timeout)
            return True
        except Exception as e:
            logger.warning("%s", ViewerSendFailure(viewer.id, str(e) or type(e).__name__))
            return False

    async def _evict(self, viewer: Viewer) -> None:
        if await self.unregister(viewer.id):
            await self._close_channel(viewer, 1011)

    async def _close_channel(self, viewer: Viewer, code: int) -> None:
        try:
            await asyncio.wait_for(viewer.channel.close(code=code), timeout=self._send_timeout)
        except Exception as e:
            logger.debug("Closing viewer %s failed: %s", viewer.id, e)
