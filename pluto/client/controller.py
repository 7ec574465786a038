"""Viewer-side connection state machine with reconnect backoff."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum

from ..errors import MaxReconnectAttemptsExceeded, ProtocolError
from ..market.protocol import Message, MessageType, pong_message
from .transport import Channel, Connector, websocket_connector

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECT_PENDING = "reconnect_pending"
    FAILED = "failed"


class EventKind(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    MESSAGE = "message"
    RECONNECT_SCHEDULED = "reconnect_scheduled"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ConnectionEvent:
    kind: EventKind
    message: Message | None = None
    attempt: int = 0
    delay: float = 0.0
    reason: str | None = None


# Message kinds handed to the application; everything else is transport plumbing.
APPLICATION_MESSAGES = frozenset(
    {MessageType.PRICES, MessageType.ACTIVE_TICKERS, MessageType.ERROR, MessageType.PONG}
)


def backoff_delay(attempt: int, base_delay: float = 3.0, max_delay: float = 10.0) -> float:
    """Delay before reconnect attempt `attempt` (1-based): base * 1.5^(attempt-1), capped."""
    return min(base_delay * 1.5 ** (attempt - 1), max_delay)


class ClientConnectionController:
    """Keeps one connection to the quote server alive.

    States: disconnected -> connecting -> connected. An involuntary loss
    moves to reconnect_pending and retries with exponential backoff, up to
    `max_attempts`; after that the controller sits in failed until
    manual_reconnect(). disconnect() is voluntary and never reconnects.

    Everything the application needs arrives as ConnectionEvent records on
    `events`. Transitions are serialized by an internal lock. Each
    connection attempt carries a generation number so a late handshake or a
    dying reader from an older attempt cannot disturb the current one.
    """

    def __init__(
        self,
        url: str,
        connector: Connector | None = None,
        *,
        max_attempts: int = 3,
        base_delay: float = 3.0,
        max_delay: float = 10.0,
        grace_delay: float = 1.0,
        handshake_timeout: float = 10.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.url = url
        self._connector = connector or websocket_connector
        self._max_attempts = max_attempts
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._grace_delay = grace_delay
        self._handshake_timeout = handshake_timeout
        self._sleep = sleep

        self.events: asyncio.Queue[ConnectionEvent] = asyncio.Queue()
        self._state = ConnectionState.DISCONNECTED
        self._attempts = 0
        self._last_error: str | None = None
        self._generation = 0
        self._channel: Channel | None = None
        self._reader: asyncio.Task | None = None
        self._retry: asyncio.Task | None = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def reconnect_attempts(self) -> int:
        return self._attempts

    @property
    def last_error(self) -> str | None:
        return self._last_error

    # --- Public API ---

    async def connect(self) -> None:
        """Open a connection. No-op while already connecting or connected."""
        async with self._lock:
            if self._state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
                logger.debug("Already connected or connecting, skipping")
                return
            self._cancel_retry()
            generation = self._begin_attempt()
        await self._open(generation)

    async def disconnect(self) -> None:
        """Voluntarily close. Cancels any pending retry. Safe from any state."""
        async with self._lock:
            self._cancel_retry()
            self._generation += 1
            channel, self._channel = self._channel, None
            reader, self._reader = self._reader, None
            previous = self._state
            self._state = ConnectionState.DISCONNECTED

        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            await asyncio.gather(reader, return_exceptions=True)
        if channel is not None:
            await self._close_quietly(channel)
        if previous is ConnectionState.CONNECTED:
            self._emit(ConnectionEvent(EventKind.DISCONNECTED, reason="Manual disconnect"))
        logger.info("Disconnected from %s", self.url)

    async def manual_reconnect(self) -> None:
        """Reset the attempt counter, disconnect, and connect again after the grace delay."""
        logger.info("Manual reconnect requested")
        await self.disconnect()
        async with self._lock:
            self._attempts = 0
            self._last_error = None
            self._retry = asyncio.create_task(self._connect_after_grace(), name="pluto-client-grace")

    async def send(self, message: Message) -> bool:
        """Send a message if connected. Returns False (and logs) otherwise."""
        channel = self._channel
        if self._state is not ConnectionState.CONNECTED or channel is None:
            logger.warning("Not connected; cannot send %s", message.type.value)
            return False
        try:
            await channel.send(message.to_json())
        except Exception as e:
            logger.warning("Sending %s failed: %s", message.type.value, e)
            return False
        return True

    async def request_tickers(self) -> bool:
        return await self.send(Message(MessageType.GET_TICKERS))

    # --- Internal ---

    def _begin_attempt(self) -> int:
        self._generation += 1
        self._state = ConnectionState.CONNECTING
        self._last_error = None
        return self._generation

    def _cancel_retry(self) -> None:
        retry, self._retry = self._retry, None
        if retry is not None and retry is not asyncio.current_task() and not retry.done():
            retry.cancel()

    async def _open(self, generation: int) -> None:
        logger.info("Connecting to %s", self.url)
        try:
            channel = await asyncio.wait_for(
                self._connector(self.url), timeout=self._handshake_timeout
            )
        except Exception as e:
            reason = str(e) or type(e).__name__
            logger.warning("Connection to %s failed: %s", self.url, reason)
            await self._on_lost(generation, f"Connection error: {reason}")
            return

        async with self._lock:
            current = generation == self._generation and self._state is ConnectionState.CONNECTING
            if current:
                self._channel = channel
                self._state = ConnectionState.CONNECTED
                self._attempts = 0
                self._last_error = None
                self._emit(ConnectionEvent(EventKind.CONNECTED))
                self._reader = asyncio.create_task(
                    self._read_loop(generation, channel), name="pluto-client-reader"
                )
        if not current:
            # disconnect() ran while the handshake was in flight
            await self._close_quietly(channel)
            return
        logger.info("Connected to %s", self.url)

    async def _read_loop(self, generation: int, channel: Channel) -> None:
        try:
            while True:
                raw = await channel.recv()
                await self._dispatch(channel, raw)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            reason = str(e) or type(e).__name__
        await self._on_lost(generation, f"Connection lost: {reason}")

    async def _dispatch(self, channel: Channel, raw: str | bytes) -> None:
        try:
            message = Message.from_json(raw)
        except ProtocolError as e:
            logger.warning("Dropping malformed message: %s", e)
            return

        if message.type is MessageType.PING:
            try:
                await channel.send(pong_message().to_json())
            except Exception as e:
                logger.warning("Answering heartbeat failed: %s", e)
        elif message.type in APPLICATION_MESSAGES:
            self._emit(ConnectionEvent(EventKind.MESSAGE, message=message))
        else:
            logger.debug("Ignoring %s message from server", message.type.value)

    async def _on_lost(self, generation: int, reason: str) -> None:
        async with self._lock:
            if generation != self._generation:
                return
            if self._state not in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
                return

            was_connected = self._state is ConnectionState.CONNECTED
            self._channel = None
            self._reader = None
            self._last_error = reason
            if was_connected:
                self._emit(ConnectionEvent(EventKind.DISCONNECTED, reason=reason))

            if self._attempts < self._max_attempts:
                self._attempts += 1
                delay = backoff_delay(self._attempts, self._base_delay, self._max_delay)
                self._state = ConnectionState.RECONNECT_PENDING
                self._retry = asyncio.create_task(
                    self._retry_after(delay), name="pluto-client-retry"
                )
                logger.info(
                    "Reconnecting in %.0fms (attempt %d/%d)",
                    delay * 1000,
                    self._attempts,
                    self._max_attempts,
                )
                self._emit(
                    ConnectionEvent(
                        EventKind.RECONNECT_SCHEDULED,
                        attempt=self._attempts,
                        delay=delay,
                        reason=reason,
                    )
                )
            else:
                failure = MaxReconnectAttemptsExceeded(self._attempts)
                self._state = ConnectionState.FAILED
                self._last_error = str(failure)
                logger.error("%s (%d attempts)", failure, self._attempts)
                self._emit(
                    ConnectionEvent(EventKind.FAILED, attempt=self._attempts, reason=str(failure))
                )

    async def _retry_after(self, delay: float) -> None:
        await self._sleep(delay)
        async with self._lock:
            # A manual connect may have won the race while we slept.
            if self._state is not ConnectionState.RECONNECT_PENDING:
                return
            self._retry = None
            generation = self._begin_attempt()
        await self._open(generation)

    async def _connect_after_grace(self) -> None:
        await self._sleep(self._grace_delay)
        await self.connect()

    def _emit(self, event: ConnectionEvent) -> None:
        self.events.put_nowait(event)

    @staticmethod
    async def _close_quietly(channel: Channel) -> None:
        try:
            await channel.close()
        except Exception as e:
            logger.debug("Closing channel failed: %s", e)
