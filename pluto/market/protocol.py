"""Viewer protocol: JSON messages of the form {type, data, timestamp}."""

from __future__ import annotations

import json
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..errors import ProtocolError, UnknownMessageType
from .models import Quote


class MessageType(str, Enum):
    PRICES = "prices"
    ACTIVE_TICKERS = "activeTickers"
    ERROR = "error"
    PING = "ping"
    PONG = "pong"
    GET_TICKERS = "getTickers"


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True, slots=True)
class Message:
    """One protocol message. `timestamp` is epoch milliseconds."""

    type: MessageType
    data: Any = None
    timestamp: int = field(default_factory=now_ms)

    def to_dict(self) -> dict:
        return {"type": self.type.value, "data": self.data, "timestamp": self.timestamp}

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, raw: str | bytes) -> Message:
        """Parse an inbound frame.

        Raises ProtocolError if the frame is not JSON, not an object, or names
        a message type outside the protocol.
        """
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise ProtocolError(f"Invalid JSON: {exc}") from exc

        if not isinstance(payload, dict):
            raise ProtocolError("Message must be a JSON object")

        kind = payload.get("type")
        try:
            message_type = MessageType(kind)
        except ValueError as exc:
            raise UnknownMessageType(kind) from exc

        timestamp = payload.get("timestamp")
        if not isinstance(timestamp, int) or isinstance(timestamp, bool):
            timestamp = now_ms()
        return cls(type=message_type, data=payload.get("data"), timestamp=timestamp)


def prices_message(quotes: Iterable[Quote]) -> Message:
    return Message(MessageType.PRICES, [quote.to_dict() for quote in quotes])


def active_tickers_message(tickers: Iterable[str]) -> Message:
    return Message(MessageType.ACTIVE_TICKERS, sorted(tickers))


def error_message(text: str) -> Message:
    return Message(MessageType.ERROR, {"message": text})


def ping_message() -> Message:
    return Message(MessageType.PING, {"timestamp": now_ms()})


def pong_message() -> Message:
    return Message(MessageType.PONG, {"timestamp": now_ms()})
