"""Runtime settings, read from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from .errors import ConfigError


def _env_str(name: str, default: str) -> str:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip()


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {raw!r}")
    return value


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {raw!r}")
    return value


def _env_list(name: str) -> tuple[str, ...]:
    raw = os.environ.get(name, "")
    return tuple(item.strip().upper() for item in raw.split(",") if item.strip())


@dataclass(frozen=True, slots=True)
class Settings:
    """Engine settings. Durations are in seconds."""

    massive_api_key: str = ""
    poll_interval: float = 0.5
    cache_ttl: float = 0.2
    retrieval_timeout: float = 1.0
    open_timeout: float = 10.0
    heartbeat_interval: float = 60.0
    client_timeout: float = 120.0
    send_timeout: float = 5.0
    ticker_suffix: str = "USD"
    history_size: int = 20
    default_tickers: tuple[str, ...] = field(default_factory=tuple)
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    @classmethod
    def from_env(cls) -> Settings:
        """Build settings from the environment. Blank values use the defaults.

        Raises ConfigError if a numeric variable cannot be parsed.
        """
        defaults = cls()
        return cls(
            massive_api_key=_env_str("MASSIVE_API_KEY", ""),
            poll_interval=_env_float("PLUTO_POLL_INTERVAL", defaults.poll_interval),
            cache_ttl=_env_float("PLUTO_CACHE_TTL", defaults.cache_ttl),
            retrieval_timeout=_env_float("PLUTO_RETRIEVAL_TIMEOUT", defaults.retrieval_timeout),
            open_timeout=_env_float("PLUTO_OPEN_TIMEOUT", defaults.open_timeout),
            heartbeat_interval=_env_float("PLUTO_HEARTBEAT_INTERVAL", defaults.heartbeat_interval),
            client_timeout=_env_float("PLUTO_CLIENT_TIMEOUT", defaults.client_timeout),
            send_timeout=_env_float("PLUTO_SEND_TIMEOUT", defaults.send_timeout),
            ticker_suffix=_env_str("PLUTO_TICKER_SUFFIX", defaults.ticker_suffix).upper(),
            history_size=_env_int("PLUTO_HISTORY_SIZE", defaults.history_size),
            default_tickers=_env_list("PLUTO_DEFAULT_TICKERS"),
            log_level=_env_str("PLUTO_LOG_LEVEL", defaults.log_level).upper() or "INFO",
            host=_env_str("PLUTO_HOST", defaults.host) or defaults.host,
            port=_env_int("PLUTO_PORT", defaults.port),
        )
