"""Connection configuration and logging setup."""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass

from .protocol.messages import MAX_MESSAGE_SIZE


@dataclass
class ConnectionConfig:
    """Tunables for a Connection.

    Attributes:
        max_message_size: Largest inbound frame accepted, in bytes
        send_delay: Seconds to wait before writing each command
        event_buffer_size: Per-subscriber buffer bound, None for unbounded.
            When full, the oldest buffered event is dropped.
        open_timeout: Seconds allowed for the WebSocket opening handshake
    """

    max_message_size: int = MAX_MESSAGE_SIZE
    send_delay: float = 0.0
    event_buffer_size: int | None = None
    open_timeout: float = 10.0

    def __post_init__(self) -> None:
        if self.max_message_size <= 0:
            raise ValueError(f"max_message_size must be positive: {self.max_message_size}")
        if self.send_delay < 0:
            raise ValueError(f"send_delay must not be negative: {self.send_delay}")
        if self.event_buffer_size is not None and self.event_buffer_size <= 0:
            raise ValueError(f"event_buffer_size must be positive: {self.event_buffer_size}")
        if self.open_timeout <= 0:
            raise ValueError(f"open_timeout must be positive: {self.open_timeout}")

    @classmethod
    def from_env(cls) -> ConnectionConfig:
        """Build a config from DEVTOOLS_* environment variables."""
        kwargs: dict[str, object] = {}

        value = _env("DEVTOOLS_MAX_MESSAGE_SIZE", int)
        if value is not None:
            kwargs["max_message_size"] = value

        value = _env("DEVTOOLS_SEND_DELAY", float)
        if value is not None:
            kwargs["send_delay"] = value

        # "0" or "" means unbounded
        raw = os.environ.get("DEVTOOLS_EVENT_BUFFER_SIZE")
        if raw:
            size = _env("DEVTOOLS_EVENT_BUFFER_SIZE", int)
            kwargs["event_buffer_size"] = size or None

        value = _env("DEVTOOLS_OPEN_TIMEOUT", float)
        if value is not None:
            kwargs["open_timeout"] = value

        return cls(**kwargs)  # type: ignore[arg-type]


def _env(name: str, convert: type) -> int | float | None:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return convert(raw.strip())
    except ValueError:
        raise ValueError(f"Invalid value for {name}: {raw!r}") from None


def configure_logging() -> None:
    """Configure logging based on environment."""
    level = os.environ.get("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
