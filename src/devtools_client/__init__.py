"""Client engine for the DevTools remote-debugging protocol.

Multiplexes correlated commands and per-session event streams over a
single message transport.
"""

from .config import ConnectionConfig, configure_logging
from .connection import Connection, ConnectionState
from .errors import (
    ConnectionClosed,
    DevToolsError,
    MalformedMessage,
    ProtocolError,
    SessionClosed,
    UnknownSession,
)
from .events import EventHub, Subscription
from .protocol import CommandEnvelope, EventEnvelope, ResponseEnvelope
from .session import Session, SessionRegistry
from .tracker import RequestTracker
from .transport import Transport, WebSocketTransport

__version__ = "0.1.0"

__all__ = [
    "CommandEnvelope",
    "Connection",
    "ConnectionClosed",
    "ConnectionConfig",
    "ConnectionState",
    "DevToolsError",
    "EventEnvelope",
    "EventHub",
    "MalformedMessage",
    "ProtocolError",
    "RequestTracker",
    "ResponseEnvelope",
    "Session",
    "SessionClosed",
    "SessionRegistry",
    "Subscription",
    "Transport",
    "UnknownSession",
    "WebSocketTransport",
    "configure_logging",
]
