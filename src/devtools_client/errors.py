"""Errors raised by the DevTools connection engine."""

from __future__ import annotations

from typing import Any


class DevToolsError(Exception):
    """Base exception for connection engine errors."""

    pass


class ProtocolError(DevToolsError):
    """Raised when the remote side answers a command with an error envelope."""

    def __init__(
        self,
        code: int,
        message: str,
        data: Any = None,
        method: str | None = None,
    ):
        self.code = code
        self.message = message
        self.data = data
        self.method = method
        prefix = f"{method}: " if method else ""
        super().__init__(f"{prefix}{message} ({code})")


class MalformedMessage(DevToolsError):
    """Raised when an inbound frame cannot be decoded."""

    def __init__(self, reason: str, raw: str | bytes | None = None):
        self.reason = reason
        self.raw = raw
        super().__init__(reason)


class UnknownSession(DevToolsError):
    """Raised when a message references a session that is not registered."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Unknown session: {session_id}")


class ConnectionClosed(DevToolsError):
    """Raised for commands that cannot complete because the connection closed."""

    def __init__(self, reason: str = "Connection closed"):
        self.reason = reason
        super().__init__(reason)


class SessionClosed(ConnectionClosed):
    """Raised for commands that cannot complete because their session closed."""

    def __init__(self, session_id: str | None, reason: str | None = None):
        self.session_id = session_id
        super().__init__(reason or f"Session closed: {session_id}")
