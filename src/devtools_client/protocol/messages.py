"""DevTools protocol envelopes and their wire encoding."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from ..errors import MalformedMessage

# Default inbound frame limit, screenshots and heap snapshots can be large
MAX_MESSAGE_SIZE = 100 * 1024 * 1024


@dataclass
class CommandEnvelope:
    """Outbound command message."""
    id: int
    method: str
    params: dict[str, Any] = field(default_factory=dict)
    session_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "method": self.method,
            "params": self.params,
        }
        if self.session_id is not None:
            d["sessionId"] = self.session_id
        return d

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))


@dataclass
class ResponseError:
    """Error payload of a failed command."""
    code: int
    message: str
    data: Any = None

    @classmethod
    def from_dict(cls, data: Any) -> ResponseError:
        if not isinstance(data, dict):
            raise MalformedMessage("Response 'error' must be an object")
        code = data.get("code")
        if not _is_int(code):
            raise MalformedMessage("Response error 'code' must be an integer")
        message = data.get("message", "")
        if not isinstance(message, str):
            raise MalformedMessage("Response error 'message' must be a string")
        return cls(code=code, message=message, data=data.get("data"))


@dataclass
class ResponseEnvelope:
    """Inbound command response. Exactly one of result/error is set."""
    id: int
    result: dict[str, Any] | None = None
    error: ResponseError | None = None
    session_id: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResponseEnvelope:
        msg_id = data["id"]
        if not _is_int(msg_id):
            raise MalformedMessage("Response 'id' must be an integer")

        has_result = "result" in data
        has_error = "error" in data
        if has_result == has_error:
            raise MalformedMessage(
                f"Response {msg_id} must carry exactly one of 'result' or 'error'"
            )

        result = None
        error = None
        if has_result:
            result = data["result"]
            if not isinstance(result, dict):
                raise MalformedMessage(f"Response {msg_id} 'result' must be an object")
        else:
            error = ResponseError.from_dict(data["error"])

        return cls(
            id=msg_id,
            result=result,
            error=error,
            session_id=_session_id(data),
        )


@dataclass
class EventEnvelope:
    """Inbound event notification."""
    method: str
    params: dict[str, Any] = field(default_factory=dict)
    session_id: str | None = None

    @property
    def domain(self) -> str:
        """Domain part of the method name, e.g. 'Runtime'."""
        return self.method.split(".", 1)[0]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EventEnvelope:
        method = data["method"]
        if not isinstance(method, str) or not method:
            raise MalformedMessage("Event 'method' must be a non-empty string")
        params = data.get("params")
        if params is None:
            params = {}
        elif not isinstance(params, dict):
            raise MalformedMessage(f"Event {method} 'params' must be an object")
        return cls(method=method, params=params, session_id=_session_id(data))


def encode_command(command: CommandEnvelope) -> str:
    """Encode a command for the wire."""
    return command.to_json()


def decode_message(
    raw: str | bytes, max_size: int = MAX_MESSAGE_SIZE
) -> ResponseEnvelope | EventEnvelope:
    """Decode one inbound frame.

    ``max_size`` is in bytes; text frames are measured UTF-8 encoded.

    Raises:
        MalformedMessage: If the frame is not a well-formed response or event
    """
    size = _frame_size(raw, max_size)
    if size > max_size:
        raise MalformedMessage(f"Message too large: {size} > {max_size}")

    try:
        data = json.loads(raw)
    except (TypeError, ValueError, RecursionError) as e:
        raise MalformedMessage(f"Invalid JSON: {e}", raw) from e

    if not isinstance(data, dict):
        raise MalformedMessage("Message must be a JSON object", raw)

    try:
        if "id" in data:
            return ResponseEnvelope.from_dict(data)
        elif "method" in data:
            return EventEnvelope.from_dict(data)
        else:
            raise MalformedMessage("Message has neither 'id' nor 'method'")
    except MalformedMessage as e:
        if e.raw is None:
            e.raw = raw
        raise


def _frame_size(raw: str | bytes, max_size: int) -> int:
    if isinstance(raw, (bytes, bytearray)):
        return len(raw)
    # A UTF-8 character takes 1 to 4 bytes
    if len(raw) > max_size or len(raw) * 4 <= max_size:
        return len(raw)
    return len(raw.encode("utf-8"))


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _session_id(data: dict[str, Any]) -> str | None:
    session_id = data.get("sessionId")
    if session_id is not None and not isinstance(session_id, str):
        raise MalformedMessage("'sessionId' must be a string")
    return session_id
