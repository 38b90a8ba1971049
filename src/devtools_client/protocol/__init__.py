"""DevTools protocol message types and codec."""

from .messages import (
    CommandEnvelope,
    EventEnvelope,
    ResponseEnvelope,
    ResponseError,
    decode_message,
    encode_command,
)

__all__ = [
    "CommandEnvelope",
    "EventEnvelope",
    "ResponseEnvelope",
    "ResponseError",
    "decode_message",
    "encode_command",
]
