"""Session multiplexing."""

from .registry import Session, SessionRegistry

__all__ = ["Session", "SessionRegistry"]
