"""Request tracker - command id allocation and pending command table."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from .errors import ConnectionClosed, ProtocolError
from .protocol import ResponseError

logger = logging.getLogger(__name__)

_ALL_SESSIONS = object()


@dataclass
class PendingCommand:
    """A command waiting for its response."""
    id: int
    method: str
    future: asyncio.Future[dict[str, Any]]
    session_id: str | None = None


class RequestTracker:
    """Owns the command id space and the in-flight command table.

    All mutation happens without suspension points, so allocation and
    resolution are atomic with respect to other tasks on the event loop.
    """

    def __init__(self):
        self._next_id = 1
        self._pending: dict[int, PendingCommand] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, command_id: int) -> bool:
        return command_id in self._pending

    def pending_ids(self, session_id: Any = _ALL_SESSIONS) -> list[int]:
        """Ids in flight, optionally only those sent through one session.

        Pass None for the root session; omit the argument for every session.
        """
        if session_id is _ALL_SESSIONS:
            return list(self._pending)
        return [p.id for p in self._pending.values() if p.session_id == session_id]

    def allocate(
        self, method: str, session_id: str | None = None
    ) -> tuple[int, asyncio.Future[dict[str, Any]]]:
        """Register a new pending command and return its id and future."""
        command_id = self._next_id
        self._next_id += 1
        future: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[command_id] = PendingCommand(
            id=command_id, method=method, future=future, session_id=session_id
        )
        return command_id, future

    def resolve(self, command_id: int, result: dict[str, Any]) -> bool:
        """Complete a command successfully. Returns False for unknown ids."""
        pending = self._pending.pop(command_id, None)
        if pending is None:
            logger.debug(f"Response for unknown command id {command_id}, ignoring")
            return False
        if not pending.future.done():
            pending.future.set_result(result)
        return True

    def reject(self, command_id: int, error: ResponseError) -> bool:
        """Fail a command with a ProtocolError. Returns False for unknown ids."""
        pending = self._pending.pop(command_id, None)
        if pending is None:
            logger.debug(f"Error for unknown command id {command_id}, ignoring")
            return False
        if not pending.future.done():
            pending.future.set_exception(
                ProtocolError(error.code, error.message, error.data, pending.method)
            )
        return True

    def discard(self, command_id: int) -> None:
        """Forget a command whose caller no longer waits for it."""
        self._pending.pop(command_id, None)

    def cancel_all(
        self,
        exc_factory: Callable[[PendingCommand], Exception] | None = None,
        session_ids: Iterable[str | None] | None = None,
    ) -> int:
        """Fail pending commands, optionally only those of the given sessions.

        Returns:
            Number of commands failed
        """
        if exc_factory is None:
            exc_factory = lambda pending: ConnectionClosed()  # noqa: E731

        if session_ids is None:
            doomed = list(self._pending.values())
        else:
            scope = set(session_ids)
            doomed = [p for p in self._pending.values() if p.session_id in scope]

        for pending in doomed:
            del self._pending[pending.id]
            if not pending.future.done():
                pending.future.set_exception(exc_factory(pending))

        if doomed:
            logger.debug(f"Cancelled {len(doomed)} pending command(s)")
        return len(doomed)
