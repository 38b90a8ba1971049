"""Session registry - the tree of sessions multiplexed over one connection."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from ..errors import ConnectionClosed, SessionClosed, UnknownSession
from ..events import EventHub, MethodFilter, Subscription
from ..tracker import PendingCommand, RequestTracker

if TYPE_CHECKING:
    from ..connection import Connection

logger = logging.getLogger(__name__)


class Session:
    """A routing scope for one attached target.

    The root session (``session_id is None``) stands for the raw connection.
    Domain modules are constructed against a Session and only use
    :meth:`send` and :meth:`subscribe`.
    """

    def __init__(
        self,
        session_id: str | None,
        parent: Session | None = None,
        connection: Connection | None = None,
    ):
        self.session_id = session_id
        self.parent = parent
        self.children: dict[str, Session] = {}
        self._connection = connection
        self._closed = False
        self._closed_event = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def is_root(self) -> bool:
        return self.session_id is None

    @property
    def connection(self) -> Connection | None:
        return self._connection

    def descendants(self) -> list[Session]:
        """All sessions below this one, deepest first."""
        result: list[Session] = []
        for child in list(self.children.values()):
            result.extend(child.descendants())
            result.append(child)
        return result

    async def send(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Send a command routed to this session's target."""
        if self._connection is None:
            raise RuntimeError("Session is not bound to a connection")
        return await self._connection.send(method, params, session=self)

    def subscribe(self, method: MethodFilter = None, envelopes: bool = False) -> Subscription:
        """Subscribe to events emitted by this session's target."""
        if self._connection is None:
            raise RuntimeError("Session is not bound to a connection")
        return self._connection.subscribe(method, session=self, envelopes=envelopes)

    async def wait_closed(self) -> None:
        """Wait until the session is closed."""
        await self._closed_event.wait()

    def _mark_closed(self) -> None:
        self._closed = True
        self._closed_event.set()

    def __repr__(self) -> str:
        return f"Session({self.session_id!r}, closed={self._closed})"


class SessionRegistry:
    """Owns every Session of a connection and cascades their closure.

    Closing a session closes its subtree, fails the subtree's pending
    commands and ends the subtree's event subscriptions.
    """

    def __init__(
        self,
        tracker: RequestTracker,
        hub: EventHub,
        connection: Connection | None = None,
    ):
        self._tracker = tracker
        self._hub = hub
        self._connection = connection
        self._root = Session(None, connection=connection)
        self._sessions: dict[str, Session] = {}

    @property
    def root(self) -> Session:
        """The session bound to the physical connection."""
        return self._root

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def get(self, session_id: str | None) -> Session | None:
        if session_id is None:
            return self._root
        return self._sessions.get(session_id)

    def sessions(self) -> list[Session]:
        """Attached child sessions (the root is not included)."""
        return list(self._sessions.values())

    def create_child(self, session_id: str, parent: Session | str | None = None) -> Session:
        """Register a newly attached session.

        Returns the existing session if ``session_id`` is already registered.

        Raises:
            UnknownSession: If ``parent`` names an unregistered session
            SessionClosed: If the parent session is closed
        """
        existing = self._sessions.get(session_id)
        if existing is not None:
            logger.debug(f"Session {session_id} already registered")
            return existing

        if parent is None or isinstance(parent, str):
            parent_session = self.resolve(parent)
        else:
            parent_session = parent
        if parent_session.closed:
            raise SessionClosed(
                parent_session.session_id,
                f"Cannot attach {session_id} to closed session {parent_session.session_id}",
            )

        session = Session(session_id, parent=parent_session, connection=self._connection)
        parent_session.children[session_id] = session
        self._sessions[session_id] = session
        logger.info(f"Session attached: {session_id} (parent: {parent_session.session_id})")
        return session

    def resolve(self, session_id: str | None) -> Session:
        """Map an envelope's optional sessionId to its Session.

        Raises:
            UnknownSession: If the id is not registered
        """
        session = self.get(session_id)
        if session is None:
            raise UnknownSession(session_id)
        return session

    def close(self, session_id: str | None, reason: str | None = None) -> list[Session]:
        """Close a session and all of its descendants.

        Closing an unknown or already-closed session is a no-op.

        Returns:
            The sessions closed by this call, deepest first
        """
        session = self.get(session_id)
        if session is None or session.closed:
            return []

        doomed = session.descendants() + [session]
        scope = {s.session_id for s in doomed}

        if session.is_root:
            def make_error(pending: PendingCommand) -> Exception:
                return ConnectionClosed(reason or "Connection closed")
        else:
            def make_error(pending: PendingCommand) -> Exception:
                return SessionClosed(pending.session_id, reason)

        cancelled = self._tracker.cancel_all(make_error, session_ids=scope)

        ended = 0
        for s in doomed:
            s._mark_closed()
            ended += self._hub.close_session(s)
            if s.session_id is not None:
                self._sessions.pop(s.session_id, None)
            s.children.clear()

        if session.parent is not None:
            session.parent.children.pop(session.session_id, None)

        logger.info(
            f"Closed {len(doomed)} session(s) under {session_id!r}: "
            f"{cancelled} command(s) cancelled, {ended} subscription(s) ended"
        )
        return doomed
