"""Connection - multiplexes commands and events of many sessions over one transport."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

from .config import ConnectionConfig
from .errors import ConnectionClosed, MalformedMessage, SessionClosed, UnknownSession
from .events import EventHub, MethodFilter, Subscription
from .protocol import (
    CommandEnvelope,
    EventEnvelope,
    ResponseEnvelope,
    decode_message,
    encode_command,
)
from .session import Session, SessionRegistry
from .tracker import RequestTracker
from .transport import Transport, WebSocketTransport

logger = logging.getLogger(__name__)

# Seconds allowed for the transport to close cleanly
CLOSE_TIMEOUT = 5.0

EventHandler = Callable[[Session, EventEnvelope], None]


class ConnectionState(str, Enum):
    """Connection lifecycle states. There is no way back to OPEN."""
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class Connection:
    """Async DevTools protocol client bound to one transport.

    Every domain call funnels through :meth:`send`; every notification
    stream comes from :meth:`subscribe`. One background task reads inbound
    frames in order and routes responses to their callers and events to
    the subscribers of the session that emitted them.
    """

    def __init__(self, transport: Transport, config: ConnectionConfig | None = None):
        self._transport = transport
        self._config = config or ConnectionConfig()
        self._tracker = RequestTracker()
        self._hub = EventHub(max_buffer=self._config.event_buffer_size)
        self._registry = SessionRegistry(self._tracker, self._hub, connection=self)
        self._write_lock = asyncio.Lock()  # One frame fully written before the next
        self._event_handlers: dict[str | None, list[EventHandler]] = {}
        self._state = ConnectionState.OPEN
        self._state_listeners: list[Callable[[ConnectionState], None]] = []
        self._read_task: asyncio.Task | None = None
        self._closed_event = asyncio.Event()
        self._close_reason: str | None = None

    @classmethod
    async def connect(cls, url: str, config: ConnectionConfig | None = None) -> Connection:
        """Open a WebSocket to ``url`` and start dispatching."""
        config = config or ConnectionConfig()
        transport = await WebSocketTransport.connect(
            url,
            max_size=config.max_message_size,
            open_timeout=config.open_timeout,
        )
        connection = cls(transport, config)
        connection.start()
        return connection

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == ConnectionState.OPEN

    @property
    def close_reason(self) -> str | None:
        return self._close_reason

    @property
    def root(self) -> Session:
        """Session standing for the raw connection."""
        return self._registry.root

    @property
    def sessions(self) -> SessionRegistry:
        return self._registry

    @property
    def pending_count(self) -> int:
        """Number of commands awaiting a response."""
        return len(self._tracker)

    @property
    def config(self) -> ConnectionConfig:
        return self._config

    def on_state_change(self, listener: Callable[[ConnectionState], None]) -> None:
        """Register state change listener."""
        self._state_listeners.append(listener)

    def _set_state(self, new_state: ConnectionState) -> None:
        """Update state and notify listeners."""
        old_state = self._state
        self._state = new_state
        if old_state != new_state:
            logger.info(f"Connection state: {old_state.value} -> {new_state.value}")
            for listener in self._state_listeners:
                try:
                    listener(new_state)
                except Exception:
                    logger.exception("State listener error")

    def start(self) -> None:
        """Start the inbound dispatch loop."""
        if self._read_task is not None or not self.is_open:
            return
        self._read_task = asyncio.create_task(self._read_loop())

    async def __aenter__(self) -> Connection:
        self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # Sessions

    def session(self, session_id: str | None) -> Session:
        """Look up a session; None is the root session.

        Raises:
            UnknownSession: If the id is not attached
        """
        return self._registry.resolve(session_id)

    def attach_session(self, session_id: str, parent: Session | str | None = None) -> Session:
        """Register a session the remote side reported as attached.

        Returns the existing session when already attached.
        """
        if not self.is_open:
            raise ConnectionClosed(self._close_reason or "Connection closed")
        return self._registry.create_child(session_id, parent)

    def detach_session(self, session_id: str, reason: str | None = None) -> None:
        """Close a session the remote side reported as detached.

        Pending commands of the session and its descendants fail with
        SessionClosed and their event subscriptions end.
        """
        if session_id is None:
            raise ValueError("The root session is closed with Connection.close()")
        self._registry.close(session_id, reason)

    # Events

    def on_event(self, method: str | None, handler: EventHandler) -> None:
        """Register a synchronous event hook.

        Hooks run inside the dispatch loop, before subscribers see the event,
        so they can attach or detach sessions without racing later frames.
        ``method=None`` matches every event.
        """
        self._event_handlers.setdefault(method, []).append(handler)

    def off_event(self, method: str | None, handler: EventHandler) -> None:
        """Unregister event hook."""
        if method in self._event_handlers:
            try:
                self._event_handlers[method].remove(handler)
            except ValueError:
                pass  # Handler not registered

    def subscribe(
        self,
        method: MethodFilter = None,
        session: Session | None = None,
        envelopes: bool = False,
    ) -> Subscription:
        """Subscribe to events of one session (the root session by default)."""
        return self._hub.subscribe(session or self._registry.root, method, envelopes=envelopes)

    # Commands

    async def send(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        session: Session | None = None,
    ) -> dict[str, Any]:
        """Send a command and wait for its result.

        There is no timeout; wrap the call in ``asyncio.wait_for`` when a
        deadline is needed.

        Raises:
            ProtocolError: If the remote side rejected the command
            SessionClosed: If the session closed before the response arrived
            ConnectionClosed: If the connection closed before the response arrived
        """
        session = session or self._registry.root
        if not self.is_open:
            raise ConnectionClosed(self._close_reason or "Connection closed")
        if session.closed:
            raise SessionClosed(session.session_id)

        command_id, future = self._tracker.allocate(method, session.session_id)
        command = CommandEnvelope(
            id=command_id,
            method=method,
            params=params or {},
            session_id=session.session_id,
        )

        try:
            await self._write(command)
            return await future
        except BaseException:
            self._tracker.discard(command_id)
            if not future.done():
                future.cancel()
            elif not future.cancelled():
                future.exception()  # Mark retrieved, the caller gets the write error
            raise

    async def _write(self, command: CommandEnvelope) -> None:
        """Write one command, serialized with other writers."""
        data = encode_command(command)
        async with self._write_lock:
            if self._config.send_delay:
                await asyncio.sleep(self._config.send_delay)
            if not self.is_open:
                raise ConnectionClosed(self._close_reason or "Connection closed")
            logger.debug(f">>> [{command.id}] {command.method} (session={command.session_id}): {command.params}")
            await self._transport.send(data)

    # Inbound dispatch

    async def _read_loop(self) -> None:
        """Read frames until the transport ends, then close the connection."""
        reason = "Transport closed"
        try:
            async for frame in self._transport.messages():
                self._handle_frame(frame)
            logger.warning("Transport closed by remote side")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Transport error: {e}")
            reason = f"Transport error: {e}"

        if self.is_open:
            await self._shutdown(reason)

    def _handle_frame(self, frame: str | bytes) -> None:
        """Route one inbound frame. Never raises for bad input."""
        try:
            message = decode_message(frame, self._config.max_message_size)
        except MalformedMessage as e:
            logger.warning(f"Dropping malformed message: {e.reason}")
            return
        except Exception:
            logger.exception("Unexpected error decoding message, dropping it")
            return

        if isinstance(message, ResponseEnvelope):
            logger.debug(f"<<< [{message.id}] success={message.success}")
            if message.error is None:
                self._tracker.resolve(message.id, message.result or {})
            else:
                self._tracker.reject(message.id, message.error)
        else:
            self._dispatch_event(message)

    def _dispatch_event(self, event: EventEnvelope) -> None:
        try:
            session = self._registry.resolve(event.session_id)
        except UnknownSession as e:
            logger.debug(f"Dropping event {event.method}: {e}")
            return

        logger.debug(f"<<< Event {event.method} (session={event.session_id}): {event.params}")
        handlers = self._event_handlers.get(event.method, []) + self._event_handlers.get(None, [])
        for handler in handlers:
            try:
                handler(session, event)
            except Exception:
                logger.exception(f"Event handler error for {event.method}")

        self._hub.publish(session, event)

    # Shutdown

    async def close(self, reason: str = "Connection closed by client") -> None:
        """Close the connection, failing everything still pending.

        Closing an already closed connection is a no-op.
        """
        if not self.is_open:
            await self._closed_event.wait()
            return
        await self._shutdown(reason)

    async def wait_closed(self) -> None:
        """Wait until the connection is closed."""
        await self._closed_event.wait()

    async def _shutdown(self, reason: str) -> None:
        self._close_reason = reason
        self._set_state(ConnectionState.CLOSING)

        self._registry.close(None, reason)

        task = self._read_task
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        try:
            await asyncio.wait_for(self._transport.close(), timeout=CLOSE_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning("Transport did not close in time")
        except Exception:
            logger.exception("Error closing transport")

        self._set_state(ConnectionState.CLOSED)
        self._closed_event.set()
