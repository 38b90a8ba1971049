"""Event hub - per-session multicast of protocol events."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from .protocol import EventEnvelope

if TYPE_CHECKING:
    from .session import Session

logger = logging.getLogger(__name__)

MethodFilter = str | Callable[[str], bool] | None


class Subscription:
    """A standing registration for events of one session.

    Iterate with ``async for`` to receive event params (or whole envelopes
    when ``envelopes=True``). Iteration ends when the subscription is
    cancelled or its session closes.
    """

    def __init__(
        self,
        hub: EventHub,
        session: Session,
        method: MethodFilter = None,
        envelopes: bool = False,
        max_buffer: int | None = None,
    ):
        self._hub = hub
        self._session = session
        self._method = method
        self._envelopes = envelopes
        self._buffer: deque[EventEnvelope] = deque()
        self._max_buffer = max_buffer
        self._waiters: list[asyncio.Future[None]] = []
        self._closed = False
        self.dropped = 0

    @property
    def session(self) -> Session:
        return self._session

    @property
    def method(self) -> MethodFilter:
        return self._method

    @property
    def closed(self) -> bool:
        return self._closed

    def matches(self, method: str) -> bool:
        if self._method is None:
            return True
        if callable(self._method):
            return bool(self._method(method))
        return self._method == method

    def cancel(self) -> None:
        """Stop delivery and end iteration. Safe to call repeatedly."""
        if self._closed:
            return
        self._hub._unregister(self)
        self._finish()

    def _finish(self) -> None:
        self._closed = True
        self._wake()

    def _deliver(self, event: EventEnvelope) -> None:
        if self._closed:
            return
        if self._max_buffer is not None and len(self._buffer) >= self._max_buffer:
            self._buffer.popleft()
            self.dropped += 1
            logger.warning(
                f"Subscriber buffer full ({self._max_buffer}), "
                f"dropped oldest event for {event.method}"
            )
        self._buffer.append(event)
        self._wake()

    def _wake(self) -> None:
        # Every reader re-checks the buffer, so waking all of them is safe
        for waiter in self._waiters:
            if not waiter.done():
                waiter.set_result(None)

    def get_nowait(self) -> Any:
        """Pop one buffered item. Raises asyncio.QueueEmpty when none is buffered."""
        if not self._buffer:
            raise asyncio.QueueEmpty
        return self._unwrap(self._buffer.popleft())

    def _unwrap(self, event: EventEnvelope) -> Any:
        return event if self._envelopes else event.params

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> Any:
        # Buffered events are still handed out after the session closes
        while not self._buffer:
            if self._closed:
                raise StopAsyncIteration
            waiter = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)
            try:
                await waiter
            finally:
                self._waiters.remove(waiter)
        return self._unwrap(self._buffer.popleft())

    async def __aenter__(self) -> Subscription:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.cancel()

    def __repr__(self) -> str:
        return (
            f"Subscription(session={self._session.session_id!r}, "
            f"method={self._method!r}, closed={self._closed})"
        )


class EventHub:
    """Delivers events to subscriptions registered on the exact same session.

    Exact method subscriptions are indexed by (session, method); predicate
    and catch-all subscriptions are kept per session.
    """

    def __init__(self, max_buffer: int | None = None):
        if max_buffer is not None and max_buffer <= 0:
            raise ValueError(f"max_buffer must be positive: {max_buffer}")
        self._max_buffer = max_buffer
        self._by_method: dict[tuple[str | None, str], list[Subscription]] = {}
        self._filtered: dict[str | None, list[Subscription]] = {}

    def subscribe(
        self, session: Session, method: MethodFilter = None, envelopes: bool = False
    ) -> Subscription:
        """Subscribe to events of a session.

        Args:
            session: Session whose events are wanted
            method: Exact method name, predicate over method names, or None for all
            envelopes: Yield EventEnvelope objects instead of params dicts
        """
        subscription = Subscription(
            self, session, method, envelopes=envelopes, max_buffer=self._max_buffer
        )
        if session.closed:
            subscription._finish()
            return subscription

        if isinstance(method, str):
            key = (session.session_id, method)
            self._by_method.setdefault(key, []).append(subscription)
        else:
            self._filtered.setdefault(session.session_id, []).append(subscription)
        return subscription

    def publish(self, session: Session, event: EventEnvelope) -> int:
        """Deliver an event. Returns the number of subscriptions it reached."""
        targets = list(self._by_method.get((session.session_id, event.method), ()))
        for subscription in self._filtered.get(session.session_id, ()):
            try:
                if subscription.matches(event.method):
                    targets.append(subscription)
            except Exception:
                logger.exception(f"Event filter error for {event.method}")

        for subscription in targets:
            subscription._deliver(event)
        return len(targets)

    def subscriptions(self, session: Session) -> list[Subscription]:
        """Live subscriptions of a session."""
        result = [
            s
            for (session_id, _), subs in self._by_method.items()
            if session_id == session.session_id
            for s in subs
        ]
        result.extend(self._filtered.get(session.session_id, ()))
        return result

    def close_session(self, session: Session) -> int:
        """End every subscription of a session. Returns how many were ended."""
        doomed = self.subscriptions(session)
        for key in [k for k in self._by_method if k[0] == session.session_id]:
            del self._by_method[key]
        self._filtered.pop(session.session_id, None)
        for subscription in doomed:
            subscription._finish()
        return len(doomed)

    def _unregister(self, subscription: Subscription) -> None:
        session_id = subscription.session.session_id
        if isinstance(subscription.method, str):
            key = (session_id, subscription.method)
            subs = self._by_method.get(key)
        else:
            key = session_id
            subs = self._filtered.get(key)
        if not subs:
            return
        try:
            subs.remove(subscription)
        except ValueError:
            return
        if not subs:
            if isinstance(subscription.method, str):
                del self._by_method[key]
            else:
                del self._filtered[key]
