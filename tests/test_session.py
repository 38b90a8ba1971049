"""Tests for the session registry."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from devtools_client.errors import ConnectionClosed, SessionClosed, UnknownSession
from devtools_client.events import EventHub
from devtools_client.session import Session, SessionRegistry
from devtools_client.tracker import RequestTracker


@pytest.fixture
def tracker():
    return RequestTracker()


@pytest.fixture
def hub():
    return EventHub()


@pytest.fixture
def registry(tracker, hub):
    return SessionRegistry(tracker, hub)


class TestSessionRegistryInit:
    """Tests for SessionRegistry initialization."""

    def test_root_always_present(self, registry):
        """Test the root session exists and has no id."""
        assert registry.root.session_id is None
        assert registry.root.is_root
        assert not registry.root.closed
        assert len(registry) == 0

    def test_resolve_none_is_root(self, registry):
        """Test an absent sessionId resolves to the root."""
        assert registry.resolve(None) is registry.root


class TestCreateChild:
    """Tests for create_child."""

    def test_create_child_under_root(self, registry):
        """Test attaching a session under the root."""
        session = registry.create_child("S1")

        assert session.session_id == "S1"
        assert session.parent is registry.root
        assert registry.root.children == {"S1": session}
        assert "S1" in registry
        assert registry.resolve("S1") is session

    def test_create_child_is_idempotent(self, registry):
        """Test attaching the same id twice returns the existing session."""
        first = registry.create_child("S1")

        assert registry.create_child("S1") is first
        assert len(registry) == 1

    def test_create_nested_child_by_id(self, registry):
        """Test attaching under a parent given by id."""
        parent = registry.create_child("S1")
        child = registry.create_child("S2", parent="S1")

        assert child.parent is parent
        assert parent.children["S2"] is child

    def test_create_under_unknown_parent(self, registry):
        """Test attaching under an unknown parent id fails."""
        with pytest.raises(UnknownSession):
            registry.create_child("S2", parent="nope")

    def test_create_under_closed_parent(self, registry):
        """Test attaching under a closed parent fails."""
        parent = registry.create_child("S1")
        registry.close("S1")

        with pytest.raises(SessionClosed):
            registry.create_child("S2", parent=parent)

    def test_resolve_unknown_raises(self, registry):
        """Test resolving an unknown session id raises UnknownSession."""
        with pytest.raises(UnknownSession) as exc_info:
            registry.resolve("ghost")
        assert exc_info.value.session_id == "ghost"


class TestClose:
    """Tests for cascading close."""

    @pytest.mark.asyncio
    async def test_close_child_cancels_its_commands(self, registry, tracker):
        """Test closing a session fails its pending commands with SessionClosed."""
        registry.create_child("S1")
        _, root_future = tracker.allocate("A.a")
        _, child_future = tracker.allocate("B.b", session_id="S1")

        registry.close("S1")

        with pytest.raises(SessionClosed):
            await child_future
        assert not root_future.done()

    @pytest.mark.asyncio
    async def test_close_cascades_to_descendants(self, registry, tracker, hub):
        """Test closing a parent closes the whole subtree."""
        s1 = registry.create_child("S1")
        s2 = registry.create_child("S2", parent=s1)
        s3 = registry.create_child("S3", parent=s2)
        futures = [tracker.allocate("X.x", session_id=sid)[1] for sid in ("S1", "S2", "S3")]
        subs = [hub.subscribe(s, "Foo.baz") for s in (s1, s2, s3)]

        closed = registry.close("S1")

        assert closed == [s3, s2, s1]
        assert all(s.closed for s in (s1, s2, s3))
        assert len(registry) == 0
        assert registry.root.children == {}
        assert all(sub.closed for sub in subs)
        for future in futures:
            with pytest.raises(SessionClosed):
                await future
        assert len(tracker) == 0

    def test_close_leaves_siblings(self, registry):
        """Test closing one child leaves its siblings attached."""
        registry.create_child("S1")
        sibling = registry.create_child("S2")

        registry.close("S1")

        assert not sibling.closed
        assert registry.resolve("S2") is sibling
        with pytest.raises(UnknownSession):
            registry.resolve("S1")

    def test_close_is_idempotent(self, registry):
        """Test closing twice is a no-op the second time."""
        registry.create_child("S1")

        assert len(registry.close("S1")) == 1
        assert registry.close("S1") == []
        assert registry.close("never-attached") == []

    @pytest.mark.asyncio
    async def test_close_root_uses_connection_closed(self, registry, tracker):
        """Test closing the root fails everything with ConnectionClosed."""
        registry.create_child("S1")
        _, root_future = tracker.allocate("A.a")
        _, child_future = tracker.allocate("B.b", session_id="S1")

        closed = registry.close(None, "Transport closed")

        assert len(closed) == 2
        assert registry.root.closed
        for future in (root_future, child_future):
            with pytest.raises(ConnectionClosed, match="Transport closed"):
                await future

    @pytest.mark.asyncio
    async def test_wait_closed(self, registry):
        """Test wait_closed returns once the session is closed."""
        session = registry.create_child("S1")
        registry.close("S1")

        await session.wait_closed()


class TestSessionDelegation:
    """Tests for Session.send/subscribe routing through the connection."""

    @pytest.mark.asyncio
    async def test_send_delegates_with_session(self):
        """Test Session.send passes itself to the connection."""
        connection = MagicMock()
        connection.send = AsyncMock(return_value={"ok": True})
        session = Session("S1", connection=connection)

        result = await session.send("DOMStorage.enable")

        assert result == {"ok": True}
        connection.send.assert_awaited_once_with("DOMStorage.enable", None, session=session)

    def test_subscribe_delegates_with_session(self):
        """Test Session.subscribe passes itself to the connection."""
        connection = MagicMock()
        session = Session("S1", connection=connection)

        session.subscribe("DOMStorage.domStorageItemAdded")

        connection.subscribe.assert_called_once_with(
            "DOMStorage.domStorageItemAdded", session=session, envelopes=False
        )

    @pytest.mark.asyncio
    async def test_unbound_session_cannot_send(self):
        """Test a session without a connection refuses to send."""
        with pytest.raises(RuntimeError, match="not bound"):
            await Session("S1").send("Foo.bar")
