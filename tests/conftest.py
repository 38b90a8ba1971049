"""Pytest fixtures for devtools-client tests."""

import asyncio
import json
import os
import sys

import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from devtools_client.errors import ConnectionClosed  # noqa: E402
from devtools_client.transport import Transport  # noqa: E402

_END = object()


class FakeTransport(Transport):
    """In-memory transport: tests feed inbound frames and inspect sent ones."""

    def __init__(self):
        self.sent: list[str] = []
        self.close_calls = 0
        self._inbound: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, message: str) -> None:
        if self._closed:
            raise ConnectionClosed("Fake transport closed")
        self.sent.append(message)

    def feed(self, message) -> None:
        """Queue an inbound frame; dicts are JSON-encoded."""
        if isinstance(message, dict):
            message = json.dumps(message)
        self._inbound.put_nowait(message)

    def finish(self) -> None:
        """Simulate the remote side closing the channel."""
        self._inbound.put_nowait(_END)

    def fail(self, exc: Exception) -> None:
        """Simulate the channel breaking."""
        self._inbound.put_nowait(exc)

    def sent_json(self) -> list[dict]:
        return [json.loads(m) for m in self.sent]

    async def messages(self):
        while True:
            item = await self._inbound.get()
            if item is _END:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    async def close(self) -> None:
        self.close_calls += 1
        self._closed = True


@pytest.fixture
def transport():
    """Fresh fake transport."""
    return FakeTransport()


@pytest.fixture
def drain():
    """Let background tasks run until the loop is idle."""

    async def _drain(rounds: int = 10) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)

    return _drain


@pytest.fixture
def sample_response():
    """Sample successful response frame."""
    return {"id": 1, "result": {"x": 5}}


@pytest.fixture
def sample_error_response():
    """Sample error response frame."""
    return {
        "id": 2,
        "error": {"code": -32601, "message": "'Foo.nope' wasn't found"},
    }


@pytest.fixture
def sample_event():
    """Sample event frame routed to an attached session."""
    return {
        "method": "Runtime.consoleAPICalled",
        "params": {"type": "log", "args": [{"type": "string", "value": "hi"}]},
        "sessionId": "S1",
    }
