"""Duplex message transports for a DevTools connection.

A transport writes one outbound text frame at a time and yields inbound
frames until the channel closes. When the inbound sequence ends, normally
or with an error, the connection treats the transport as closed; transports
are never reopened.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

import websockets

from .errors import ConnectionClosed
from .protocol.messages import MAX_MESSAGE_SIZE

logger = logging.getLogger(__name__)


class Transport(ABC):
    """Abstract duplex text-frame channel."""

    @property
    @abstractmethod
    def closed(self) -> bool:
        """Whether the channel is closed."""

    @abstractmethod
    async def send(self, message: str) -> None:
        """Write one frame.

        Raises:
            ConnectionClosed: If the channel is closed
        """

    @abstractmethod
    def messages(self) -> AsyncIterator[str | bytes]:
        """Yield inbound frames until the channel closes."""

    @abstractmethod
    async def close(self) -> None:
        """Close the channel. Safe to call more than once."""


class WebSocketTransport(Transport):
    """Transport over a ``websockets`` client connection."""

    def __init__(self, websocket, url: str | None = None):
        self._websocket = websocket
        self._url = url
        self._closed = False

    @classmethod
    async def connect(
        cls,
        url: str,
        max_size: int = MAX_MESSAGE_SIZE,
        open_timeout: float = 10.0,
    ) -> WebSocketTransport:
        """Open a WebSocket to a DevTools endpoint."""
        logger.info(f"Connecting to {url}")
        websocket = await websockets.connect(
            url,
            max_size=max_size,
            open_timeout=open_timeout,
            ping_interval=None,
        )
        logger.info(f"Connected to {url}")
        return cls(websocket, url)

    @property
    def url(self) -> str | None:
        return self._url

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, message: str) -> None:
        if self._closed:
            raise ConnectionClosed("WebSocket closed")
        try:
            await self._websocket.send(message)
        except websockets.ConnectionClosed as e:
            raise ConnectionClosed(f"WebSocket closed: {e}") from e

    async def messages(self) -> AsyncIterator[str | bytes]:
        try:
            async for message in self._websocket:
                yield message
        except websockets.ConnectionClosed as e:
            raise ConnectionClosed(f"WebSocket closed: {e}") from e

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._websocket.close()
        logger.info(f"Disconnected from {self._url}")
