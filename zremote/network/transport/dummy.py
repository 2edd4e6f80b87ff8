"""In-memory transport for offline testing."""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from zremote.network.transport.base import BaseTransport

LOGGER = logging.getLogger(__name__)


class TransportClosed(ConnectionError):
    """Raised by ``receive`` once the in-memory connection has ended."""


class DummyTransport(BaseTransport):
    """Connects instantly, records outbound frames and replays fed inbound ones."""

    def __init__(self, url: str = "ws://dummy") -> None:
        self.url = url
        self.sent: List[bytes] = []
        self.buffered = 0
        self._inbound: asyncio.Queue[Optional[bytes]] = asyncio.Queue()
        self._open = False
        self._closed = False

    async def connect(self, timeout: float) -> None:
        LOGGER.debug("Dummy transport connect(%s)", self.url)
        self._open = True

    async def send(self, data: bytes) -> None:
        LOGGER.debug("Dummy transport send(): %d bytes", len(data))
        self.sent.append(data)

    async def receive(self) -> bytes:
        frame = await self._inbound.get()
        if frame is None:
            raise TransportClosed("Dummy transport closed")
        return frame

    async def close(self) -> None:
        LOGGER.debug("Dummy transport close()")
        self.drop()

    def is_open(self) -> bool:
        return self._open

    def write_buffer_size(self) -> int:
        return self.buffered

    def feed(self, data: bytes) -> None:
        """Queue an inbound frame as if the peer had sent it."""

        self._inbound.put_nowait(data)

    def drop(self) -> None:
        """End the connection as if the peer went away."""

        if self._closed:
            return
        self._closed = True
        self._open = False
        self._inbound.put_nowait(None)
