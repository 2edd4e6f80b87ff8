"""WebSocket transport implementation."""

from __future__ import annotations

import logging
from typing import Optional

from websockets.asyncio.client import ClientConnection, connect
from websockets.protocol import State

from zremote.network.transport.base import BaseTransport

LOGGER = logging.getLogger(__name__)


class WebSocketTransport(BaseTransport):
    """Binary WebSocket transport to the remote-api plugin."""

    def __init__(self, url: str) -> None:
        self._url = url
        self._ws: Optional[ClientConnection] = None

    async def connect(self, timeout: float) -> None:
        LOGGER.info("Connecting to remote-api WebSocket at %s", self._url)
        self._ws = await connect(self._url, open_timeout=timeout, max_size=None)

    async def send(self, data: bytes) -> None:
        if not self._ws:
            raise RuntimeError("WebSocket transport not connected")
        LOGGER.debug("WebSocket send: %d bytes", len(data))
        await self._ws.send(data)

    async def receive(self) -> bytes:
        if not self._ws:
            raise RuntimeError("WebSocket transport not connected")
        raw = await self._ws.recv()
        if isinstance(raw, str):
            raw = raw.encode("utf-8")
        LOGGER.debug("WebSocket receive: %d bytes", len(raw))
        return raw

    async def close(self) -> None:
        if self._ws:
            LOGGER.info("Closing WebSocket transport")
            await self._ws.close()
            self._ws = None

    def is_open(self) -> bool:
        return self._ws is not None and self._ws.state is State.OPEN

    def write_buffer_size(self) -> int:
        if not self._ws:
            return 0
        return self._ws.transport.get_write_buffer_size()
