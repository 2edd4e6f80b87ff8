"""Transport abstractions for the remote-api link."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

TransportFactory = Callable[[str], "BaseTransport"]


class BaseTransport(ABC):
    """Abstract WebSocket-like duplex byte transport owned by a Link."""

    @abstractmethod
    async def connect(self, timeout: float) -> None:
        """Open the connection, raising ``TimeoutError`` if not open within ``timeout`` seconds."""

    @abstractmethod
    async def send(self, data: bytes) -> None:
        ...

    @abstractmethod
    async def receive(self) -> bytes:
        """Return the next inbound frame; raises once the connection has ended."""

    @abstractmethod
    async def close(self) -> None:
        ...

    @abstractmethod
    def is_open(self) -> bool:
        ...

    @abstractmethod
    def write_buffer_size(self) -> int:
        """Bytes queued for writing but not yet flushed to the socket."""
