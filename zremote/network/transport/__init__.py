"""Transport implementations for the remote-api link."""

from .base import BaseTransport, TransportFactory
from .dummy import DummyTransport, TransportClosed
from .websocket import WebSocketTransport

__all__ = ["BaseTransport", "TransportFactory", "DummyTransport", "TransportClosed", "WebSocketTransport"]
