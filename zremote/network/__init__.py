"""Network stack (transport/link/session/client) for the remote-api connection."""

from zremote.network.link import Link, LinkState, parse_locator
from zremote.network.session import OperationKind, Session
from zremote.network.transport.base import BaseTransport
from zremote.network.transport.dummy import DummyTransport
from zremote.network.transport.websocket import WebSocketTransport
from zremote.network.client import RemoteClient

__all__ = [
    "RemoteClient",
    "Session",
    "OperationKind",
    "Link",
    "LinkState",
    "parse_locator",
    "BaseTransport",
    "WebSocketTransport",
    "DummyTransport",
]
