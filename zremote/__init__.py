"""Asyncio client for a pub/sub broker reachable through its remote-api WebSocket plugin."""

from zremote.cancellation import CancellationToken
from zremote.channels import ChannelState, FifoChannel, RecvErr, RingChannel, TryReceived, TryReceivedKind
from zremote.config import RemoteSettings, get_settings
from zremote.errors import ClosedError, InvalidLocatorError, LinkConnectionError, RemoteError
from zremote.network import RemoteClient, Session

__all__ = [
    "RemoteClient",
    "Session",
    "RemoteSettings",
    "get_settings",
    "CancellationToken",
    "FifoChannel",
    "RingChannel",
    "RecvErr",
    "ChannelState",
    "TryReceived",
    "TryReceivedKind",
    "ClosedError",
    "InvalidLocatorError",
    "LinkConnectionError",
    "RemoteError",
]
