"""Shared plumbing for operation handles."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, AsyncIterator, ClassVar, Generic, Optional, TypeVar, Union

from zremote_protocol import MessageType

from zremote.channels import ChannelReceiver, FifoChannel, RecvErr, TryReceived
from zremote.closure import Handler, is_channel

if TYPE_CHECKING:
    from zremote.network.session import OperationKind, Session

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

IntoBytes = Union[bytes, bytearray, memoryview, str]


def to_bytes(value: IntoBytes) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


def default_handler(session: "Session", handler: Optional[Handler[T]]) -> Handler[T]:
    """Fall back to a FIFO channel sized from settings when no handler is given."""

    if handler is None:
        return FifoChannel(session.settings.default_channel_capacity)
    return handler


def receiver_of(handler: Handler[T]) -> Optional[ChannelReceiver[T]]:
    if is_channel(handler):
        return handler.into_sender_receiver_pair()[1]
    return None


class ReceiverHandle(Generic[T]):
    """Exposes the channel a handle's results are delivered to, if it has one."""

    _receiver: Optional[ChannelReceiver[T]] = None

    @property
    def receiver(self) -> Optional[ChannelReceiver[T]]:
        return self._receiver

    def _require_receiver(self) -> ChannelReceiver[T]:
        if self._receiver is None:
            raise RuntimeError(f"{type(self).__name__} was created with a callback handler and has no receiver")
        return self._receiver

    async def receive(self) -> Union[T, RecvErr]:
        return await self._require_receiver().receive()

    def try_receive(self) -> TryReceived[T]:
        return self._require_receiver().try_receive()

    def __aiter__(self) -> AsyncIterator[T]:
        return self._require_receiver().__aiter__()


class DeclaredEntity:
    """Arena-style handle: holds ``(session, id)`` while the session owns the record."""

    kind: ClassVar["OperationKind"]
    undeclare_type: ClassVar[MessageType]

    def __init__(self, session: "Session", identifier: int) -> None:
        self._session = session
        self.id = identifier
        self._undeclared = False

    @property
    def session(self) -> "Session":
        return self._session

    def is_undeclared(self) -> bool:
        return self._undeclared or not self._session.has_record(self.kind, self.id)

    async def undeclare(self) -> None:
        """Undeclare on the broker. Safe to call more than once."""

        if self._undeclared:
            return
        self._undeclared = True
        await self._session.undeclare(self.kind, self.id, self.undeclare_type)

    async def __aenter__(self) -> Any:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.undeclare()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id}, undeclared={self.is_undeclared()})"
