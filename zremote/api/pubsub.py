"""Publisher and subscriber handles."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from zremote_protocol import MessageType
from zremote_protocol.models import PublisherDeletePayload, PublisherPutPayload, Sample

from zremote.api.base import DeclaredEntity, IntoBytes, ReceiverHandle, to_bytes
from zremote.api.matching import MatchingListener, MatchingStatus, declare_matching_listener, get_matching_status
from zremote.channels import ChannelReceiver
from zremote.closure import Handler
from zremote.errors import ClosedError
from zremote.network.session import OperationKind

if TYPE_CHECKING:
    from zremote.network.session import Session


class Publisher(DeclaredEntity):
    """Publishes values on one key expression through a declared broker-side publisher."""

    kind = OperationKind.PUBLISHER
    undeclare_type = MessageType.UNDECLARE_PUBLISHER

    def __init__(self, session: "Session", identifier: int, key_expr: str, encoding: Optional[str] = None) -> None:
        super().__init__(session, identifier)
        self.key_expr = key_expr
        self.encoding = encoding

    def _ensure_declared(self) -> None:
        if self.is_undeclared():
            raise ClosedError(f"Publisher {self.id} on {self.key_expr} is undeclared")

    async def put(
        self,
        payload: IntoBytes,
        *,
        encoding: Optional[str] = None,
        attachment: Optional[IntoBytes] = None,
        timestamp: Optional[str] = None,
    ) -> None:
        self._ensure_declared()
        message = PublisherPutPayload(
            payload=to_bytes(payload),
            encoding=encoding or self.encoding,
            attachment=to_bytes(attachment) if attachment is not None else None,
            timestamp=timestamp,
        )
        await self._session.send_message(MessageType.PUBLISHER_PUT, message, id=self.id)

    async def delete(self, *, attachment: Optional[IntoBytes] = None, timestamp: Optional[str] = None) -> None:
        self._ensure_declared()
        message = PublisherDeletePayload(
            attachment=to_bytes(attachment) if attachment is not None else None,
            timestamp=timestamp,
        )
        await self._session.send_message(MessageType.PUBLISHER_DELETE, message, id=self.id)

    async def declare_matching_listener(self, handler: Optional[Handler[MatchingStatus]] = None) -> MatchingListener:
        self._ensure_declared()
        return await declare_matching_listener(self._session, "publisher", self.id, handler)

    async def get_matching_status(self) -> MatchingStatus:
        self._ensure_declared()
        return await get_matching_status(self._session, "publisher", self.id)


class Subscriber(DeclaredEntity, ReceiverHandle[Sample]):
    """Receives samples published on a key expression (or liveliness changes)."""

    kind = OperationKind.SUBSCRIBER
    undeclare_type = MessageType.UNDECLARE_SUBSCRIBER

    def __init__(
        self,
        session: "Session",
        identifier: int,
        key_expr: str,
        receiver: Optional[ChannelReceiver[Sample]] = None,
        *,
        undeclare_type: Optional[MessageType] = None,
    ) -> None:
        super().__init__(session, identifier)
        self.key_expr = key_expr
        self._receiver = receiver
        if undeclare_type is not None:
            self.undeclare_type = undeclare_type
