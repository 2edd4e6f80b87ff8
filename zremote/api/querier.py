"""Querier handle: a declared, reusable query source."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from zremote_protocol import MessageType
from zremote_protocol.models import QuerierGetPayload, Reply

from zremote.api.base import DeclaredEntity, IntoBytes, default_handler, receiver_of, to_bytes
from zremote.api.matching import MatchingListener, MatchingStatus, declare_matching_listener, get_matching_status
from zremote.cancellation import CancellationToken
from zremote.channels import ChannelReceiver
from zremote.closure import Handler
from zremote.errors import ClosedError
from zremote.network.session import OperationKind

if TYPE_CHECKING:
    from zremote.network.session import Session


def decode_reply(payload: Dict[str, Any]) -> Reply:
    return Reply.model_validate(payload)


class Querier(DeclaredEntity):
    kind = OperationKind.QUERIER
    undeclare_type = MessageType.UNDECLARE_QUERIER

    def __init__(self, session: "Session", identifier: int, key_expr: str) -> None:
        super().__init__(session, identifier)
        self.key_expr = key_expr

    def _ensure_declared(self) -> None:
        if self.is_undeclared():
            raise ClosedError(f"Querier {self.id} on {self.key_expr} is undeclared")

    async def get(
        self,
        handler: Optional[Handler[Reply]] = None,
        *,
        parameters: Optional[str] = None,
        payload: Optional[IntoBytes] = None,
        encoding: Optional[str] = None,
        attachment: Optional[IntoBytes] = None,
        token: Optional[CancellationToken] = None,
    ) -> Optional[ChannelReceiver[Reply]]:
        """Issue a query through this querier.

        Replies go to ``handler`` (a FIFO channel by default) until the broker
        sends the final frame or ``token`` is cancelled. Returns the channel
        receiver when the handler is a channel.
        """

        self._ensure_declared()
        handler = default_handler(self._session, handler)
        message = QuerierGetPayload(
            querier_id=self.id,
            parameters=parameters,
            payload=to_bytes(payload) if payload is not None else None,
            encoding=encoding,
            attachment=to_bytes(attachment) if attachment is not None else None,
        )
        await self._session.send_request(
            OperationKind.GET,
            MessageType.QUERIER_GET,
            message,
            handler,
            decode=decode_reply,
            token=token,
        )
        return receiver_of(handler)

    async def declare_matching_listener(self, handler: Optional[Handler[MatchingStatus]] = None) -> MatchingListener:
        self._ensure_declared()
        return await declare_matching_listener(self._session, "querier", self.id, handler)

    async def get_matching_status(self) -> MatchingStatus:
        self._ensure_declared()
        return await get_matching_status(self._session, "querier", self.id)
