"""Liveliness tokens, subscribers and queries."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from zremote_protocol import MessageType
from zremote_protocol.models import (
    DeclareLivelinessSubscriberPayload,
    DeclareLivelinessTokenPayload,
    LivelinessGetPayload,
    Reply,
    Sample,
)

from zremote.api.base import DeclaredEntity, default_handler, receiver_of
from zremote.api.pubsub import Subscriber
from zremote.api.querier import decode_reply
from zremote.cancellation import CancellationToken
from zremote.channels import ChannelReceiver
from zremote.closure import Handler
from zremote.network.session import OperationKind

if TYPE_CHECKING:
    from zremote.network.session import Session


class LivelinessToken(DeclaredEntity):
    """Advertises liveliness on a key expression until undeclared."""

    kind = OperationKind.LIVELINESS_TOKEN
    undeclare_type = MessageType.UNDECLARE_LIVELINESS_TOKEN

    def __init__(self, session: "Session", identifier: int, key_expr: str) -> None:
        super().__init__(session, identifier)
        self.key_expr = key_expr


class Liveliness:
    def __init__(self, session: "Session") -> None:
        self._session = session

    async def declare_token(self, key_expr: str) -> LivelinessToken:
        identifier = await self._session.declare(
            OperationKind.LIVELINESS_TOKEN,
            MessageType.DECLARE_LIVELINESS_TOKEN,
            DeclareLivelinessTokenPayload(key_expr=key_expr),
        )
        return LivelinessToken(self._session, identifier, key_expr)

    async def declare_subscriber(
        self,
        key_expr: str,
        handler: Optional[Handler[Sample]] = None,
        *,
        history: bool = False,
    ) -> Subscriber:
        """Subscribe to tokens appearing (put) and disappearing (delete) on ``key_expr``."""

        handler = default_handler(self._session, handler)
        identifier = await self._session.declare(
            OperationKind.SUBSCRIBER,
            MessageType.DECLARE_LIVELINESS_SUBSCRIBER,
            DeclareLivelinessSubscriberPayload(key_expr=key_expr, history=history),
            handler,
            decode=Sample.model_validate,
        )
        return Subscriber(
            self._session,
            identifier,
            key_expr,
            receiver_of(handler),
            undeclare_type=MessageType.UNDECLARE_LIVELINESS_SUBSCRIBER,
        )

    async def get(
        self,
        key_expr: str,
        handler: Optional[Handler[Reply]] = None,
        *,
        timeout_ms: Optional[int] = None,
        token: Optional[CancellationToken] = None,
    ) -> Optional[ChannelReceiver[Reply]]:
        """Query the tokens currently alive on ``key_expr``."""

        handler = default_handler(self._session, handler)
        if timeout_ms is None:
            timeout_ms = self._session.settings.default_query_timeout_ms
        await self._session.send_request(
            OperationKind.GET,
            MessageType.LIVELINESS_GET,
            LivelinessGetPayload(key_expr=key_expr, timeout_ms=timeout_ms),
            handler,
            decode=decode_reply,
            token=token,
        )
        return receiver_of(handler)
