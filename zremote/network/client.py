"""Client facade: one session plus typed handles for every operation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from zremote_protocol import MessageType
from zremote_protocol.models import (
    DeclarePublisherPayload,
    DeclareQuerierPayload,
    DeclareQueryablePayload,
    DeclareSubscriberPayload,
    DeletePayload,
    GetPayload,
    PutPayload,
    Reply,
    Sample,
    SessionInfoPayload,
    TimestampPayload,
)

from zremote.api import Liveliness, Publisher, Querier, Query, Queryable, Subscriber
from zremote.api.base import IntoBytes, default_handler, receiver_of, to_bytes
from zremote.api.querier import decode_reply
from zremote.api.query import query_decoder
from zremote.cancellation import CancellationToken
from zremote.channels import ChannelReceiver
from zremote.closure import Handler
from zremote.config import RemoteSettings, get_settings
from zremote.network.link import ConnectFailedHook
from zremote.network.session import OperationKind, Session
from zremote.network.transport.base import TransportFactory

LOGGER = logging.getLogger(__name__)


def _optional_bytes(value: Optional[IntoBytes]) -> Optional[bytes]:
    return to_bytes(value) if value is not None else None


@dataclass
class RemoteClient:
    """Entry point for applications talking to the remote-api plugin."""

    session: Session

    @classmethod
    async def open(
        cls,
        settings: Optional[RemoteSettings] = None,
        *,
        locator: Optional[str] = None,
        transport_factory: Optional[TransportFactory] = None,
        on_connect_failed: Optional[ConnectFailedHook] = None,
    ) -> "RemoteClient":
        settings = settings or get_settings()
        if locator is not None:
            settings = settings.model_copy(update={"locator": locator})
        session = await Session.open(
            settings,
            transport_factory=transport_factory,
            on_connect_failed=on_connect_failed,
        )
        return cls(session=session)

    @property
    def settings(self) -> RemoteSettings:
        return self.session.settings

    async def close(self) -> None:
        await self.session.close()

    def is_closed(self) -> bool:
        return self.session.is_closed()

    async def __aenter__(self) -> "RemoteClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def info(self) -> SessionInfoPayload:
        return await self.session.info()

    async def new_timestamp(self) -> TimestampPayload:
        return await self.session.new_timestamp()

    async def put(
        self,
        key_expr: str,
        payload: IntoBytes,
        *,
        encoding: Optional[str] = None,
        attachment: Optional[IntoBytes] = None,
        timestamp: Optional[str] = None,
        congestion_control: Optional[int] = None,
        priority: Optional[int] = None,
        express: Optional[bool] = None,
    ) -> None:
        await self.session.put(
            PutPayload(
                key_expr=key_expr,
                payload=to_bytes(payload),
                encoding=encoding,
                attachment=_optional_bytes(attachment),
                timestamp=timestamp,
                congestion_control=congestion_control,
                priority=priority,
                express=express,
            )
        )

    async def delete(
        self,
        key_expr: str,
        *,
        attachment: Optional[IntoBytes] = None,
        timestamp: Optional[str] = None,
        congestion_control: Optional[int] = None,
        priority: Optional[int] = None,
        express: Optional[bool] = None,
    ) -> None:
        await self.session.delete(
            DeletePayload(
                key_expr=key_expr,
                attachment=_optional_bytes(attachment),
                timestamp=timestamp,
                congestion_control=congestion_control,
                priority=priority,
                express=express,
            )
        )

    async def get(
        self,
        key_expr: str,
        handler: Optional[Handler[Reply]] = None,
        *,
        parameters: Optional[str] = None,
        payload: Optional[IntoBytes] = None,
        encoding: Optional[str] = None,
        attachment: Optional[IntoBytes] = None,
        target: Optional[int] = None,
        consolidation: Optional[int] = None,
        congestion_control: Optional[int] = None,
        priority: Optional[int] = None,
        express: Optional[bool] = None,
        timeout_ms: Optional[int] = None,
        token: Optional[CancellationToken] = None,
    ) -> Optional[ChannelReceiver[Reply]]:
        """Query ``key_expr``; replies stream into ``handler`` until the final frame."""

        handler = default_handler(self.session, handler)
        if timeout_ms is None:
            timeout_ms = self.settings.default_query_timeout_ms
        message = GetPayload(
            key_expr=key_expr,
            parameters=parameters,
            payload=_optional_bytes(payload),
            encoding=encoding,
            attachment=_optional_bytes(attachment),
            target=target,
            consolidation=consolidation,
            congestion_control=congestion_control,
            priority=priority,
            express=express,
            timeout_ms=timeout_ms,
        )
        await self.session.send_request(
            OperationKind.GET,
            MessageType.GET,
            message,
            handler,
            decode=decode_reply,
            token=token,
        )
        return receiver_of(handler)

    async def declare_publisher(
        self,
        key_expr: str,
        *,
        encoding: Optional[str] = None,
        congestion_control: Optional[int] = None,
        priority: Optional[int] = None,
        express: Optional[bool] = None,
        reliability: Optional[int] = None,
        allowed_destination: Optional[int] = None,
    ) -> Publisher:
        identifier = await self.session.declare(
            OperationKind.PUBLISHER,
            MessageType.DECLARE_PUBLISHER,
            DeclarePublisherPayload(
                key_expr=key_expr,
                encoding=encoding,
                congestion_control=congestion_control,
                priority=priority,
                express=express,
                reliability=reliability,
                allowed_destination=allowed_destination,
            ),
        )
        return Publisher(self.session, identifier, key_expr, encoding)

    async def declare_subscriber(
        self,
        key_expr: str,
        handler: Optional[Handler[Sample]] = None,
        *,
        allowed_origin: Optional[int] = None,
    ) -> Subscriber:
        handler = default_handler(self.session, handler)
        identifier = await self.session.declare(
            OperationKind.SUBSCRIBER,
            MessageType.DECLARE_SUBSCRIBER,
            DeclareSubscriberPayload(key_expr=key_expr, allowed_origin=allowed_origin),
            handler,
            decode=Sample.model_validate,
        )
        return Subscriber(self.session, identifier, key_expr, receiver_of(handler))

    async def declare_queryable(
        self,
        key_expr: str,
        handler: Optional[Handler[Query]] = None,
        *,
        complete: bool = False,
        allowed_origin: Optional[int] = None,
    ) -> Queryable:
        handler = default_handler(self.session, handler)
        identifier = await self.session.declare(
            OperationKind.QUERYABLE,
            MessageType.DECLARE_QUERYABLE,
            DeclareQueryablePayload(key_expr=key_expr, complete=complete, allowed_origin=allowed_origin),
            handler,
            decode=query_decoder(self.session),
        )
        return Queryable(self.session, identifier, key_expr, receiver_of(handler))

    async def declare_querier(
        self,
        key_expr: str,
        *,
        target: Optional[int] = None,
        consolidation: Optional[int] = None,
        congestion_control: Optional[int] = None,
        priority: Optional[int] = None,
        express: Optional[bool] = None,
        accept_replies: Optional[int] = None,
        allowed_destination: Optional[int] = None,
        timeout_ms: Optional[int] = None,
    ) -> Querier:
        if timeout_ms is None:
            timeout_ms = self.settings.default_query_timeout_ms
        identifier = await self.session.declare(
            OperationKind.QUERIER,
            MessageType.DECLARE_QUERIER,
            DeclareQuerierPayload(
                key_expr=key_expr,
                target=target,
                consolidation=consolidation,
                congestion_control=congestion_control,
                priority=priority,
                express=express,
                accept_replies=accept_replies,
                allowed_destination=allowed_destination,
                timeout_ms=timeout_ms,
            ),
        )
        return Querier(self.session, identifier, key_expr)

    def liveliness(self) -> Liveliness:
        return Liveliness(self.session)
