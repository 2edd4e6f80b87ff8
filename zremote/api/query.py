"""Queryables and the queries delivered to them."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from zremote_protocol import MessageType
from zremote_protocol.models import (
    QueryFinalPayload,
    QueryPayload,
    ReplyDelPayload,
    ReplyErrPayload,
    ReplyOkPayload,
)

from zremote.api.base import DeclaredEntity, IntoBytes, ReceiverHandle, to_bytes
from zremote.channels import ChannelReceiver
from zremote.errors import ClosedError
from zremote.network.session import OperationKind

if TYPE_CHECKING:
    from zremote.network.session import Session

LOGGER = logging.getLogger(__name__)


class Query:
    """A query received by a queryable.

    Answer with any number of :meth:`reply` / :meth:`reply_del` /
    :meth:`reply_err` calls, then :meth:`finalize` so the querier's reply
    stream ends. Used as an async context manager, the query finalizes on exit.
    """

    def __init__(self, session: "Session", payload: QueryPayload) -> None:
        self._session = session
        self._payload = payload
        self._finalized = False

    @property
    def query_id(self) -> int:
        return self._payload.query_id

    @property
    def key_expr(self) -> str:
        return self._payload.key_expr

    @property
    def parameters(self) -> str:
        return self._payload.parameters

    @property
    def payload(self) -> Optional[bytes]:
        return self._payload.payload

    @property
    def encoding(self) -> Optional[str]:
        return self._payload.encoding

    @property
    def attachment(self) -> Optional[bytes]:
        return self._payload.attachment

    def is_finalized(self) -> bool:
        return self._finalized

    def _ensure_open(self) -> None:
        if self._finalized:
            raise ClosedError(f"Query {self.query_id} is already finalized")

    async def reply(
        self,
        key_expr: str,
        payload: IntoBytes,
        *,
        encoding: Optional[str] = None,
        attachment: Optional[IntoBytes] = None,
        timestamp: Optional[str] = None,
    ) -> None:
        self._ensure_open()
        message = ReplyOkPayload(
            query_id=self.query_id,
            key_expr=key_expr,
            payload=to_bytes(payload),
            encoding=encoding,
            attachment=to_bytes(attachment) if attachment is not None else None,
            timestamp=timestamp,
        )
        await self._session.send_message(MessageType.REPLY_OK, message)

    async def reply_del(
        self,
        key_expr: str,
        *,
        attachment: Optional[IntoBytes] = None,
        timestamp: Optional[str] = None,
    ) -> None:
        self._ensure_open()
        message = ReplyDelPayload(
            query_id=self.query_id,
            key_expr=key_expr,
            attachment=to_bytes(attachment) if attachment is not None else None,
            timestamp=timestamp,
        )
        await self._session.send_message(MessageType.REPLY_DEL, message)

    async def reply_err(self, payload: IntoBytes, *, encoding: Optional[str] = None) -> None:
        self._ensure_open()
        message = ReplyErrPayload(query_id=self.query_id, payload=to_bytes(payload), encoding=encoding)
        await self._session.send_message(MessageType.REPLY_ERR, message)

    async def finalize(self) -> None:
        """Signal that no more replies follow. Only the first call sends anything."""

        if self._finalized:
            return
        self._finalized = True
        if self._session.is_closed():
            LOGGER.debug("Session closed; query %s finalized locally", self.query_id)
            return
        await self._session.send_message(MessageType.QUERY_FINAL, QueryFinalPayload(query_id=self.query_id))

    async def __aenter__(self) -> "Query":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.finalize()

    def __repr__(self) -> str:
        return f"Query(id={self.query_id}, key_expr={self.key_expr!r}, parameters={self.parameters!r})"


def query_decoder(session: "Session") -> Callable[[Dict[str, Any]], Query]:
    def _decode(payload: Dict[str, Any]) -> Query:
        return Query(session, QueryPayload.model_validate(payload))

    return _decode


class Queryable(DeclaredEntity, ReceiverHandle[Query]):
    kind = OperationKind.QUERYABLE
    undeclare_type = MessageType.UNDECLARE_QUERYABLE

    def __init__(
        self,
        session: "Session",
        identifier: int,
        key_expr: str,
        receiver: Optional[ChannelReceiver[Query]] = None,
    ) -> None:
        super().__init__(session, identifier)
        self.key_expr = key_expr
        self._receiver = receiver
