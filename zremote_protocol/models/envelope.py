"""Envelope wrapper shared by every remote-api frame."""

from __future__ import annotations

import base64
from enum import Enum
from typing import Annotated, Any, Dict, Optional

from pydantic import BaseModel, BeforeValidator, Field, PlainSerializer


def _decode_base64(value: Any) -> Any:
    if isinstance(value, str):
        return base64.b64decode(value, validate=True)
    return value


def _encode_base64(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


WireBytes = Annotated[
    bytes,
    BeforeValidator(_decode_base64),
    PlainSerializer(_encode_base64, return_type=str, when_used="json"),
]
"""Opaque bytes; base64 text on the wire, raw ``bytes`` in Python."""


class MessageType(str, Enum):
    # client -> broker, control
    SESSION_OPEN = "session.open"
    SESSION_CLOSE = "session.close"
    SESSION_INFO = "session.info"
    SESSION_TIMESTAMP = "session.timestamp"
    DECLARE_PUBLISHER = "declare.publisher"
    UNDECLARE_PUBLISHER = "undeclare.publisher"
    DECLARE_SUBSCRIBER = "declare.subscriber"
    UNDECLARE_SUBSCRIBER = "undeclare.subscriber"
    DECLARE_QUERYABLE = "declare.queryable"
    UNDECLARE_QUERYABLE = "undeclare.queryable"
    DECLARE_QUERIER = "declare.querier"
    UNDECLARE_QUERIER = "undeclare.querier"
    DECLARE_LIVELINESS_TOKEN = "declare.liveliness_token"
    UNDECLARE_LIVELINESS_TOKEN = "undeclare.liveliness_token"
    DECLARE_LIVELINESS_SUBSCRIBER = "declare.liveliness_subscriber"
    UNDECLARE_LIVELINESS_SUBSCRIBER = "undeclare.liveliness_subscriber"
    DECLARE_MATCHING_LISTENER = "declare.matching_listener"
    UNDECLARE_MATCHING_LISTENER = "undeclare.matching_listener"
    GET_MATCHING_STATUS = "matching.get"
    GET = "get"
    QUERIER_GET = "querier.get"
    LIVELINESS_GET = "liveliness.get"
    # client -> broker, data
    PUT = "put"
    DELETE = "delete"
    PUBLISHER_PUT = "publisher.put"
    PUBLISHER_DELETE = "publisher.delete"
    REPLY_OK = "reply.ok"
    REPLY_DEL = "reply.del"
    REPLY_ERR = "reply.err"
    # both directions: ends a query
    QUERY_FINAL = "query.final"
    # broker -> client
    OPEN_ACK = "open.ack"
    OK = "ok"
    ERROR = "error"
    RESPONSE_TIMESTAMP = "response.timestamp"
    RESPONSE_SESSION_INFO = "response.session_info"
    RESPONSE_MATCHING_STATUS = "response.matching_status"
    SAMPLE = "sample"
    QUERY = "query"
    REPLY = "reply"
    MATCHING_STATUS = "matching.status"


class RemoteEnvelope(BaseModel):
    """Self-describing frame exchanged with the remote-api plugin.

    ``seq`` pairs a request with its response; ``id`` routes stream frames
    (samples, queries, replies, matching updates) to the declared entity or
    in-flight query they belong to.
    """

    type: MessageType
    seq: Optional[int] = Field(default=None, ge=0)
    id: Optional[int] = Field(default=None, ge=0)
    payload: Dict[str, Any] = Field(default_factory=dict)
