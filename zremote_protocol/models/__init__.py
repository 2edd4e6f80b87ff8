from .data import (
    DeletePayload,
    GetPayload,
    LivelinessGetPayload,
    PublisherDeletePayload,
    PublisherPutPayload,
    PutPayload,
    QuerierGetPayload,
    QueryFinalPayload,
    QueryPayload,
    Reply,
    ReplyDelPayload,
    ReplyError,
    ReplyErrPayload,
    ReplyOkPayload,
    Sample,
)
from .declare import (
    DeclareLivelinessSubscriberPayload,
    DeclareLivelinessTokenPayload,
    DeclareMatchingListenerPayload,
    DeclarePublisherPayload,
    DeclareQuerierPayload,
    DeclareQueryablePayload,
    DeclareSubscriberPayload,
    GetMatchingStatusPayload,
)
from .envelope import MessageType, RemoteEnvelope, WireBytes
from .session import (
    ErrorPayload,
    MatchingStatusPayload,
    OpenAckPayload,
    OpenSessionPayload,
    SessionInfoPayload,
    TimestampPayload,
)

__all__ = [
    "MessageType",
    "RemoteEnvelope",
    "WireBytes",
    "OpenSessionPayload",
    "OpenAckPayload",
    "ErrorPayload",
    "SessionInfoPayload",
    "TimestampPayload",
    "MatchingStatusPayload",
    "DeclarePublisherPayload",
    "DeclareSubscriberPayload",
    "DeclareQueryablePayload",
    "DeclareQuerierPayload",
    "DeclareLivelinessTokenPayload",
    "DeclareLivelinessSubscriberPayload",
    "DeclareMatchingListenerPayload",
    "GetMatchingStatusPayload",
    "PutPayload",
    "DeletePayload",
    "PublisherPutPayload",
    "PublisherDeletePayload",
    "GetPayload",
    "QuerierGetPayload",
    "LivelinessGetPayload",
    "Sample",
    "Reply",
    "ReplyError",
    "QueryPayload",
    "ReplyOkPayload",
    "ReplyDelPayload",
    "ReplyErrPayload",
    "QueryFinalPayload",
]
