"""Operation handles bound to a session."""

from .base import DeclaredEntity, ReceiverHandle
from .liveliness import Liveliness, LivelinessToken
from .matching import MatchingListener, MatchingStatus
from .pubsub import Publisher, Subscriber
from .querier import Querier
from .query import Query, Queryable

__all__ = [
    "DeclaredEntity",
    "ReceiverHandle",
    "Liveliness",
    "LivelinessToken",
    "MatchingListener",
    "MatchingStatus",
    "Publisher",
    "Subscriber",
    "Querier",
    "Query",
    "Queryable",
]
