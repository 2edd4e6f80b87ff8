"""Matching listeners: learn whether a publisher or querier has counterparts."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Literal, Optional

from zremote_protocol import MessageType
from zremote_protocol.models import DeclareMatchingListenerPayload, GetMatchingStatusPayload, MatchingStatusPayload

from zremote.api.base import DeclaredEntity, ReceiverHandle, receiver_of
from zremote.channels import ChannelReceiver, RingChannel
from zremote.closure import Handler
from zremote.network.session import OperationKind

if TYPE_CHECKING:
    from zremote.network.session import Session

MatchingEntity = Literal["publisher", "querier"]


@dataclass(frozen=True)
class MatchingStatus:
    matching: bool


def decode_matching_status(payload: Dict[str, Any]) -> MatchingStatus:
    return MatchingStatus(matching=MatchingStatusPayload.model_validate(payload).matching)


class MatchingListener(DeclaredEntity, ReceiverHandle[MatchingStatus]):
    kind = OperationKind.MATCHING_LISTENER
    undeclare_type = MessageType.UNDECLARE_MATCHING_LISTENER

    def __init__(
        self,
        session: "Session",
        identifier: int,
        receiver: Optional[ChannelReceiver[MatchingStatus]] = None,
    ) -> None:
        super().__init__(session, identifier)
        self._receiver = receiver


async def declare_matching_listener(
    session: "Session",
    entity: MatchingEntity,
    entity_id: int,
    handler: Optional[Handler[MatchingStatus]] = None,
) -> MatchingListener:
    """Only the latest status matters, so the default channel keeps one item and evicts older ones."""

    if handler is None:
        handler = RingChannel(1)
    identifier = await session.declare(
        OperationKind.MATCHING_LISTENER,
        MessageType.DECLARE_MATCHING_LISTENER,
        DeclareMatchingListenerPayload(entity=entity, entity_id=entity_id),
        handler,
        decode=decode_matching_status,
    )
    return MatchingListener(session, identifier, receiver_of(handler))


async def get_matching_status(session: "Session", entity: MatchingEntity, entity_id: int) -> MatchingStatus:
    response = await session.request(
        MessageType.GET_MATCHING_STATUS,
        GetMatchingStatusPayload(entity=entity, entity_id=entity_id),
    )
    return decode_matching_status(response.payload)
