"""Helpers for building/parsing remote-api frames."""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel

from zremote_protocol.models import MessageType, RemoteEnvelope

Payload = Dict[str, Any] | BaseModel

# Frames that answer a request and are correlated through ``seq``.
RESPONSE_TYPES: frozenset[MessageType] = frozenset(
    {
        MessageType.OPEN_ACK,
        MessageType.OK,
        MessageType.ERROR,
        MessageType.RESPONSE_TIMESTAMP,
        MessageType.RESPONSE_SESSION_INFO,
        MessageType.RESPONSE_MATCHING_STATUS,
    }
)


def _payload_dict(payload: Optional[Payload]) -> Dict[str, Any]:
    if payload is None:
        return {}
    if isinstance(payload, BaseModel):
        return payload.model_dump(mode="json", exclude_none=True, by_alias=True)
    return payload


def build_envelope(
    message_type: MessageType,
    payload: Optional[Payload] = None,
    *,
    seq: Optional[int] = None,
    id: Optional[int] = None,
) -> RemoteEnvelope:
    """Construct an envelope ready for :func:`encode_envelope`."""

    return RemoteEnvelope(type=message_type, seq=seq, id=id, payload=_payload_dict(payload))


def encode_envelope(envelope: RemoteEnvelope) -> bytes:
    return envelope.model_dump_json(exclude_none=True).encode("utf-8")


def decode_envelope(data: bytes | str) -> RemoteEnvelope:
    """Parse a raw frame; raises ``pydantic.ValidationError`` when it is not an envelope."""

    return RemoteEnvelope.model_validate_json(data)


def is_response(envelope: RemoteEnvelope) -> bool:
    return envelope.type in RESPONSE_TYPES
