import json

import pytest
from pydantic import ValidationError

from zremote_protocol import MessageType, build_envelope, decode_envelope, encode_envelope, is_response
from zremote_protocol.models import PutPayload, Reply


def test_encoded_envelope_omits_absent_fields_and_base64s_bytes():
    envelope = build_envelope(MessageType.PUT, PutPayload(key_expr="demo/a", payload=b"\x00\x01"))

    wire = json.loads(encode_envelope(envelope))

    assert wire == {"type": "put", "payload": {"key_expr": "demo/a", "payload": "AAE="}}


def test_decode_restores_bytes_in_payload_models():
    data = b'{"type": "reply", "id": 3, "payload": {"ok": {"key_expr": "demo/a", "payload": "aGk="}}}'

    envelope = decode_envelope(data)
    reply = Reply.model_validate(envelope.payload)

    assert envelope.id == 3
    assert reply.is_ok()
    assert reply.ok.payload == b"hi"


@pytest.mark.parametrize(
    "frame",
    [
        b"not json",
        b'{"payload": {}}',
        b'{"type": "no.such.type"}',
        b'{"type": "ok", "seq": -1}',
    ],
)
def test_decode_rejects_invalid_frames(frame):
    with pytest.raises(ValidationError):
        decode_envelope(frame)


def test_reply_requires_exactly_one_branch():
    with pytest.raises(ValidationError):
        Reply.model_validate({})


def test_response_classification():
    assert is_response(build_envelope(MessageType.OK, seq=1))
    assert is_response(build_envelope(MessageType.RESPONSE_MATCHING_STATUS, {"matching": True}, seq=2))
    assert not is_response(build_envelope(MessageType.QUERY_FINAL, {"query_id": 1}, id=1))
    assert not is_response(build_envelope(MessageType.SAMPLE, id=1))
