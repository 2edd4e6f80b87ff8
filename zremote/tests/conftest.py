from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import pytest

from zremote_protocol import MessageType, RemoteEnvelope, build_envelope, decode_envelope, encode_envelope
from zremote.config import RemoteSettings
from zremote.network.session import Session
from zremote.network.transport.dummy import DummyTransport

_DEFAULT_RESPONSES: Dict[MessageType, Tuple[MessageType, Dict[str, Any]]] = {
    MessageType.SESSION_OPEN: (MessageType.OPEN_ACK, {"uuid": "session-1"}),
    MessageType.SESSION_INFO: (
        MessageType.RESPONSE_SESSION_INFO,
        {"zid": "a1b2", "routers": ["r1"], "peers": ["p1", "p2"]},
    ),
    MessageType.SESSION_TIMESTAMP: (
        MessageType.RESPONSE_TIMESTAMP,
        {"id": "a1b2", "string_rep": "7386690599959157260/a1b2", "millis_since_epoch": 1719000000000},
    ),
    MessageType.GET_MATCHING_STATUS: (MessageType.RESPONSE_MATCHING_STATUS, {"matching": True}),
}


class ScriptedTransport(DummyTransport):
    """Dummy transport that answers every request the way a healthy broker would."""

    def __init__(self) -> None:
        super().__init__()
        self.responses: Dict[MessageType, Tuple[MessageType, Dict[str, Any]]] = {}
        self.silent: Set[MessageType] = set()
        self.on_send: Dict[MessageType, Callable[[RemoteEnvelope], None]] = {}

    async def send(self, data: bytes) -> None:
        await super().send(data)
        envelope = decode_envelope(data)
        hook = self.on_send.get(envelope.type)
        if hook is not None:
            hook(envelope)
        if envelope.seq is None or envelope.type in self.silent:
            return
        reply_type, payload = self.responses.get(envelope.type) or _DEFAULT_RESPONSES.get(
            envelope.type, (MessageType.OK, {})
        )
        self.feed(encode_envelope(build_envelope(reply_type, payload, seq=envelope.seq)))

    def envelopes(self, message_type: Optional[MessageType] = None) -> List[RemoteEnvelope]:
        decoded = [decode_envelope(data) for data in self.sent]
        if message_type is None:
            return decoded
        return [envelope for envelope in decoded if envelope.type is message_type]

    def push(
        self,
        message_type: MessageType,
        payload: Optional[Dict[str, Any]] = None,
        *,
        id: Optional[int] = None,
        seq: Optional[int] = None,
    ) -> None:
        self.feed(encode_envelope(build_envelope(message_type, payload, id=id, seq=seq)))


@pytest.fixture
def broker() -> ScriptedTransport:
    return ScriptedTransport()


@pytest.fixture
def settings() -> RemoteSettings:
    return RemoteSettings(locator="ws/127.0.0.1:10000", default_channel_capacity=16)


@pytest.fixture
def open_session(broker, settings):
    async def _open(session_settings: Optional[RemoteSettings] = None) -> Session:
        return await Session.open(session_settings or settings, transport_factory=lambda url: broker)

    return _open
