import asyncio
import base64
import logging

import pytest

from zremote_protocol import MessageType
from zremote_protocol.models import Reply, Sample
from zremote.cancellation import CancellationToken
from zremote.channels import FifoChannel, RecvErr
from zremote.config import RemoteSettings
from zremote.errors import ClosedError, RemoteError
from zremote.network.session import ID_MAX, IdSource, OperationKind


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


async def _wait_for(predicate, *, timeout: float = 0.5, interval: float = 0.01) -> bool:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()


async def _declare_subscriber(session, handler):
    return await session.declare(
        OperationKind.SUBSCRIBER,
        MessageType.DECLARE_SUBSCRIBER,
        {"key_expr": "demo/**"},
        handler,
        decode=Sample.model_validate,
    )


async def _start_get(session, handler, token=None):
    return await session.send_request(
        OperationKind.GET,
        MessageType.GET,
        {"key_expr": "demo/**", "timeout_ms": 1000},
        handler,
        decode=Reply.model_validate,
        token=token,
    )


def test_id_source_wraps_after_max():
    source = IdSource(current=ID_MAX)

    assert source.allocate(lambda candidate: False) == ID_MAX
    assert source.allocate(lambda candidate: False) == 0


def test_id_source_skips_live_identifiers():
    source = IdSource()
    live = {0, 1, 3}

    assert source.allocate(live.__contains__) == 2
    assert source.allocate(live.__contains__) == 4


@pytest.mark.asyncio
async def test_open_performs_handshake(open_session, broker):
    session = await open_session()
    try:
        assert session.uuid == "session-1"
        first = broker.envelopes()[0]
        assert first.type is MessageType.SESSION_OPEN
        assert first.seq == 0
        assert session.pending == 0
    finally:
        await session.close()


@pytest.mark.asyncio
async def test_open_rejected_by_broker(open_session, broker):
    broker.responses[MessageType.SESSION_OPEN] = (MessageType.ERROR, {"error": "unauthorized"})

    with pytest.raises(RemoteError, match="unauthorized"):
        await open_session()
    assert not broker.is_open()


@pytest.mark.asyncio
async def test_open_times_out_without_ack(open_session, broker):
    broker.silent.add(MessageType.SESSION_OPEN)
    settings = RemoteSettings(locator="ws/127.0.0.1:10000", session_open_timeout_seconds=0.05)

    with pytest.raises(asyncio.TimeoutError):
        await open_session(settings)
    assert not broker.is_open()


@pytest.mark.asyncio
async def test_pre_cancelled_request_is_never_sent(open_session, monkeypatch):
    session = await open_session()
    calls = []
    original_send = session.link.send

    async def _spy(data: bytes) -> None:
        calls.append(data)
        await original_send(data)

    monkeypatch.setattr(session.link, "send", _spy)
    token = CancellationToken()
    token.cancel()
    channel = FifoChannel(4)

    await _start_get(session, channel, token)

    assert calls == []
    assert session.pending == 0
    assert await channel.receive() is RecvErr.DISCONNECTED
    await session.close()


@pytest.mark.asyncio
async def test_replies_stream_until_final(open_session, broker):
    session = await open_session()
    channel = FifoChannel(4)
    get_id = await _start_get(session, channel)

    assert broker.envelopes(MessageType.GET)[0].id == get_id
    broker.push(MessageType.REPLY, {"ok": {"key_expr": "demo/a", "payload": _b64(b"one")}}, id=get_id)
    broker.push(MessageType.REPLY, {"err": {"payload": _b64(b"nope")}}, id=get_id)
    broker.push(MessageType.QUERY_FINAL, {"query_id": get_id}, id=get_id)

    first = await asyncio.wait_for(channel.receive(), timeout=1)
    second = await asyncio.wait_for(channel.receive(), timeout=1)
    assert first.ok.payload == b"one"
    assert second.err.payload == b"nope"
    assert await asyncio.wait_for(channel.receive(), timeout=1) is RecvErr.DISCONNECTED
    assert not session.has_record(OperationKind.GET, get_id)
    await session.close()


@pytest.mark.asyncio
async def test_stale_identifier_is_dropped_quietly(open_session, broker, caplog):
    session = await open_session()
    caplog.set_level(logging.DEBUG, logger="zremote.network.session")

    broker.push(MessageType.SAMPLE, {"key_expr": "demo/a", "payload": _b64(b"x")}, id=99)
    info = await session.info()

    assert info.zid == "a1b2"
    assert any("unknown subscriber id 99" in record.message for record in caplog.records)
    assert not [record for record in caplog.records if record.levelno >= logging.WARNING]
    await session.close()


@pytest.mark.asyncio
async def test_malformed_payload_surfaces_in_band(open_session, broker):
    session = await open_session()
    channel = FifoChannel(4)
    get_id = await _start_get(session, channel)

    both = {"ok": {"key_expr": "demo/a"}, "err": {"payload": ""}}
    broker.push(MessageType.REPLY, both, id=get_id)

    assert await asyncio.wait_for(channel.receive(), timeout=1) is RecvErr.MALFORMED_REPLY
    assert session.has_record(OperationKind.GET, get_id)
    await session.close()


@pytest.mark.asyncio
async def test_undecodable_frame_is_logged_and_dropped(open_session, broker, caplog):
    session = await open_session()

    broker.feed(b"\x00not-json")
    timestamp = await session.new_timestamp()

    assert timestamp.id == "a1b2"
    assert any("undecodable frame" in record.message for record in caplog.records)
    await session.close()


@pytest.mark.asyncio
async def test_link_loss_disconnects_every_sink(open_session, broker):
    session = await open_session()
    samples = FifoChannel(4)
    replies = FifoChannel(4)
    drops = []
    await _declare_subscriber(session, samples)
    await _start_get(session, (lambda reply: None, lambda: drops.append("dropped")))
    await _start_get(session, replies)
    broker.silent.add(MessageType.SESSION_INFO)
    pending_info = asyncio.create_task(session.info())
    assert await _wait_for(lambda: session.pending == 4)

    broker.drop()

    with pytest.raises(ClosedError):
        await asyncio.wait_for(pending_info, timeout=1)
    assert await samples.receive() is RecvErr.DISCONNECTED
    assert await replies.receive() is RecvErr.DISCONNECTED
    assert drops == ["dropped"]
    assert session.is_closed()
    assert session.pending == 0
    with pytest.raises(ClosedError):
        await session.info()


@pytest.mark.asyncio
async def test_link_loss_reaches_bare_callbacks(open_session, broker):
    session = await open_session()
    replies = []
    samples = []
    await _start_get(session, replies.append)
    await _declare_subscriber(session, samples.append)

    broker.drop()

    assert await _wait_for(lambda: session.pending == 0)
    assert replies == [RecvErr.DISCONNECTED]
    assert samples == [RecvErr.DISCONNECTED]


@pytest.mark.asyncio
async def test_finished_bare_callback_sees_no_disconnect(open_session, broker):
    session = await open_session()
    replies = []
    get_id = await _start_get(session, replies.append)

    broker.push(MessageType.QUERY_FINAL, {"query_id": get_id}, id=get_id)
    assert await _wait_for(lambda: session.pending == 0)
    await session.close()

    assert replies == []


@pytest.mark.asyncio
async def test_cancel_after_final_is_a_no_op(open_session, broker):
    session = await open_session()
    drops = []
    token = CancellationToken()
    get_id = await _start_get(session, (lambda reply: None, lambda: drops.append(1)), token)

    broker.push(MessageType.QUERY_FINAL, {"query_id": get_id}, id=get_id)
    assert await _wait_for(lambda: session.pending == 0)
    token.cancel()

    assert drops == [1]
    await session.close()


@pytest.mark.asyncio
async def test_shared_token_forgets_finished_requests(open_session, broker):
    session = await open_session()
    token = CancellationToken()
    channel = FifoChannel(4)
    finished = await _start_get(session, (lambda reply: None, lambda: None), token)
    abandoned = await _start_get(session, channel, token)
    live = await _start_get(session, (lambda reply: None, lambda: None), token)
    assert len(token._actions) == 3

    broker.push(MessageType.QUERY_FINAL, {"query_id": finished}, id=finished)
    channel.close()
    assert await _wait_for(lambda: session.pending == 1)

    assert len(token._actions) == 1
    assert session.has_record(OperationKind.GET, live)
    assert not session.has_record(OperationKind.GET, abandoned)
    await session.close()
    assert token._actions == []


@pytest.mark.asyncio
async def test_final_after_cancel_is_stale(open_session, broker):
    session = await open_session()
    channel = FifoChannel(4)
    token = CancellationToken()
    get_id = await _start_get(session, channel, token)

    token.cancel()
    broker.push(MessageType.REPLY, {"ok": {"key_expr": "demo/a", "payload": _b64(b"late")}}, id=get_id)
    broker.push(MessageType.QUERY_FINAL, {"query_id": get_id}, id=get_id)
    await session.info()

    assert await channel.receive() is RecvErr.DISCONNECTED
    assert session.pending == 0
    await session.close()


@pytest.mark.asyncio
async def test_consumer_closing_channel_discards_get(open_session):
    session = await open_session()
    channel = FifoChannel(4)
    get_id = await _start_get(session, channel)

    channel.close()

    assert not session.has_record(OperationKind.GET, get_id)
    await session.close()


@pytest.mark.asyncio
async def test_undeclare_is_idempotent(open_session, broker):
    session = await open_session()
    first = await _declare_subscriber(session, FifoChannel(4))
    second = await _declare_subscriber(session, FifoChannel(4))
    assert first != second

    await session.undeclare(OperationKind.SUBSCRIBER, first, MessageType.UNDECLARE_SUBSCRIBER)
    await session.undeclare(OperationKind.SUBSCRIBER, first, MessageType.UNDECLARE_SUBSCRIBER)
    await session.undeclare(OperationKind.SUBSCRIBER, 4242, MessageType.UNDECLARE_SUBSCRIBER)

    undeclares = broker.envelopes(MessageType.UNDECLARE_SUBSCRIBER)
    assert [envelope.id for envelope in undeclares] == [first]
    assert session.has_record(OperationKind.SUBSCRIBER, second)
    await session.close()


@pytest.mark.asyncio
async def test_declare_rejected_leaves_no_record(open_session, broker):
    session = await open_session()
    broker.responses[MessageType.DECLARE_SUBSCRIBER] = (MessageType.ERROR, {"error": "bad key expression"})
    channel = FifoChannel(4)

    with pytest.raises(RemoteError, match="bad key expression"):
        await _declare_subscriber(session, channel)

    assert session.pending == 0
    assert channel.is_closed()
    await session.close()


@pytest.mark.asyncio
async def test_async_callbacks_are_scheduled(open_session, broker):
    session = await open_session()
    seen = []

    async def _on_sample(sample: Sample) -> None:
        if sample is RecvErr.DISCONNECTED:
            return
        await asyncio.sleep(0)
        seen.append(sample.payload)

    subscriber_id = await _declare_subscriber(session, _on_sample)
    broker.push(MessageType.SAMPLE, {"key_expr": "demo/a", "payload": _b64(b"async")}, id=subscriber_id)

    assert await _wait_for(lambda: seen == [b"async"])
    await session.close()


@pytest.mark.asyncio
async def test_callback_errors_are_logged_not_raised(open_session, broker, caplog):
    session = await open_session()
    seen = []

    def _on_sample(sample: Sample) -> None:
        if sample.payload == b"bad":
            raise ValueError("cannot handle")
        seen.append(sample.payload)

    subscriber_id = await _declare_subscriber(session, _on_sample)
    broker.push(MessageType.SAMPLE, {"key_expr": "demo/a", "payload": _b64(b"bad")}, id=subscriber_id)
    broker.push(MessageType.SAMPLE, {"key_expr": "demo/a", "payload": _b64(b"good")}, id=subscriber_id)

    assert await _wait_for(lambda: seen == [b"good"])
    assert any("Result handler for subscriber" in record.message for record in caplog.records)
    await session.close()


@pytest.mark.asyncio
async def test_close_is_idempotent(open_session, broker):
    session = await open_session()
    channel = FifoChannel(4)
    await _declare_subscriber(session, channel)

    await session.close()
    await session.close()

    assert len(broker.envelopes(MessageType.SESSION_CLOSE)) == 1
    assert session.is_closed()
    assert await channel.receive() is RecvErr.DISCONNECTED
    assert not broker.is_open()
