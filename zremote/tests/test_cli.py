import base64

import pytest

from zremote_protocol import MessageType
from zremote_protocol.models import Reply, ReplyError, Sample
from zremote import cli
from zremote.channels import RecvErr
from zremote.config import get_settings
from zremote.network.transport.dummy import DummyTransport


class _RefusingTransport(DummyTransport):
    async def connect(self, timeout: float) -> None:
        raise ConnectionRefusedError("refused")


@pytest.fixture(autouse=True)
def _fast_settings(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("ZREMOTE_CONFIG_FILE", raising=False)
    monkeypatch.setenv("ZREMOTE_CONNECT_MAX_RETRIES", "1")
    monkeypatch.setenv("ZREMOTE_CONNECT_RETRY_TIMEOUT_MS", "1")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_parser_subcommands():
    parser = cli.build_parser()

    args = parser.parse_args(["-e", "ws/1.2.3.4:10000", "get", "demo/**?n=1", "--timeout-ms", "50"])
    assert (args.locator, args.selector, args.timeout_ms) == ("ws/1.2.3.4:10000", "demo/**?n=1", 50)

    args = parser.parse_args(["liveliness", "sub", "group/**", "--history"])
    assert args.history is True
    assert args.handler is cli._cmd_liveliness_sub

    with pytest.raises(SystemExit):
        parser.parse_args([])


def test_split_selector():
    assert cli.split_selector("demo/**?n=1;x=2") == ("demo/**", "n=1;x=2")
    assert cli.split_selector("demo/**") == ("demo/**", None)


def test_formatting():
    sample = Sample(key_expr="demo/a", payload=b"hi")
    assert cli.format_sample(sample) == ">> [Subscriber] Received PUT ('demo/a': 'hi')"
    assert cli.format_reply(Reply(ok=sample)) == ">> Received ('demo/a': 'hi')"
    assert cli.format_reply(Reply(err=ReplyError(payload=b"boom"))) == ">> Received (ERROR: 'boom')"
    assert cli.format_reply(RecvErr.MALFORMED_REPLY) == ">> Received (MALFORMED REPLY)"


def test_put_command(broker):
    code = cli.main(["put", "demo/a", "hello"], transport_factory=lambda url: broker)

    assert code == 0
    put = broker.envelopes(MessageType.PUT)[0]
    assert put.payload == {"key_expr": "demo/a", "payload": base64.b64encode(b"hello").decode("ascii")}
    assert len(broker.envelopes(MessageType.SESSION_CLOSE)) == 1


def test_info_command(broker, capsys):
    code = cli.main(["info"], transport_factory=lambda url: broker)

    assert code == 0
    out = capsys.readouterr().out
    assert "zid: a1b2" in out
    assert "peers zid: ['p1', 'p2']" in out


def test_get_command_prints_replies(broker, capsys):
    def _answer(envelope):
        reply = {"ok": {"key_expr": "demo/a", "payload": base64.b64encode(b"42").decode("ascii")}}
        broker.push(MessageType.REPLY, reply, id=envelope.id)
        broker.push(MessageType.QUERY_FINAL, {"query_id": envelope.id}, id=envelope.id)

    broker.on_send[MessageType.GET] = _answer

    code = cli.main(["get", "demo/**?n=1"], transport_factory=lambda url: broker)

    assert code == 0
    assert broker.envelopes(MessageType.GET)[0].payload["parameters"] == "n=1"
    assert ">> Received ('demo/a': '42')" in capsys.readouterr().out


def test_unreachable_endpoint_returns_error_code():
    assert cli.main(["delete", "demo/a"], transport_factory=lambda url: _RefusingTransport()) == 1


def test_invalid_locator_returns_error_code(broker):
    assert cli.main(["--locator", "tcp/127.0.0.1:7447", "info"], transport_factory=lambda url: broker) == 1


def test_get_without_reply_channel_returns_error_code(broker, monkeypatch):
    async def _no_receiver(self, *args, **kwargs):
        return None

    monkeypatch.setattr(cli.RemoteClient, "get", _no_receiver)

    assert cli.main(["get", "demo/**"], transport_factory=lambda url: broker) == 1
