"""Command line client for quick interaction with a remote-api endpoint."""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence, Union

from zremote_protocol.models import Reply, Sample

from zremote.channels import RecvErr
from zremote.config import RemoteSettings, get_settings
from zremote.errors import ClosedError, InvalidLocatorError, LinkConnectionError, RemoteError
from zremote.network.client import RemoteClient
from zremote.network.transport.base import TransportFactory

LOGGER = logging.getLogger(__name__)

Command = Callable[[RemoteClient, argparse.Namespace], Awaitable[int]]


def _text(data: Optional[bytes]) -> str:
    return (data or b"").decode("utf-8", errors="replace")


def format_sample(sample: Sample, source: str = "Subscriber") -> str:
    return f">> [{source}] Received {sample.kind.upper()} ('{sample.key_expr}': '{_text(sample.payload)}')"


def format_reply(reply: Union[Reply, RecvErr]) -> str:
    if reply is RecvErr.MALFORMED_REPLY:
        return ">> Received (MALFORMED REPLY)"
    if reply.err is not None:
        return f">> Received (ERROR: '{_text(reply.err.payload)}')"
    return f">> Received ('{reply.ok.key_expr}': '{_text(reply.ok.payload)}')"


def split_selector(selector: str) -> tuple[str, Optional[str]]:
    key_expr, sep, parameters = selector.partition("?")
    return key_expr, (parameters if sep else None)


async def _cmd_put(client: RemoteClient, args: argparse.Namespace) -> int:
    LOGGER.info("Putting data ('%s': '%s')", args.key, args.value)
    await client.put(args.key, args.value, encoding=args.encoding, attachment=args.attachment)
    return 0


async def _cmd_delete(client: RemoteClient, args: argparse.Namespace) -> int:
    LOGGER.info("Deleting resources matching '%s'", args.key)
    await client.delete(args.key)
    return 0


async def _print_samples(subscriber, count: int, source: str) -> None:
    received = 0
    async for sample in subscriber:
        if sample is RecvErr.MALFORMED_REPLY:
            LOGGER.warning("Skipping malformed sample")
            continue
        print(format_sample(sample, source), flush=True)
        received += 1
        if count and received >= count:
            return


async def _cmd_sub(client: RemoteClient, args: argparse.Namespace) -> int:
    subscriber = await client.declare_subscriber(args.key)
    async with subscriber:
        await _print_samples(subscriber, args.count, "Subscriber")
    return 0


async def _print_replies(receiver) -> int:
    replies = 0
    async for reply in receiver:
        print(format_reply(reply), flush=True)
        replies += 1
    return replies


async def _cmd_get(client: RemoteClient, args: argparse.Namespace) -> int:
    key_expr, parameters = split_selector(args.selector)
    receiver = await client.get(
        key_expr,
        parameters=parameters,
        payload=args.payload,
        timeout_ms=args.timeout_ms,
    )
    if receiver is None:
        LOGGER.error("Get on '%s' returned no reply channel", args.selector)
        return 1
    replies = await _print_replies(receiver)
    LOGGER.info("Get on '%s' finished with %s replies", args.selector, replies)
    return 0


async def _cmd_info(client: RemoteClient, args: argparse.Namespace) -> int:
    info = await client.info()
    print(f"zid: {info.zid}")
    print(f"routers zid: {info.routers}")
    print(f"peers zid: {info.peers}")
    return 0


async def _cmd_liveliness_token(client: RemoteClient, args: argparse.Namespace) -> int:
    token = await client.liveliness().declare_token(args.key)
    async with token:
        LOGGER.info("Declared liveliness token on '%s'", args.key)
        if args.duration:
            await asyncio.sleep(args.duration)
        else:
            await asyncio.Event().wait()
    return 0


async def _cmd_liveliness_sub(client: RemoteClient, args: argparse.Namespace) -> int:
    subscriber = await client.liveliness().declare_subscriber(args.key, history=args.history)
    async with subscriber:
        await _print_samples(subscriber, args.count, "Liveliness Subscriber")
    return 0


async def _cmd_liveliness_get(client: RemoteClient, args: argparse.Namespace) -> int:
    receiver = await client.liveliness().get(args.key, timeout_ms=args.timeout_ms)
    if receiver is None:
        LOGGER.error("Liveliness get on '%s' returned no reply channel", args.key)
        return 1
    await _print_replies(receiver)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="zremote", description="Talk to a pub/sub broker through its remote-api plugin.")
    parser.add_argument("--locator", "-e", help="Endpoint, e.g. ws/127.0.0.1:10000 (defaults to settings).")
    parser.add_argument("--log-level", help="Override the configured log level.")
    commands = parser.add_subparsers(dest="command", required=True)

    put = commands.add_parser("put", help="Put a value on a key expression.")
    put.add_argument("key")
    put.add_argument("value")
    put.add_argument("--encoding")
    put.add_argument("--attachment")
    put.set_defaults(handler=_cmd_put)

    delete = commands.add_parser("delete", help="Delete a key expression.")
    delete.add_argument("key")
    delete.set_defaults(handler=_cmd_delete)

    sub = commands.add_parser("sub", help="Print samples published on a key expression.")
    sub.add_argument("key")
    sub.add_argument("--count", type=int, default=0, help="Exit after this many samples (0: run forever).")
    sub.set_defaults(handler=_cmd_sub)

    get = commands.add_parser("get", help="Query a selector and print the replies.")
    get.add_argument("selector", help="Key expression, optionally followed by ?parameters.")
    get.add_argument("--payload")
    get.add_argument("--timeout-ms", type=int)
    get.set_defaults(handler=_cmd_get)

    info = commands.add_parser("info", help="Print the broker session info.")
    info.set_defaults(handler=_cmd_info)

    liveliness = commands.add_parser("liveliness", help="Liveliness tokens, subscribers and queries.")
    liveliness_commands = liveliness.add_subparsers(dest="liveliness_command", required=True)
    token = liveliness_commands.add_parser("token", help="Declare a liveliness token.")
    token.add_argument("key")
    token.add_argument("--duration", type=float, default=0.0, help="Seconds to stay alive (0: until interrupted).")
    token.set_defaults(handler=_cmd_liveliness_token)
    live_sub = liveliness_commands.add_parser("sub", help="Print liveliness changes.")
    live_sub.add_argument("key")
    live_sub.add_argument("--history", action="store_true")
    live_sub.add_argument("--count", type=int, default=0)
    live_sub.set_defaults(handler=_cmd_liveliness_sub)
    live_get = liveliness_commands.add_parser("get", help="List live tokens.")
    live_get.add_argument("key")
    live_get.add_argument("--timeout-ms", type=int)
    live_get.set_defaults(handler=_cmd_liveliness_get)
    return parser


async def run(
    args: argparse.Namespace,
    settings: RemoteSettings,
    *,
    transport_factory: Optional[TransportFactory] = None,
) -> int:
    client = await RemoteClient.open(settings, locator=args.locator, transport_factory=transport_factory)
    async with client:
        command: Command = args.handler
        return await command(client, args)


def main(argv: Optional[Sequence[str]] = None, *, transport_factory: Optional[TransportFactory] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    level = args.log_level or settings.log_level
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    try:
        return asyncio.run(run(args, settings, transport_factory=transport_factory))
    except KeyboardInterrupt:
        return 130
    except (LinkConnectionError, InvalidLocatorError, RemoteError, ClosedError) as exc:
        LOGGER.error("%s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
