"""Link that owns the single duplex connection to the remote-api plugin."""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
from typing import Awaitable, Callable, Optional
from urllib.parse import urlsplit

from zremote.config import RemoteSettings
from zremote.errors import ClosedError, InvalidLocatorError, LinkConnectionError
from zremote.network.transport.base import BaseTransport, TransportFactory
from zremote.network.transport.websocket import WebSocketTransport

LOGGER = logging.getLogger(__name__)

MAX_WRITE_BUFFER_BYTES = 2 * 1024 * 1024
RETRY_TIMEOUT_MS = 2000
MAX_RETRIES = 10
SEND_POLL_INTERVAL_MS = 10
VALID_SCHEMES = frozenset({"ws", "wss"})

MessageHandler = Callable[[bytes], None]
CloseHandler = Callable[[], None]
ConnectFailedHook = Callable[[int, Exception, float], Awaitable[None]]


class LinkState(enum.Enum):
    CONNECTING = "CONNECTING"
    OPEN = "OPEN"
    CLOSED = "CLOSED"


def parse_locator(locator: str) -> str:
    """Turn ``ws/host:port`` into ``ws://host:port``; URLs pass through unchanged."""

    parts = locator.split("/", 1)
    if len(parts) == 2 and parts[0] in VALID_SCHEMES:
        url = f"{parts[0]}://{parts[1]}"
    else:
        url = locator
    if urlsplit(url).scheme not in VALID_SCHEMES:
        raise InvalidLocatorError(f"Unsupported locator {locator!r}: expected ws or wss endpoint")
    return url


class Link:
    """Maintains exactly one live connection and exposes send + inbound callbacks.

    The link retries only while it is being established. Once open, a dropped
    connection is final: the close handler fires and further sends raise
    :class:`ClosedError`.
    """

    def __init__(
        self,
        locator: str,
        *,
        settings: Optional[RemoteSettings] = None,
        transport_factory: Optional[TransportFactory] = None,
        on_connect_failed: Optional[ConnectFailedHook] = None,
    ) -> None:
        self.locator = locator
        self.url = parse_locator(locator)
        self._transport_factory: TransportFactory = transport_factory or WebSocketTransport
        self._on_connect_failed = on_connect_failed
        if settings is not None:
            self._max_retries = settings.connect_max_retries
            self._retry_timeout = settings.connect_retry_timeout_ms / 1000.0
            self._high_water = settings.write_buffer_high_water_bytes
            self._poll_interval = settings.send_poll_interval_ms / 1000.0
        else:
            self._max_retries = MAX_RETRIES
            self._retry_timeout = RETRY_TIMEOUT_MS / 1000.0
            self._high_water = MAX_WRITE_BUFFER_BYTES
            self._poll_interval = SEND_POLL_INTERVAL_MS / 1000.0
        self._transport: Optional[BaseTransport] = None
        self._transport_closed = False
        self._state = LinkState.CONNECTING
        self._on_message: Optional[MessageHandler] = None
        self._on_close: Optional[CloseHandler] = None
        self._reader: Optional[asyncio.Task[None]] = None

    @classmethod
    async def open(
        cls,
        locator: str,
        *,
        settings: Optional[RemoteSettings] = None,
        transport_factory: Optional[TransportFactory] = None,
        on_connect_failed: Optional[ConnectFailedHook] = None,
    ) -> "Link":
        link = cls(
            locator,
            settings=settings,
            transport_factory=transport_factory,
            on_connect_failed=on_connect_failed,
        )
        await link.connect()
        return link

    @property
    def state(self) -> LinkState:
        return self._state

    async def connect(self) -> None:
        """Connect with bounded retries, doubling the per-attempt budget after each failure."""

        if self._state is not LinkState.CONNECTING:
            raise ClosedError(f"Link to {self.url} is {self._state.value.lower()}")
        loop = asyncio.get_running_loop()
        budget = self._retry_timeout
        for attempt in range(1, self._max_retries + 1):
            transport = self._transport_factory(self.url)
            started = loop.time()
            try:
                await transport.connect(timeout=budget)
                if not transport.is_open():
                    raise ConnectionError("transport did not reach the open state")
            except asyncio.CancelledError:
                await self._discard(transport)
                self._state = LinkState.CLOSED
                raise
            except Exception as exc:  # noqa: BLE001
                await self._discard(transport)
                LOGGER.warning(
                    "Link connect to %s failed (attempt %s/%s, budget %.1fs): %s",
                    self.url,
                    attempt,
                    self._max_retries,
                    budget,
                    exc,
                )
                if self._on_connect_failed:
                    try:
                        await self._on_connect_failed(attempt, exc, budget)
                    except Exception:  # noqa: BLE001
                        LOGGER.debug("Suppress link on_connect_failed callback error", exc_info=True)
                if attempt < self._max_retries and not isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
                    # fast failures still wait out their window
                    remaining = budget - (loop.time() - started)
                    if remaining > 0:
                        await asyncio.sleep(remaining)
                budget *= 2
                continue
            self._transport = transport
            self._state = LinkState.OPEN
            LOGGER.info("Connected to %s after %s attempt(s)", self.url, attempt)
            return
        self._state = LinkState.CLOSED
        raise LinkConnectionError(
            f"Failed to connect to locator endpoint: {self.locator} after {self._max_retries} attempts"
        )

    def is_open(self) -> bool:
        return (
            self._state is LinkState.OPEN
            and self._transport is not None
            and self._transport.is_open()
        )

    async def send(self, data: bytes) -> None:
        """Write one frame once the outbound buffer is below the high-water mark."""

        if not self.is_open():
            raise ClosedError("Link is closed")
        assert self._transport is not None
        while self._transport.write_buffer_size() > self._high_water:
            await asyncio.sleep(self._poll_interval)
            if not self.is_open():
                raise ClosedError("Link is closed")
        try:
            await self._transport.send(data)
        except Exception as exc:  # noqa: BLE001
            if not self.is_open():
                raise ClosedError("Link closed while sending") from exc
            raise

    def on_message(self, handler: MessageHandler) -> None:
        """Register the inbound frame handler and start reading."""

        self._on_message = handler
        if self._reader is None and self._state is LinkState.OPEN:
            self._reader = asyncio.create_task(self._receive_loop(), name="link-recv")

    def on_close(self, handler: CloseHandler) -> None:
        if self._state is LinkState.CLOSED:
            handler()
            return
        self._on_close = handler

    async def close(self) -> None:
        """Detach the message handler and terminate the connection. Idempotent."""

        self._on_message = None
        self._mark_closed()
        reader, self._reader = self._reader, None
        if reader and reader is not asyncio.current_task():
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader
        await self._close_transport()

    async def _receive_loop(self) -> None:
        assert self._transport is not None
        try:
            while True:
                data = await self._transport.receive()
                handler = self._on_message
                if handler is None:
                    return
                try:
                    handler(data)
                except Exception:  # noqa: BLE001
                    LOGGER.exception("Link message handler failed")
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            if self._state is LinkState.OPEN:
                LOGGER.warning("Link to %s disconnected: %s", self.url, exc)
            await self._close_transport()
        finally:
            self._mark_closed()

    def _mark_closed(self) -> None:
        if self._state is LinkState.CLOSED:
            return
        self._state = LinkState.CLOSED
        handler, self._on_close = self._on_close, None
        if handler:
            try:
                handler()
            except Exception:  # noqa: BLE001
                LOGGER.exception("Link close handler failed")

    async def _close_transport(self) -> None:
        if self._transport is None or self._transport_closed:
            return
        self._transport_closed = True
        await self._discard(self._transport)

    @staticmethod
    async def _discard(transport: BaseTransport) -> None:
        try:
            await transport.close()
        except Exception:  # noqa: BLE001
            LOGGER.debug("Suppress transport close error", exc_info=True)
