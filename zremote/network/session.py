"""Session layer multiplexing every remote operation over one Link.

This layer is responsible for:
- Correlation id allocation per operation namespace
- Pending-record bookkeeping (create, deliver, remove exactly once)
- Request/response correlation through ``seq``
- Routing inbound entity streams (samples, queries, replies, matching
  notifications) to the sink registered for their ``id``

It does not know what a publisher or a query *means*; the handles in
``zremote.api`` give the records their semantics.
"""

from __future__ import annotations

import asyncio
import enum
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Set, Tuple

from pydantic import ValidationError

from zremote_protocol import MessageType, RemoteEnvelope, build_envelope, decode_envelope, encode_envelope, is_response
from zremote_protocol.codec import Payload
from zremote_protocol.models import (
    DeletePayload,
    ErrorPayload,
    OpenAckPayload,
    OpenSessionPayload,
    PutPayload,
    SessionInfoPayload,
    TimestampPayload,
)

from zremote.cancellation import CancellationToken
from zremote.channels import RecvErr
from zremote.closure import Closure, Handler, into_closure
from zremote.config import RemoteSettings, get_settings
from zremote.errors import ClosedError, RemoteError
from zremote.network.link import ConnectFailedHook, Link
from zremote.network.transport.base import TransportFactory

LOGGER = logging.getLogger(__name__)

ID_MAX = 2**31

Decoder = Callable[[Dict[str, Any]], Any]


class OperationKind(str, enum.Enum):
    """Independent correlation-id namespaces."""

    REQUEST = "request"
    PUBLISHER = "publisher"
    SUBSCRIBER = "subscriber"
    QUERYABLE = "queryable"
    QUERIER = "querier"
    LIVELINESS_TOKEN = "liveliness_token"
    GET = "get"
    MATCHING_LISTENER = "matching_listener"


RecordKey = Tuple[OperationKind, int]

# Inbound entity streams and the namespace their envelope ``id`` belongs to.
_STREAM_ROUTES: Dict[MessageType, OperationKind] = {
    MessageType.SAMPLE: OperationKind.SUBSCRIBER,
    MessageType.QUERY: OperationKind.QUERYABLE,
    MessageType.REPLY: OperationKind.GET,
    MessageType.QUERY_FINAL: OperationKind.GET,
    MessageType.MATCHING_STATUS: OperationKind.MATCHING_LISTENER,
}


@dataclass
class IdSource:
    """Wrapping counter over ``0..ID_MAX`` that never yields a live identifier."""

    current: int = 0

    def allocate(self, in_use: Callable[[int], bool]) -> int:
        for _ in range(ID_MAX + 1):
            candidate = self.current
            self.current = 0 if candidate == ID_MAX else candidate + 1
            if not in_use(candidate):
                return candidate
        raise RuntimeError("Correlation id space exhausted")


@dataclass
class PendingRecord:
    kind: OperationKind
    id: int
    closure: Closure[Any]
    decode: Optional[Decoder] = None
    release_token: Optional[Callable[[], None]] = field(default=None, repr=False)

    @property
    def key(self) -> RecordKey:
        return (self.kind, self.id)


def _ignore(_: Any) -> None:
    return None


@dataclass
class Session:
    """Client session bound to one remote-api connection."""

    settings: RemoteSettings
    link: Link
    uuid: Optional[str] = None

    _records: Dict[RecordKey, PendingRecord] = field(default_factory=dict, init=False, repr=False)
    _id_sources: Dict[OperationKind, IdSource] = field(init=False, repr=False)
    _callback_tasks: Set[asyncio.Task[Any]] = field(default_factory=set, init=False, repr=False)
    _closed: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        self._id_sources = {kind: IdSource() for kind in OperationKind}
        self.link.on_message(self.on_inbound_envelope)
        self.link.on_close(self.on_link_closed)

    @classmethod
    async def open(
        cls,
        settings: Optional[RemoteSettings] = None,
        *,
        transport_factory: Optional[TransportFactory] = None,
        on_connect_failed: Optional[ConnectFailedHook] = None,
    ) -> "Session":
        """Connect to ``settings.locator`` and complete the ``session.open`` handshake."""

        settings = settings or get_settings()
        link = await Link.open(
            settings.locator,
            settings=settings,
            transport_factory=transport_factory,
            on_connect_failed=on_connect_failed,
        )
        session = cls(settings=settings, link=link)
        try:
            response = await asyncio.wait_for(
                session.request(MessageType.SESSION_OPEN, OpenSessionPayload()),
                timeout=settings.session_open_timeout_seconds,
            )
            session.uuid = OpenAckPayload.model_validate(response.payload).uuid
        except BaseException:
            await session.close()
            raise
        LOGGER.info("Opened remote session %s via %s", session.uuid, link.url)
        return session

    # ------------------------------------------------------------------ records

    @property
    def pending(self) -> int:
        return len(self._records)

    def has_record(self, kind: OperationKind, identifier: int) -> bool:
        return (kind, identifier) in self._records

    def _register(
        self,
        kind: OperationKind,
        closure: Closure[Any],
        decode: Optional[Decoder] = None,
        *,
        watch_receiver: bool = False,
    ) -> PendingRecord:
        records = self._records
        identifier = self._id_sources[kind].allocate(lambda candidate: (kind, candidate) in records)
        record = PendingRecord(kind=kind, id=identifier, closure=closure, decode=decode)
        records[record.key] = record
        receiver = closure.receiver
        if watch_receiver and receiver is not None and hasattr(receiver, "add_close_callback"):
            receiver.add_close_callback(lambda: self._discard(record))
        return record

    def _discard(self, record: PendingRecord, *, disconnected: bool = False) -> bool:
        """Remove ``record`` if it is still the registered one and run its drop. First call wins."""

        if self._records.get(record.key) is not record:
            return False
        del self._records[record.key]
        if record.release_token is not None:
            record.release_token()
            record.release_token = None
        if disconnected and record.closure.notify_disconnect:
            self._invoke(record, RecvErr.DISCONNECTED, "disconnect")
        try:
            record.closure.close()
        except Exception:  # noqa: BLE001
            LOGGER.exception("Drop handler for %s %s failed", record.kind.value, record.id)
        return True

    def _teardown(self) -> None:
        for record in list(self._records.values()):
            self._discard(record, disconnected=True)

    # -------------------------------------------------------------- outbound

    def is_closed(self) -> bool:
        return self._closed

    def _ensure_open(self) -> None:
        if self._closed:
            raise ClosedError("Session is closed")

    async def send_message(
        self,
        message_type: MessageType,
        payload: Optional[Payload] = None,
        *,
        id: Optional[int] = None,
    ) -> None:
        """Fire-and-forget a data message."""

        self._ensure_open()
        await self.link.send(encode_envelope(build_envelope(message_type, payload, id=id)))

    async def request(
        self,
        message_type: MessageType,
        payload: Optional[Payload] = None,
        *,
        id: Optional[int] = None,
    ) -> RemoteEnvelope:
        """Send a request and wait for its response envelope.

        Raises :class:`RemoteError` when the broker answers ``error`` and
        :class:`ClosedError` when the session goes away first.
        """

        self._ensure_open()
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()

        def _resolve(envelope: RemoteEnvelope) -> None:
            if not future.done():
                future.set_result(envelope)

        def _drop() -> None:
            if not future.done():
                future.set_result(RecvErr.DISCONNECTED)

        record = self._register(OperationKind.REQUEST, Closure(callback=_resolve, drop=_drop))
        try:
            await self.link.send(encode_envelope(build_envelope(message_type, payload, seq=record.id, id=id)))
            response = await future
        finally:
            self._discard(record)

        if response is RecvErr.DISCONNECTED:
            raise ClosedError(f"Session closed while awaiting response to {message_type.value}")
        if response.type is MessageType.ERROR:
            try:
                reason = ErrorPayload.model_validate(response.payload).error
            except ValidationError:
                reason = str(response.payload)
            raise RemoteError(reason)
        return response

    async def send_request(
        self,
        kind: OperationKind,
        message_type: MessageType,
        payload: Optional[Payload],
        handler: Handler[Any],
        *,
        decode: Optional[Decoder],
        token: Optional[CancellationToken] = None,
    ) -> int:
        """Start a streaming request whose results arrive through ``handler``.

        Nothing is awaited beyond the write. The record lives until a terminal
        frame, cancellation of ``token``, the consumer closing its channel, or
        session teardown.
        """

        self._ensure_open()
        record = self._register(kind, into_closure(handler), decode, watch_receiver=True)
        if token is not None:
            if token.is_cancelled():
                LOGGER.debug("Not sending %s %s: token already cancelled", kind.value, record.id)
                self._discard(record)
                return record.id
            record.release_token = token.register(lambda: self._discard(record))
        try:
            await self.link.send(encode_envelope(build_envelope(message_type, payload, id=record.id)))
        except BaseException:
            self._discard(record)
            raise
        return record.id

    async def declare(
        self,
        kind: OperationKind,
        message_type: MessageType,
        payload: Optional[Payload],
        handler: Optional[Handler[Any]] = None,
        *,
        decode: Optional[Decoder] = None,
    ) -> int:
        """Register a long-lived entity and wait for the broker to accept it."""

        self._ensure_open()
        closure = into_closure(handler) if handler is not None else Closure(callback=_ignore)
        # registered before sending so nothing that races the ack is lost
        record = self._register(kind, closure, decode)
        try:
            await self.request(message_type, payload, id=record.id)
        except BaseException:
            self._discard(record)
            raise
        LOGGER.debug("Declared %s %s", kind.value, record.id)
        return record.id

    async def undeclare(self, kind: OperationKind, identifier: int, message_type: MessageType) -> None:
        """Drop the entity's record and tell the broker. Unknown ids are ignored."""

        record = self._records.get((kind, identifier))
        if record is None:
            LOGGER.debug("Ignoring undeclare of unknown %s %s", kind.value, identifier)
            return
        self._discard(record)
        if self._closed:
            return
        await self.request(message_type, id=identifier)
        LOGGER.debug("Undeclared %s %s", kind.value, identifier)

    # --------------------------------------------------------------- inbound

    def on_inbound_envelope(self, data: bytes) -> None:
        try:
            envelope = decode_envelope(data)
        except ValidationError as exc:
            LOGGER.warning("Dropping undecodable frame (%d bytes): %s", len(data), exc)
            return

        key = self._route(envelope)
        if key is None:
            LOGGER.warning("Dropping uncorrelated %s frame", envelope.type.value)
            return
        record = self._records.get(key)
        if record is None:
            LOGGER.debug("Dropping %s for unknown %s id %s", envelope.type.value, key[0].value, key[1])
            return

        if envelope.type is MessageType.QUERY_FINAL:
            self._discard(record)
            return
        self._deliver(record, envelope)
        if is_response(envelope):
            self._discard(record)

    @staticmethod
    def _route(envelope: RemoteEnvelope) -> Optional[RecordKey]:
        if is_response(envelope):
            if envelope.seq is None:
                return None
            return (OperationKind.REQUEST, envelope.seq)
        kind = _STREAM_ROUTES.get(envelope.type)
        if kind is None or envelope.id is None:
            return None
        return (kind, envelope.id)

    def _deliver(self, record: PendingRecord, envelope: RemoteEnvelope) -> None:
        value: Any = envelope
        if record.decode is not None:
            try:
                value = record.decode(envelope.payload)
            except ValidationError as exc:
                LOGGER.warning(
                    "Malformed %s payload for %s %s: %s",
                    envelope.type.value,
                    record.kind.value,
                    record.id,
                    exc,
                )
                value = RecvErr.MALFORMED_REPLY
        self._invoke(record, value, envelope.type.value)

    def _invoke(self, record: PendingRecord, value: Any, label: str) -> None:
        try:
            result = record.closure.callback(value)
        except ClosedError:
            LOGGER.debug("Sink of %s %s is closed; dropping %s", record.kind.value, record.id, label)
            return
        except Exception:  # noqa: BLE001
            LOGGER.exception("Result handler for %s %s failed", record.kind.value, record.id)
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._callback_tasks.add(task)
            task.add_done_callback(self._on_callback_done)

    def _on_callback_done(self, task: asyncio.Task[Any]) -> None:
        self._callback_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error("Asynchronous result handler failed", exc_info=exc)

    # ------------------------------------------------------------- lifecycle

    def on_link_closed(self) -> None:
        if not self._closed:
            LOGGER.info("Link of remote session %s closed", self.uuid)
        self._closed = True
        self._teardown()

    async def close(self) -> None:
        """Close the session and its link. Idempotent."""

        was_open = not self._closed
        if was_open and self.link.is_open():
            try:
                await self.link.send(encode_envelope(build_envelope(MessageType.SESSION_CLOSE)))
            except Exception:  # noqa: BLE001
                LOGGER.debug("Suppress session.close send error", exc_info=True)
        self._closed = True
        await self.link.close()
        self._teardown()
        if was_open:
            LOGGER.info("Closed remote session %s", self.uuid)

    # ------------------------------------------------------------ operations

    async def info(self) -> SessionInfoPayload:
        response = await self.request(MessageType.SESSION_INFO)
        return SessionInfoPayload.model_validate(response.payload)

    async def new_timestamp(self) -> TimestampPayload:
        response = await self.request(MessageType.SESSION_TIMESTAMP)
        return TimestampPayload.model_validate(response.payload)

    async def put(self, payload: PutPayload) -> None:
        await self.send_message(MessageType.PUT, payload)

    async def delete(self, payload: DeletePayload) -> None:
        await self.send_message(MessageType.DELETE, payload)
