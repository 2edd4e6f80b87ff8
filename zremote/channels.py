"""Bounded channels used to hand asynchronous results to the application.

Two overflow policies are provided:

- :class:`FifoChannel` rejects the newest item once full, preserving the order
  of everything already queued (query replies, subscriber samples).
- :class:`RingChannel` evicts the oldest queued item to make room, so the
  latest value always wins (matching-status notifications).

Channels never raise on the receive side. Once closed and drained,
``receive`` returns :attr:`RecvErr.DISCONNECTED` on every call.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
from collections import deque
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Deque, Generic, List, Optional, Protocol, Tuple, TypeVar, Union

from zremote.errors import ClosedError

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)


class RecvErr(enum.Enum):
    """In-band terminal/error values surfaced instead of exceptions."""

    DISCONNECTED = "disconnected"
    MALFORMED_REPLY = "malformed_reply"


class ChannelState(enum.Enum):
    EMPTY = "empty"
    DATA = "data"
    CLOSED = "closed"


class TryReceivedKind(enum.Enum):
    VALUE = "value"
    NOT_RECEIVED = "not_received"
    CLOSED = "closed"


@dataclass(frozen=True)
class TryReceived(Generic[T]):
    kind: TryReceivedKind
    value: Optional[T] = None


class ChannelReceiver(Protocol[T_co]):
    def state(self) -> ChannelState: ...

    async def receive(self) -> Union[T_co, RecvErr]: ...

    def try_receive(self) -> TryReceived[T_co]: ...

    def __aiter__(self) -> AsyncIterator[T_co]: ...


class FifoChannel(Generic[T]):
    """Bounded FIFO channel. When full, newly sent items are silently dropped."""

    def __init__(self, capacity: int) -> None:
        if capacity < 0:
            raise ValueError(f"Channel capacity must be >= 0, got {capacity}")
        self._capacity = capacity
        self._queue: Deque[T] = deque()
        self._waiters: Deque[asyncio.Future[None]] = deque()
        self._closed = False
        self._close_callbacks: List[Callable[[], None]] = []
        self.dropped = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._queue)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(capacity={self._capacity}, size={len(self._queue)}, closed={self._closed})"

    def send(self, item: T) -> None:
        self._check_open()
        if len(self._queue) >= self._capacity:
            self.dropped += 1
            LOGGER.debug("Channel full (capacity=%s); dropping newest item", self._capacity)
            return
        self._queue.append(item)
        self._wake_one()

    async def receive(self) -> Union[T, RecvErr]:
        """Wait for the next item; ``RecvErr.DISCONNECTED`` once closed and drained."""

        while not self._queue:
            if self._closed:
                return RecvErr.DISCONNECTED
            waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)
            try:
                await waiter
            except asyncio.CancelledError:
                with contextlib.suppress(ValueError):
                    self._waiters.remove(waiter)
                if waiter.done() and not waiter.cancelled():
                    # we were woken but will not consume; hand the wake-up on
                    self._wake_one()
                raise
        return self._queue.popleft()

    def try_receive(self) -> TryReceived[T]:
        if self._queue:
            return TryReceived(TryReceivedKind.VALUE, self._queue.popleft())
        if self._closed:
            return TryReceived(TryReceivedKind.CLOSED)
        return TryReceived(TryReceivedKind.NOT_RECEIVED)

    def close(self) -> None:
        """Close the channel and wake every pending receiver. Idempotent."""

        if self._closed:
            return
        self._closed = True
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
        callbacks, self._close_callbacks = self._close_callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:  # noqa: BLE001
                LOGGER.exception("Channel close callback failed")

    def is_closed(self) -> bool:
        return self._closed

    def state(self) -> ChannelState:
        if self._closed:
            return ChannelState.CLOSED
        return ChannelState.DATA if self._queue else ChannelState.EMPTY

    def add_close_callback(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` once when the channel closes (immediately if it already is)."""

        if self._closed:
            callback()
            return
        self._close_callbacks.append(callback)

    def into_sender_receiver_pair(self) -> Tuple["FifoChannel[T]", "FifoChannel[T]"]:
        return self, self

    def __aiter__(self) -> AsyncIterator[T]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[T]:
        while True:
            item = await self.receive()
            if item is RecvErr.DISCONNECTED:
                return
            yield item  # type: ignore[misc]

    def _check_open(self) -> None:
        if self._closed:
            raise ClosedError("Channel is closed")

    def _wake_one(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return


class RingChannel(FifoChannel[T]):
    """Bounded circular channel. When full, the oldest item is evicted."""

    def send(self, item: T) -> None:
        self._check_open()
        if self._capacity == 0:
            return
        if len(self._queue) >= self._capacity:
            self._queue.popleft()
            self.dropped += 1
        self._queue.append(item)
        self._wake_one()
