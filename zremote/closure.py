"""Normalization of user-supplied result handlers.

Callers may pass a bare callback, a ``(callback, drop)`` pair, or a channel
(anything exposing ``into_sender_receiver_pair``). A bare callback is handed
``RecvErr.DISCONNECTED`` when its session goes away. Each shape is resolved once,
at registration time, into a :class:`Closure` so the session only ever deals
with one uniform (callback, drop) pair.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Optional, Tuple, TypeVar, Union

from zremote.channels import ChannelReceiver

T = TypeVar("T")

Callback = Callable[[T], Union[None, Awaitable[None]]]
Drop = Callable[[], None]
Handler = Union[Callback[T], Tuple[Callback[T], Drop], Any]


def _noop() -> None:
    return None


@dataclass
class Closure(Generic[T]):
    callback: Callback[T]
    drop: Drop = _noop
    receiver: Optional[ChannelReceiver[T]] = None
    # set for bare callbacks; teardown hands them RecvErr.DISCONNECTED
    notify_disconnect: bool = False
    _dropped: bool = field(default=False, init=False, repr=False)

    def close(self) -> None:
        """Run ``drop`` once; later calls are no-ops."""

        if self._dropped:
            return
        self._dropped = True
        self.drop()

    @property
    def dropped(self) -> bool:
        return self._dropped


def is_channel(handler: Any) -> bool:
    return callable(getattr(handler, "into_sender_receiver_pair", None))


def into_closure(handler: Handler[T]) -> Closure[T]:
    if is_channel(handler):
        sender, receiver = handler.into_sender_receiver_pair()
        return Closure(callback=sender.send, drop=sender.close, receiver=receiver)
    if isinstance(handler, tuple):
        if len(handler) != 2 or not all(callable(part) for part in handler):
            raise TypeError("Handler tuple must be (callback, drop)")
        callback, drop = handler
        return Closure(callback=callback, drop=drop)
    if callable(handler):
        return Closure(callback=handler, notify_disconnect=True)
    raise TypeError(f"Unsupported handler type: {type(handler).__name__}")
