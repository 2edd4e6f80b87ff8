"""One-shot cancellation token used to abandon in-flight queries."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List

LOGGER = logging.getLogger(__name__)

CancelAction = Callable[[], None]


class CancellationToken:
    """Broadcasts a single cancel event to every registered cleanup action.

    Cancellation is local: it stops delivery to the caller (the pending query
    is discarded and its channel closed) but does not abort work already
    running on the broker.
    """

    def __init__(self) -> None:
        self._actions: List[CancelAction] = []
        self._cancelled = False

    def is_cancelled(self) -> bool:
        return self._cancelled

    def register(self, action: CancelAction) -> Callable[[], None]:
        """Queue ``action``, or run it right away if the token is already cancelled.

        Returns a callable that removes ``action`` again; it does nothing once
        the action has run or was already removed.
        """

        if self._cancelled:
            self._run(action)
            return _noop
        self._actions.append(action)

        def _unregister() -> None:
            if action in self._actions:
                self._actions.remove(action)

        return _unregister

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        actions, self._actions = self._actions, []
        for action in actions:
            self._run(action)

    def cancel_after(self, delay: float) -> asyncio.TimerHandle:
        """Cancel the token after ``delay`` seconds on the running loop."""

        return asyncio.get_running_loop().call_later(delay, self.cancel)

    @staticmethod
    def _run(action: CancelAction) -> None:
        try:
            action()
        except Exception:  # noqa: BLE001
            LOGGER.exception("Cancellation action failed")


def _noop() -> None:
    return None
