import asyncio
import logging

import pytest

from zremote.cancellation import CancellationToken


def test_cancel_runs_actions_once_in_order():
    token = CancellationToken()
    calls = []
    token.register(lambda: calls.append(1))
    token.register(lambda: calls.append(2))

    token.cancel()
    token.cancel()

    assert token.is_cancelled()
    assert calls == [1, 2]


def test_register_after_cancel_runs_synchronously():
    token = CancellationToken()
    token.cancel()
    calls = []

    token.register(lambda: calls.append("now"))

    assert calls == ["now"]


def test_failing_action_does_not_stop_the_rest(caplog):
    token = CancellationToken()
    calls = []

    def _boom() -> None:
        raise RuntimeError("boom")

    token.register(_boom)
    token.register(lambda: calls.append("after"))
    caplog.set_level(logging.ERROR)

    token.cancel()

    assert calls == ["after"]
    assert any("Cancellation action failed" in record.message for record in caplog.records)


@pytest.mark.asyncio
async def test_cancel_after_fires_on_the_loop():
    token = CancellationToken()
    fired = asyncio.Event()
    token.register(fired.set)

    token.cancel_after(0.01)

    await asyncio.wait_for(fired.wait(), timeout=1)
    assert token.is_cancelled()


def test_unregistered_action_does_not_run():
    token = CancellationToken()
    calls = []
    unregister = token.register(lambda: calls.append("removed"))
    token.register(lambda: calls.append("kept"))

    unregister()
    unregister()
    token.cancel()

    assert calls == ["kept"]
