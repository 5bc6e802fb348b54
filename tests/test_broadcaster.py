from concurrent.futures import TimeoutError as FutureTimeoutError

import pytest

from hearth_core import ResourceBroadcaster


def test_first_resolve_wins():
    broadcaster = ResourceBroadcaster("server:srv")

    assert broadcaster.resolve("first") is True
    assert broadcaster.resolve("second") is False
    assert broadcaster.fail(RuntimeError("late")) is False
    assert broadcaster.result(timeout=0) == "first"


def test_subscribers_before_and_after_resolution_see_same_value():
    broadcaster = ResourceBroadcaster("server:srv")
    early, late = [], []

    broadcaster.subscribe(lambda value, error: early.append((value, error)))
    broadcaster.resolve("server")
    broadcaster.subscribe(lambda value, error: late.append((value, error)))

    assert early == late == [("server", None)]


def test_failure_reaches_every_reader():
    broadcaster = ResourceBroadcaster("aggregator:agg")
    error = RuntimeError("port in use")
    received = []

    broadcaster.fail(error)
    broadcaster.subscribe(lambda value, err: received.append(err))

    assert broadcaster.failed()
    assert received == [error]
    for _ in range(2):
        with pytest.raises(RuntimeError):
            broadcaster.result(timeout=0)


def test_result_times_out_while_unresolved():
    broadcaster = ResourceBroadcaster("server:srv")

    assert not broadcaster.done()
    with pytest.raises(FutureTimeoutError):
        broadcaster.result(timeout=0.01)
