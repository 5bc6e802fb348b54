import threading

import pytest

from hearth_core import (
    CoordinatorClosedError,
    CoordinatorState,
    RegistrationOutcome,
    ResourceStartError,
    StartupCoordinator,
)

from conftest import wait_until


class Recorder:
    """Start procedure + hooks that record every call."""

    def __init__(self, resource="resource", error=None):
        self.resource = resource
        self.error = error
        self.starts = 0
        self.attached = []
        self.unreachable = []
        self.failures = []
        self.lock = threading.Lock()

    def start(self):
        with self.lock:
            self.starts += 1
        if self.error is not None:
            raise self.error
        return self.resource

    def attach(self, participant_id, attachment):
        self.attached.append((participant_id, attachment))

    def coordinator(self, participants, timers, **kwargs):
        return StartupCoordinator(
            name="server:srv",
            participants=participants,
            start=self.start,
            attach=self.attach,
            timeout=kwargs.pop("timeout", 10.0),
            on_participant_timeout=self.unreachable.append,
            on_failure=self.failures.append,
            timer_factory=timers,
            **kwargs,
        )


def test_all_registered_starts_once_without_warnings(timers):
    recorder = Recorder()
    coordinator = recorder.coordinator(["a", "b"], timers)

    assert coordinator.state is CoordinatorState.WAITING
    assert timers.last.interval == 10.0

    assert coordinator.register("a", "endpoint-a") is RegistrationOutcome.ACCEPTED
    assert coordinator.state is CoordinatorState.WAITING
    assert coordinator.register("b", "endpoint-b") is RegistrationOutcome.ACCEPTED

    assert coordinator.handle.result(timeout=5) == "resource"
    assert coordinator.state is CoordinatorState.STARTED
    assert timers.last.cancelled
    assert not coordinator.timer_armed
    assert recorder.starts == 1
    assert recorder.unreachable == []
    assert not coordinator.degraded
    assert recorder.attached == [("a", "endpoint-a"), ("b", "endpoint-b")]


def test_timeout_starts_degraded_and_warns_missing_only(timers):
    recorder = Recorder()
    coordinator = recorder.coordinator(["a", "b"], timers)

    coordinator.register("a", "endpoint-a")
    timers.last.fire()

    assert coordinator.handle.result(timeout=5) == "resource"
    assert coordinator.degraded
    assert recorder.unreachable == ["b"]
    assert coordinator.pending == ["b"]
    assert recorder.starts == 1


def test_empty_participant_set_starts_without_timer(timers):
    recorder = Recorder()
    coordinator = recorder.coordinator([], timers)

    assert coordinator.handle.result(timeout=5) == "resource"
    assert timers.timers == []
    assert recorder.starts == 1


def test_timer_racing_with_last_registration_does_not_start_twice(timers):
    recorder = Recorder()
    coordinator = recorder.coordinator(["a"], timers)

    coordinator.register("a")
    timers.last.fire(force=True)

    coordinator.handle.result(timeout=5)
    assert recorder.starts == 1
    assert recorder.unreachable == []


def test_late_registration_is_not_attached(timers):
    recorder = Recorder()
    coordinator = recorder.coordinator(["a", "b"], timers)
    coordinator.register("a", "endpoint-a")
    timers.last.fire()
    coordinator.handle.result(timeout=5)

    assert coordinator.register("b", "endpoint-b") is RegistrationOutcome.LATE
    assert recorder.attached == [("a", "endpoint-a")]
    assert coordinator.pending == []
    assert recorder.starts == 1


def test_duplicate_and_unknown_registrations(timers):
    recorder = Recorder()
    coordinator = recorder.coordinator(["a", "b"], timers)

    coordinator.register("a")
    assert coordinator.register("a") is RegistrationOutcome.DUPLICATE
    assert coordinator.register("stranger") is RegistrationOutcome.UNKNOWN
    assert not coordinator.is_participant("stranger")
    assert coordinator.state is CoordinatorState.WAITING


def test_attach_failure_still_counts_as_registered(timers):
    recorder = Recorder()

    def refuse(participant_id, attachment):
        raise RuntimeError("duplicate port")

    coordinator = StartupCoordinator(
        name="aggregator:agg",
        participants=["a"],
        start=recorder.start,
        attach=refuse,
        timer_factory=timers,
    )

    assert coordinator.register("a", "accessory") is RegistrationOutcome.REJECTED
    assert coordinator.handle.result(timeout=5) == "resource"


def test_start_failure_reaches_late_subscribers(timers):
    recorder = Recorder(error=OSError("address in use"))
    coordinator = recorder.coordinator([], timers)

    with pytest.raises(ResourceStartError) as excinfo:
        coordinator.handle.result(timeout=5)
    assert isinstance(excinfo.value.__cause__, OSError)
    assert coordinator.state is CoordinatorState.FAILED

    received = []
    coordinator.handle.subscribe(lambda value, error: received.append(error))
    assert received == [excinfo.value]
    assert wait_until(lambda: recorder.failures == [excinfo.value])
    assert recorder.starts == 1


def test_close_rejects_registration_and_fails_waiters(timers):
    recorder = Recorder()
    coordinator = recorder.coordinator(["a"], timers)

    coordinator.close()
    coordinator.close()

    assert coordinator.state is CoordinatorState.CLOSED
    assert timers.last.cancelled
    with pytest.raises(CoordinatorClosedError):
        coordinator.register("a")
    with pytest.raises(CoordinatorClosedError):
        coordinator.handle.result(timeout=0)
    assert recorder.starts == 0


def test_timer_after_close_is_ignored(timers):
    recorder = Recorder()
    coordinator = recorder.coordinator(["a"], timers)
    coordinator.close()

    timers.last.fire(force=True)

    assert recorder.starts == 0
    assert recorder.unreachable == []


def test_invalid_timeout(timers):
    with pytest.raises(ValueError):
        Recorder().coordinator(["a"], timers, timeout=0)


def test_failure_callback_error_is_contained(timers):
    def broken_error_channel(error):
        raise RuntimeError("node already gone")

    coordinator = StartupCoordinator(
        name="aggregator:agg",
        participants=[],
        start=Recorder(error=OSError("port in use")).start,
        on_failure=broken_error_channel,
        timer_factory=timers,
    )

    with pytest.raises(ResourceStartError):
        coordinator.handle.result(timeout=5)
    assert wait_until(lambda: not coordinator._start_thread.is_alive())
    assert coordinator.state is CoordinatorState.FAILED


def test_resource_started_after_close_is_stopped(timers):
    release = threading.Event()
    stopped = []

    def slow_start():
        release.wait(timeout=5)
        return "server"

    coordinator = StartupCoordinator(
        name="server:srv",
        participants=["a"],
        start=slow_start,
        stop=stopped.append,
        timer_factory=timers,
    )
    coordinator.register("a")
    assert coordinator.state is CoordinatorState.STARTING

    coordinator.close()
    release.set()

    assert wait_until(lambda: stopped == ["server"])
    assert coordinator.state is CoordinatorState.CLOSED
    assert isinstance(coordinator.handle.exception(timeout=1), CoordinatorClosedError)
