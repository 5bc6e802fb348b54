"""Shared fixtures: manual timers, flow builders and a polling helper."""

import time
from typing import Any, Dict, List

import pytest

from hearth_core import FlowConfig, NodeConfig
from hearth_nodes import FlowRuntime, LoopbackBackend


class FakeTimer:
    """threading.Timer stand-in that only fires when the test says so."""

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self, force=False):
        if self.cancelled and not force:
            return
        self.function()


class FakeTimerFactory:
    def __init__(self):
        self.timers: List[FakeTimer] = []

    def __call__(self, interval, function):
        timer = FakeTimer(interval, function)
        self.timers.append(timer)
        return timer

    @property
    def last(self) -> FakeTimer:
        return self.timers[-1]


def wait_until(predicate, timeout: float = 5.0, interval: float = 0.01) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def timers():
    return FakeTimerFactory()


@pytest.fixture
def make_flow(tmp_path):
    def _make(nodes: List[Dict[str, Any]], **kwargs) -> FlowConfig:
        return FlowConfig(
            bridge_id="test",
            nodes=[NodeConfig.from_dict(n) for n in nodes],
            storage_root=tmp_path / "storage",
            **kwargs,
        )
    return _make


@pytest.fixture
def make_runtime(make_flow, timers):
    runtimes = []

    def _make(nodes, registry=None, load=True, **kwargs) -> FlowRuntime:
        runtime = FlowRuntime(
            make_flow(nodes),
            backend=LoopbackBackend(),
            registry=registry,
            timer_factory=timers,
            **kwargs,
        )
        runtimes.append(runtime)
        if load:
            runtime.load()
        return runtime

    yield _make

    for runtime in runtimes:
        runtime.close(removed=False)


SERVER = {"id": "srv", "type": "hearth-server"}
LAMP = {
    "id": "lamp",
    "type": "hearth-device",
    "name": "Floor lamp",
    "server": "srv",
    "device_category": "standalone",
    "device_type": "DimmableLightDevice",
    "discriminator": 1234,
}
AGGREGATOR = {"id": "agg", "type": "hearth-aggregator", "server": "srv", "discriminator": 2345}
PLUG = {
    "id": "plug",
    "type": "hearth-device",
    "aggregator": "agg",
    "device_category": "aggregated",
    "device_type": "OnOffPluginUnitDevice",
}
CONTROLLER = {
    "id": "remote",
    "type": "hearth-controller",
    "server": "srv",
    "pairing_code": "1234-20202021",
}
