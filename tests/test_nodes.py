import json

from hearth_core import CoordinatorState, RegistrationOutcome
from hearth_core.config import DEVICE_NODE, SERVER_NODE
import pytest

from hearth_nodes import DeviceNode, NodeTypeRegistry, PairingUnavailableError, ServerNode

from conftest import AGGREGATOR, CONTROLLER, LAMP, PLUG, SERVER, wait_until


def _full_flow():
    return [
        SERVER,
        AGGREGATOR,
        LAMP,
        PLUG,
        CONTROLLER,
        {"id": "lamp_control", "type": "hearth-device-control", "device": "lamp"},
        {"id": "lamp_status", "type": "hearth-device-status", "device": "lamp"},
        {"id": "remote_status", "type": "hearth-controller-status", "device": "remote"},
    ]


def _servers_and_devices_only():
    registry = NodeTypeRegistry()
    registry.register(SERVER_NODE, ServerNode, "server")
    registry.register(DEVICE_NODE, DeviceNode, "device")
    return registry


def test_full_flow_starts_without_timeout(make_runtime, timers):
    runtime = make_runtime(_full_flow())
    srv = runtime.get_node("srv")

    server = srv.server_ready.result(timeout=5)

    assert server.running
    assert srv.coordinator.state is CoordinatorState.STARTED
    assert not srv.coordinator.degraded
    assert all(timer.cancelled for timer in timers.timers)
    assert runtime.failed_nodes == {}

    lamp = runtime.get_node("lamp")
    assert wait_until(lambda: lamp.pairing_info is not None)
    assert lamp.pairing_info.manual_pairing_code == "1234-20202021"
    # The controller paired with the lamp while the server started
    assert lamp.pairing_info.commissioned

    agg = runtime.get_node("agg")
    assert wait_until(lambda: agg.pairing_info is not None)
    assert agg.endpoint.find_bridged("plug") is not None


def test_storage_layout(make_runtime, tmp_path):
    runtime = make_runtime(_full_flow())
    runtime.get_node("srv").server_ready.result(timeout=5)

    storage = tmp_path / "storage"
    endpoint_state = json.loads((storage / "devices" / "lamp" / "endpoint.json").read_text())
    assert endpoint_state["fabrics"] == ["remote"]
    assert (storage / "aggregators" / "agg" / "endpoint.json").exists()
    bridged = json.loads((storage / "aggregators" / "agg" / "bridged" / "plug" / "device.json").read_text())
    assert bridged["serialNumber"] == "hearth-plug"


def test_status_flows_from_control_to_status_nodes(make_runtime):
    runtime = make_runtime(_full_flow())
    runtime.get_node("srv").server_ready.result(timeout=5)

    device_outputs, remote_outputs = [], []
    runtime.get_node("lamp_status").on("output", device_outputs.append)
    runtime.get_node("remote_status").on("output", remote_outputs.append)

    runtime.get_node("lamp_control").receive({"payload": {"on": True, "level": 120}})

    lamp = runtime.get_node("lamp")
    assert lamp.accessory.get_status().to_dict() == {"on": True, "level": 120}
    assert device_outputs[-1]["payload"]["status"] == {"on": True, "level": 120}
    assert device_outputs[-1]["payload"]["id"] == "lamp"
    assert runtime.get_node("lamp_status").current_status.text == "on"
    # The paired controller follows the same accessory
    assert remote_outputs[-1]["payload"]["status"] == {"on": True, "level": 120}
    assert remote_outputs[-1]["payload"]["name"] == "Floor lamp"


def test_invalid_status_change_warns(make_runtime):
    runtime = make_runtime([SERVER, AGGREGATOR, PLUG])
    plug = runtime.get_node("plug")

    plug.change_status({"on": "yes", "level": 10})

    assert plug.accessory.get_status().on is False
    assert len(plug.warnings) == 2


def test_missing_parent_is_a_configuration_error(make_runtime):
    orphan = dict(LAMP, id="orphan", server="nowhere")
    stray = dict(PLUG, id="stray", aggregator="nowhere")
    runtime = make_runtime([SERVER, orphan, stray])

    assert runtime.get_node("orphan") is None
    assert "nowhere" in runtime.failed_nodes["orphan"]
    assert "stray" in runtime.failed_nodes
    # Neither is a participant of srv, which starts right away
    assert runtime.get_node("srv").server_ready.result(timeout=5).running


def test_degraded_start_warns_missing_participant(make_runtime, timers):
    runtime = make_runtime([SERVER, LAMP, CONTROLLER], registry=_servers_and_devices_only())
    srv = runtime.get_node("srv")

    assert "remote" in runtime.failed_nodes
    assert srv.coordinator.pending == ["remote"]

    timers.last.fire()
    srv.server_ready.result(timeout=5)

    assert srv.coordinator.degraded
    lamp = runtime.get_node("lamp")
    assert wait_until(lambda: lamp.pairing_info is not None)
    assert not lamp.pairing_info.commissioned


def test_unreachable_participant_is_warned(make_runtime, timers, monkeypatch):
    original_start = DeviceNode.start

    def start_unless_late(node):
        if node.id != "late":
            original_start(node)

    monkeypatch.setattr(DeviceNode, "start", start_unless_late)
    late_lamp = dict(LAMP, id="late", discriminator=99)
    runtime = make_runtime([SERVER, LAMP, late_lamp])
    srv = runtime.get_node("srv")
    late = runtime.get_node("late")

    timers.last.fire()
    srv.server_ready.result(timeout=5)

    assert srv.coordinator.degraded
    assert len(late.warnings) == 1
    assert "unreachable" in late.warnings[0]
    assert runtime.get_node("lamp").warnings == []

    # Showing up after the start is reported, and the endpoint stays offline
    original_start(late)
    assert late.errors
    assert late.endpoint not in srv.server.endpoints


def test_late_registration_reported_on_error_channel(make_runtime, timers):
    runtime = make_runtime([SERVER, LAMP, CONTROLLER], registry=_servers_and_devices_only())
    srv = runtime.get_node("srv")
    timers.last.fire()
    srv.server_ready.result(timeout=5)

    assert srv.register_participant("remote", object()) is RegistrationOutcome.LATE
    assert srv.server.controllers == []

    lamp = runtime.get_node("lamp")
    assert lamp.register_with(srv, lamp.endpoint) is False
    assert lamp.warnings == ["Already registered with srv"]


def test_stop_keeps_and_destroy_erases_storage(make_runtime, tmp_path):
    runtime = make_runtime(_full_flow())
    runtime.get_node("srv").server_ready.result(timeout=5)
    storage = tmp_path / "storage"

    assert runtime.remove_node("agg")
    assert not (storage / "aggregators" / "agg").exists()
    assert (storage / "devices" / "lamp" / "endpoint.json").exists()

    runtime.close(removed=False)
    assert (storage / "devices" / "lamp" / "endpoint.json").exists()
    assert (storage / "servers" / "srv").exists()


def test_restart_keeps_pairing_state(make_runtime):
    first = make_runtime([SERVER, LAMP, CONTROLLER])
    first.get_node("srv").server_ready.result(timeout=5)
    first.close(removed=False)

    second = make_runtime([SERVER, LAMP])
    second.get_node("srv").server_ready.result(timeout=5)
    lamp = second.get_node("lamp")
    assert wait_until(lambda: lamp.pairing_info is not None)
    assert lamp.pairing_info.commissioned


def test_decommission_resets_commissioned(make_runtime):
    runtime = make_runtime([SERVER, LAMP, CONTROLLER])
    runtime.get_node("srv").server_ready.result(timeout=5)
    lamp = runtime.get_node("lamp")
    assert wait_until(lambda: lamp.pairing_info is not None and lamp.pairing_info.commissioned)

    info = lamp.decommission()

    assert info.commissioned is False
    assert lamp.pairing_info.commissioned is False


def test_controller_without_matching_endpoint_reports_error(make_runtime):
    stranger = dict(CONTROLLER, pairing_code="0000-00000000")
    runtime = make_runtime([SERVER, LAMP, stranger])
    srv = runtime.get_node("srv")

    srv.server_ready.result(timeout=5)

    remote = runtime.get_node("remote")
    assert wait_until(lambda: remote.errors)
    assert "Failed to connect" in remote.errors[0]
    assert remote.current_status.fill == "red"
    assert srv.coordinator.state is CoordinatorState.STARTED


def test_missing_bridged_device_only_costs_that_device(make_runtime, timers, monkeypatch):
    original_start = DeviceNode.start

    def start_unless_ghost(node):
        if node.id != "ghost":
            original_start(node)

    monkeypatch.setattr(DeviceNode, "start", start_unless_ghost)
    ghost = dict(PLUG, id="ghost", name="Ghost plug")
    runtime = make_runtime([SERVER, AGGREGATOR, PLUG, ghost])
    srv, agg = runtime.get_node("srv"), runtime.get_node("agg")
    server_timer, aggregator_timer = timers.timers

    # The aggregator is in before its own wait is over
    assert server_timer.cancelled
    assert agg.endpoint in srv.server.endpoints
    assert not srv.server_ready.done()

    aggregator_timer.fire()
    srv.server_ready.result(timeout=5)

    assert not srv.coordinator.degraded
    assert agg.coordinator.degraded
    assert wait_until(lambda: agg.pairing_info is not None)
    assert agg.endpoint.find_bridged("plug") is not None
    assert agg.endpoint.find_bridged("ghost") is None
    assert len(runtime.get_node("ghost").warnings) == 1
    assert runtime.get_node("plug").warnings == []
    assert agg.warnings == [] and agg.errors == []


def test_destroyed_device_goes_offline_and_stays_erased(make_runtime, tmp_path):
    runtime = make_runtime([SERVER, LAMP])
    srv = runtime.get_node("srv")
    srv.server_ready.result(timeout=5)
    lamp = runtime.get_node("lamp")
    assert wait_until(lambda: lamp.pairing_info is not None)
    code = lamp.pairing_info.manual_pairing_code
    assert runtime.backend.lookup(code) is lamp.endpoint

    runtime.remove_node("lamp")

    namespace = tmp_path / "storage" / "devices" / "lamp"
    assert not namespace.exists()
    assert not lamp.endpoint.active
    assert runtime.backend.lookup(code) is None
    assert lamp.endpoint not in srv.server.endpoints

    with pytest.raises(PairingUnavailableError):
        lamp.endpoint.commission("late-fabric")
    with pytest.raises(PairingUnavailableError):
        lamp.endpoint.decommission()
    assert not namespace.exists()
