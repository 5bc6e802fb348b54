import json
from types import SimpleNamespace

import pytest

from hearth_control import (
    CommandNotAvailableError,
    CommandRegistry,
    CommandValidationError,
    MQTTControlPlane,
    register_bridge_commands,
)

from conftest import AGGREGATOR, LAMP, PLUG, SERVER, wait_until


@pytest.fixture
def runtime(make_runtime):
    runtime = make_runtime([SERVER, AGGREGATOR, LAMP, PLUG])
    runtime.get_node("srv").server_ready.result(timeout=5)
    lamp = runtime.get_node("lamp")
    assert wait_until(lambda: lamp.pairing_info is not None)
    return runtime


@pytest.fixture
def plane(runtime, monkeypatch):
    plane = MQTTControlPlane(
        broker_host="localhost",
        broker_port=1883,
        command_topic="hearth/control/test/commands",
        status_topic="hearth/control/test/status",
        client_id="bridge_test",
    )
    register_bridge_commands(plane.command_registry, runtime)

    published = []
    monkeypatch.setattr(plane, "publish_status", lambda status, data=None: published.append((status, data)))
    plane.published = published
    return plane


def _deliver(plane, payload):
    raw = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
    plane._on_message(plane.client, None, SimpleNamespace(payload=raw))
    return plane.published[-1] if plane.published else None


def test_registry_rejects_double_registration():
    registry = CommandRegistry()
    registry.register("ping", lambda data: "pong", "Ping")

    with pytest.raises(ValueError):
        registry.register("ping", lambda data: None, "Again")
    assert registry.get_help() == {"ping": "Ping"}


def test_registry_validates_commands():
    registry = CommandRegistry()
    registry.register("pairing_info", lambda data: data["node_id"], "Pairing", required_fields=("node_id",))

    with pytest.raises(CommandNotAvailableError):
        registry.execute("nope")
    with pytest.raises(CommandValidationError):
        registry.execute("pairing_info", {})
    assert registry.execute("pairing_info", {"node_id": "lamp"}) == "lamp"


def test_bridge_commands_registered(plane):
    assert plane.command_registry.available_commands == {
        "list_nodes", "coordinator_state", "pairing_info", "decommission", "change_status",
    }


def test_list_nodes_reply_echoes_request_id(plane):
    status, data = _deliver(plane, {"command": "list_nodes", "request_id": "r1"})

    assert status == "ok"
    assert data["request_id"] == "r1"
    assert [n["id"] for n in data["result"]["nodes"]] == ["srv", "agg", "lamp", "plug"]


def test_coordinator_state(plane):
    status, data = _deliver(plane, {"command": "coordinator_state", "node_id": "agg"})

    assert status == "ok"
    assert data["result"]["state"] == "started"
    assert data["result"]["registrations"] == {"plug": "registered"}


def test_pairing_info(plane):
    status, data = _deliver(plane, {"command": "pairing_info", "node_id": "lamp"})

    assert data["result"]["manualPairingCode"] == "1234-20202021"


def test_change_status(plane, runtime):
    status, data = _deliver(plane, {"command": "CHANGE_STATUS", "node_id": "lamp", "status": {"on": True}})

    assert status == "ok"
    assert data["result"]["status"]["on"] is True
    assert runtime.get_node("lamp").accessory.get_status().on is True


def test_decommission(plane):
    status, data = _deliver(plane, {"command": "decommission", "node_id": "agg"})

    assert status == "ok"
    assert data["result"]["commissioned"] is False


@pytest.mark.parametrize("payload, fragment", [
    ({"command": "pairing_info", "node_id": "ghost"}, "not found"),
    ({"command": "coordinator_state", "node_id": "lamp"}, "not found"),
    ({"command": "pairing_info"}, "requires"),
    ({"command": "reboot"}, "not available"),
])
def test_errors_are_replied(plane, payload, fragment):
    status, data = _deliver(plane, payload)

    assert status == "error"
    assert fragment in data["error"]


def test_malformed_messages_are_ignored(plane):
    assert _deliver(plane, b"not json") is None
    assert _deliver(plane, {"request_id": "x"}) is None
    assert _deliver(plane, [1, 2]) is None


def test_every_connack_resubscribes_and_announces(plane, monkeypatch):
    subscribed = []
    conn = plane.connection
    monkeypatch.setattr(conn, "subscribe", lambda topic, qos=1: subscribed.append((topic, qos)))
    connack = SimpleNamespace(is_failure=False)

    conn._on_connect(conn.client, None, None, connack, None)
    conn._on_connect(conn.client, None, None, connack, None)

    assert subscribed == [("hearth/control/test/commands", 1)] * 2
    assert [status for status, _ in plane.published] == ["connected", "connected"]
    assert conn.is_connected()
