import pytest

from hearth_core.config import DEVICE_NODE, SERVER_NODE
from hearth_http import create_app
from hearth_nodes import DeviceNode, NodeTypeRegistry, ServerNode

from conftest import AGGREGATOR, CONTROLLER, LAMP, PLUG, SERVER, wait_until


@pytest.fixture
def started(make_runtime):
    runtime = make_runtime([SERVER, AGGREGATOR, LAMP, PLUG])
    runtime.get_node("srv").server_ready.result(timeout=5)
    for node_id in ("lamp", "agg"):
        node = runtime.get_node(node_id)
        assert wait_until(lambda: node.pairing_info is not None)
    return runtime


@pytest.fixture
def client(started):
    return create_app(started).test_client()


def test_device_pairing_code(client):
    r = client.get("/hearth/device/pairingcode?device-id=lamp")

    assert r.status_code == 200
    j = r.get_json()
    assert j["manualPairingCode"] == "1234-20202021"
    assert j["commissioned"] is False
    assert j["qrcode"].startswith("MT:")


def test_aggregator_pairing_code(client):
    r = client.get("/hearth/aggregator/pairingcode?device-id=agg")

    assert r.status_code == 200
    assert r.get_json()["manualPairingCode"] == "2345-20202021"


@pytest.mark.parametrize("url", [
    "/hearth/device/pairingcode?device-id=ghost",
    "/hearth/device/pairingcode",
    "/hearth/device/pairingcode?device-id=plug",
    "/hearth/device/pairingcode?device-id=agg",
    "/hearth/toaster/pairingcode?device-id=lamp",
])
def test_pairing_code_not_found(client, url):
    r = client.get(url)

    assert r.status_code == 404
    assert r.get_json()["ok"] is False


def test_decommission(started, client):
    lamp = started.get_node("lamp")
    lamp.endpoint.commission("phone")
    assert lamp.refresh_pairing_info().commissioned

    r = client.post("/hearth/device/decommission?device-id=lamp")

    assert r.status_code == 200
    assert r.get_json()["commissioned"] is False
    r = client.get("/hearth/device/pairingcode?device-id=lamp")
    assert r.get_json()["commissioned"] is False


def test_decommission_unknown(client):
    assert client.post("/hearth/aggregator/decommission?device-id=ghost").status_code == 404


def test_not_started_yet(make_runtime):
    registry = NodeTypeRegistry()
    registry.register(SERVER_NODE, ServerNode, "server")
    registry.register(DEVICE_NODE, DeviceNode, "device")
    # srv keeps waiting for the controller nobody can build
    runtime = make_runtime([SERVER, LAMP, CONTROLLER], registry=registry)
    client = create_app(runtime).test_client()

    r = client.get("/hearth/device/pairingcode?device-id=lamp")
    assert r.status_code == 200
    assert r.get_json() == {"commissioned": False, "qrcode": None, "manualPairingCode": None}

    assert client.post("/hearth/device/decommission?device-id=lamp").status_code == 409


def test_list_nodes(client):
    j = client.get("/hearth/nodes").get_json()

    assert j["ok"] is True
    assert [n["id"] for n in j["nodes"]] == ["srv", "agg", "lamp", "plug"]
