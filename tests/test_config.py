from pathlib import Path

import pytest

from hearth_core import ConfigurationError, FlowConfig, NodeConfig
from hearth_core.config import DEFAULT_DISCRIMINATOR, DEFAULT_STARTUP_TIMEOUT

EXAMPLE_FLOW = Path(__file__).resolve().parent.parent / "config" / "flow.example.yaml"


def test_example_flow_loads():
    flow = FlowConfig.from_yaml(EXAMPLE_FLOW)

    assert flow.bridge_id == "living_room"
    assert flow.startup_timeout == 10.0
    assert flow.get_node_config("lamp_1").device_type == "DimmableLightDevice"
    assert flow.mqtt_config.command_topic.format(bridge_id="x") == "hearth/control/x/commands"
    assert flow.http_config.port == 1881


def test_node_defaults_and_unknown_keys():
    node = NodeConfig.from_dict({
        "id": "srv",
        "type": "hearth-server",
        "x": 120,
        "wires": [],
    })

    assert node.display_name == "srv"
    assert node.discriminator == DEFAULT_DISCRIMINATOR
    assert node.port == 0


def test_hex_product_id_string():
    node = NodeConfig.from_dict({"id": "agg", "type": "hearth-aggregator", "product_id": "0x8001"})
    assert node.product_id == 0x8001


@pytest.mark.parametrize("entry", [
    {"id": "", "type": "hearth-server"},
    {"id": "x", "type": "hearth-mystery"},
    {"id": "x", "type": "hearth-server", "port": 70000},
    {"id": "x", "type": "hearth-server", "discriminator": 5000},
    {"id": "x", "type": "hearth-device", "device_category": "floating", "device_type": "OnOffLightDevice"},
    {"id": "x", "type": "hearth-device", "device_category": "standalone", "device_type": "Toaster"},
    {"id": "x", "type": "hearth-controller"},
    {"id": "x", "type": "hearth-server", "port": "many"},
])
def test_invalid_nodes(entry):
    with pytest.raises(ConfigurationError):
        NodeConfig.from_dict(entry)


def test_duplicate_node_ids():
    with pytest.raises(ConfigurationError):
        FlowConfig.from_dict({
            "bridge_id": "b",
            "nodes": [{"id": "srv", "type": "hearth-server"}] * 2,
        })


def test_flow_defaults_and_timeout_validation():
    flow = FlowConfig.from_dict({"bridge_id": "b"})
    assert flow.startup_timeout == DEFAULT_STARTUP_TIMEOUT
    assert flow.mqtt_config is None

    with pytest.raises(ConfigurationError):
        FlowConfig.from_dict({"bridge_id": "b", "startup_timeout": 0})
