from hearth_core import NodeConfig, aggregator_participants, resolve_participants, server_participants


def _configs():
    return [
        NodeConfig.from_dict(entry) for entry in [
            {"id": "srv", "type": "hearth-server"},
            {"id": "other", "type": "hearth-server"},
            {"id": "lamp", "type": "hearth-device", "server": "srv",
             "device_category": "standalone", "device_type": "OnOffLightDevice"},
            {"id": "agg", "type": "hearth-aggregator", "server": "srv"},
            {"id": "plug", "type": "hearth-device", "aggregator": "agg", "server": "srv",
             "device_category": "aggregated", "device_type": "OnOffPluginUnitDevice"},
            {"id": "remote", "type": "hearth-controller", "server": "srv", "pairing_code": "0001-2"},
            {"id": "elsewhere", "type": "hearth-device", "server": "other",
             "device_category": "standalone", "device_type": "OnOffLightDevice"},
            {"id": "off", "type": "hearth-device", "server": "srv", "disabled": True,
             "device_category": "standalone", "device_type": "OnOffLightDevice"},
            {"id": "lamp_status", "type": "hearth-device-status", "device": "lamp", "server": "srv"},
        ]
    ]


def test_server_participants():
    assert resolve_participants(_configs(), server_participants("srv")) == ["lamp", "agg", "remote"]


def test_aggregated_devices_belong_to_their_aggregator():
    assert resolve_participants(_configs(), aggregator_participants("agg")) == ["plug"]


def test_no_participants():
    assert resolve_participants(_configs(), aggregator_participants("missing")) == []
    assert resolve_participants([], server_participants("srv")) == []
