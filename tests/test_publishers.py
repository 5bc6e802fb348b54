import json
from types import SimpleNamespace

import paho.mqtt.client as mqtt
import pytest

from hearth_mqtt import StatusPublisher, create_logger
from hearth_mqtt.schemas import DeviceStatus, StatusChangeMessage

from conftest import AGGREGATOR, PLUG, SERVER

CONNACK_OK = SimpleNamespace(is_failure=False)


@pytest.fixture
def publisher(monkeypatch):
    publisher = StatusPublisher(
        broker_host="localhost",
        topic="hearth/data/test/devices/",
        logger=create_logger("status_test"),
    )
    sent = []

    def publish(topic, payload, qos=0, retain=False):
        sent.append((topic, payload, retain))
        return SimpleNamespace(rc=mqtt.MQTT_ERR_SUCCESS)

    monkeypatch.setattr(publisher.connection.client, "publish", publish)
    publisher.sent = sent
    return publisher


def _connack(publisher):
    conn = publisher.connection
    conn._on_connect(conn.client, None, None, CONNACK_OK, None)


def _message(on):
    return StatusChangeMessage(type="OnOffLightDevice", name="Lamp", id="lamp", status=DeviceStatus(on=on))


def test_topic_per_node(publisher):
    assert publisher.topic_for("lamp") == "hearth/data/test/devices/lamp"


def test_offline_changes_are_replayed_on_connect(publisher):
    assert publisher.publish_status("lamp", _message(True)) is False
    assert publisher.publish_status("lamp", _message(False)) is False
    assert publisher.sent == []

    _connack(publisher)

    assert len(publisher.sent) == 1
    topic, payload, retain = publisher.sent[0]
    assert topic == "hearth/data/test/devices/lamp"
    assert json.loads(payload)["status"] == {"on": False}
    assert retain is True
    assert publisher.get_stats()["tracked_nodes"] == 1


def test_forget_clears_retained_message(publisher):
    _connack(publisher)
    publisher.publish_status("lamp", _message(True))

    publisher.forget("lamp")
    publisher.forget("lamp")

    assert publisher.sent[-1] == ("hearth/data/test/devices/lamp", b"", True)
    assert len(publisher.sent) == 2
    assert publisher.last_status("lamp") is None


class RecordingPublisher:
    def __init__(self):
        self.published = []
        self.forgotten = []

    def publish_status(self, node_id, msg):
        self.published.append((node_id, msg))

    def forget(self, node_id):
        self.forgotten.append(node_id)


def test_runtime_forwards_status_changes(make_runtime):
    recorder = RecordingPublisher()
    runtime = make_runtime([SERVER, AGGREGATOR, PLUG], status_publisher=recorder)

    runtime.get_node("plug").change_status({"on": True})
    assert recorder.published[-1][0] == "plug"
    assert recorder.published[-1][1].status.on is True

    runtime.remove_node("plug")
    assert recorder.forgotten == ["plug"]
