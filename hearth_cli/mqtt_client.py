"""
MQTT client wrapper for sending commands to a Hearth bridge.

Handles MQTT connection, publishing, optional reply wait and disconnection.
"""

import json
import threading
from typing import Any, Dict, Optional

import paho.mqtt.client as mqtt


class MQTTCommandClient:
    """
    MQTT client for sending commands to the bridge control plane.

    Publishes commands with QoS 1. When a reply topic is given, waits for
    the status message echoing the command's request_id.
    """

    def __init__(
        self,
        broker: str = "localhost",
        port: int = 1883,
        username: Optional[str] = None,
        password: Optional[str] = None
    ):
        self.broker = broker
        self.port = port

        self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2)
        if username and password:
            self.client.username_pw_set(username, password)

        self._reply: Optional[Dict[str, Any]] = None
        self._reply_received = threading.Event()
        self._request_id: Optional[str] = None

    def _on_message(self, client, userdata, msg) -> None:
        try:
            data = json.loads(msg.payload.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return
        if isinstance(data, dict) and data.get('request_id') == self._request_id:
            self._reply = data
            self._reply_received.set()

    def send_command(
        self,
        topic: str,
        command: Dict[str, Any],
        qos: int = 1,
        reply_topic: Optional[str] = None,
        timeout: float = 5.0,
    ) -> Optional[Dict[str, Any]]:
        """
        Send command to MQTT topic.

        Args:
            topic: Command topic (e.g. "hearth/control/living_room/commands")
            command: Command dictionary (JSON serialized)
            qos: Quality of Service (default: 1 for control commands)
            reply_topic: Status topic to wait on for the reply (optional)
            timeout: Seconds to wait for the reply

        Returns:
            Reply message, or None when not waiting or no reply arrived

        Raises:
            ConnectionError: If unable to connect to MQTT broker
        """
        self._request_id = command.get('request_id')
        self._reply = None
        self._reply_received.clear()

        try:
            self.client.connect(self.broker, self.port, keepalive=60)
        except (ConnectionRefusedError, OSError) as e:
            raise ConnectionError(
                f"Unable to connect to MQTT broker at {self.broker}:{self.port}. "
                "Is mosquitto running?"
            ) from e

        self.client.loop_start()
        try:
            if reply_topic:
                self.client.on_message = self._on_message
                self.client.subscribe(reply_topic, qos=1)

            result = self.client.publish(topic, json.dumps(command), qos=qos)
            result.wait_for_publish(timeout=timeout)
            print(f"✅ Command sent: {command.get('command', 'unknown')}")

            if reply_topic and self._reply_received.wait(timeout=timeout):
                return self._reply
            return None
        finally:
            self.client.disconnect()
            self.client.loop_stop()
