"""
MQTTControlPlane - MQTT Control Plane for the Hearth bridge

Bounded Context: Command reception + replies for one bridge
Responsibilities:
  - Subscribe to `hearth/control/<bridge>/commands` on every (re)connect
  - Dispatch commands through the CommandRegistry
  - Reply on `hearth/control/<bridge>/status`, echoing `request_id`
  - Keep bridge presence on the same retained topic: "connected" on
    connect, "disconnected" on clean shutdown, "offline" via last will

QoS Policy:
  - Commands: QoS 1 (at-least-once delivery)
  - Status / replies: QoS 1 + retained

Threading:
  - Broker session is an MQTTConnection (paho network thread)
  - Command handlers run in that thread (keep them fast!)
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from hearth_mqtt.connection import MQTTConnection
from hearth_mqtt.logging import create_logger

from .registry import CommandNotAvailableError, CommandRegistry, CommandValidationError

logger = logging.getLogger(__name__)


class MQTTControlPlane:
    """
    MQTT Control Plane for receiving commands and publishing replies.

    Example:
        control_plane = MQTTControlPlane(
            broker_host="localhost",
            broker_port=1883,
            command_topic="hearth/control/living_room/commands",
            status_topic="hearth/control/living_room/status",
            client_id="bridge_living_room",
        )
        register_bridge_commands(control_plane.command_registry, runtime)
        control_plane.connect(timeout=5.0)
    """

    def __init__(
        self,
        broker_host: str,
        broker_port: int,
        command_topic: str,
        status_topic: str,
        client_id: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
    ):
        self.command_topic = command_topic
        self.status_topic = status_topic
        self.client_id = client_id
        self.command_registry = CommandRegistry()

        self.connection = MQTTConnection(
            broker_host=broker_host,
            broker_port=broker_port,
            client_id=client_id,
            logger=create_logger("control_plane"),
            username=username,
            password=password,
            will=(status_topic, self._status_message("offline")),
        )
        self.connection.client.on_message = self._on_message
        self.connection.on_connected(self._on_connected)

    @property
    def client(self):
        return self.connection.client

    def connect(self, timeout: float = 5.0) -> bool:
        logger.info(f"🔌 Control plane connecting to {self.connection.broker}")
        return self.connection.connect(timeout=timeout)

    def disconnect(self) -> None:
        if self.connection.is_connected():
            self.publish_status("disconnected")
        self.connection.disconnect()

    def _status_message(self, status: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        message = {
            "status": status,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "client_id": self.client_id,
        }
        if data:
            message.update(data)
        return message

    def publish_status(self, status: str, data: Optional[Dict[str, Any]] = None) -> None:
        """Publish presence or a command reply (`data` merged into the message)."""
        if not self.connection.publish_json(
            self.status_topic, self._status_message(status, data), qos=1, retain=True
        ):
            logger.warning(f"⚠️ Status '{status}' not published (offline)")

    def _on_connected(self, connection: MQTTConnection) -> None:
        connection.subscribe(self.command_topic, qos=1)
        logger.info(f"📥 Subscribed to: {self.command_topic} (QoS 1)")
        self.publish_status("connected")

    def _on_message(self, client, userdata, msg):
        """Command received (network thread)."""
        try:
            command_data = json.loads(msg.payload.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.error(f"❌ Undecodable command {msg.payload!r}: {e}")
            return

        if not isinstance(command_data, dict):
            logger.warning("⚠️ Command payload must be a JSON object")
            return

        command = str(command_data.get('command', '')).lower()
        if not command:
            logger.warning("⚠️ Empty command received")
            return

        reply_meta = {'command': command}
        if 'request_id' in command_data:
            reply_meta['request_id'] = command_data['request_id']

        logger.info(f"🎯 Executing command: {command}")
        try:
            result = self.command_registry.execute(command, command_data)
        except CommandNotAvailableError as e:
            available = ', '.join(sorted(self.command_registry.available_commands))
            logger.warning(f"⚠️ {e} (available: {available})")
            self.publish_status("error", {**reply_meta, 'error': str(e)})
            return
        except (CommandValidationError, LookupError, ValueError) as e:
            logger.warning(f"⚠️ Command '{command}' rejected: {e}")
            self.publish_status("error", {**reply_meta, 'error': str(e)})
            return
        except Exception as e:
            logger.error(f"❌ Command '{command}' failed: {e}", exc_info=True)
            self.publish_status("error", {**reply_meta, 'error': f"internal error: {e}"})
            return

        if result is not None:
            self.publish_status("ok", {**reply_meta, 'result': result})
