"""
MQTT Connection
===============

Bounded Context: Broker session shared by the bridge's MQTT components

One paho-mqtt client per component (status publisher, control plane), with:
- (re)connect hooks: subscriptions and retained state are restored on
  every CONNACK, not only the first one
- an optional last will, so subscribers of a retained topic learn that the
  bridge went away without a clean disconnect
- JSON publishing; `None` publishes an empty retained payload, which
  deletes the retained message on the broker

The network loop runs in paho's own thread (loop_start); hooks run there.
"""

import json
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

import paho.mqtt.client as mqtt

from .logging import LogEvent, StructuredLogger, create_logger

ConnectHook = Callable[["MQTTConnection"], None]


class MQTTConnection:
    """
    Broker session with reconnect hooks and JSON publishing.

    Example:
        >>> conn = MQTTConnection("localhost", 1883, client_id="hearth_status_living_room")
        >>> conn.on_connected(lambda c: c.subscribe("hearth/control/living_room/commands"))
        >>> conn.connect(timeout=5.0)
        >>> conn.publish_json("hearth/data/living_room/devices/lamp_1", {"on": True}, retain=True)
    """

    def __init__(
        self,
        broker_host: str,
        broker_port: int = 1883,
        client_id: str = "hearth",
        logger: Optional[StructuredLogger] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        will: Optional[Tuple[str, Dict[str, Any]]] = None,
    ):
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.client_id = client_id
        self.logger = logger or create_logger("mqtt")

        self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id)
        if username and password:
            self.client.username_pw_set(username, password)
        if will is not None:
            will_topic, will_payload = will
            self.client.will_set(will_topic, json.dumps(will_payload), qos=1, retain=True)

        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect

        self._hooks: List[ConnectHook] = []
        self._connected = threading.Event()
        self._looping = False
        self._sent = 0
        self._dropped = 0
        self._stats_lock = threading.Lock()

    @property
    def broker(self) -> str:
        return f"{self.broker_host}:{self.broker_port}"

    def is_connected(self) -> bool:
        return self._connected.is_set()

    def on_connected(self, hook: ConnectHook) -> None:
        """Run `hook(connection)` after every successful (re)connect."""
        self._hooks.append(hook)

    def connect(self, timeout: float = 10.0) -> bool:
        """
        Start the network loop and wait for the first CONNACK.

        Returns:
            True if connected within timeout
        """
        try:
            self.client.connect(self.broker_host, self.broker_port, keepalive=60)
        except Exception as e:
            self.logger.error(
                event=LogEvent.MQTT_CONNECTION_ERROR,
                message="Broker unreachable",
                metadata={'broker': self.broker, 'client_id': self.client_id},
                exc_info=e,
            )
            return False

        self.client.loop_start()
        self._looping = True

        if not self._connected.wait(timeout=timeout):
            self.logger.error(
                event=LogEvent.MQTT_CONNECTION_ERROR,
                message=f"No CONNACK within {timeout}s",
                metadata={'broker': self.broker, 'client_id': self.client_id},
            )
            return False
        return True

    def disconnect(self) -> None:
        """Clean disconnect (the last will is not sent). Safe to call twice."""
        if not self._looping:
            return
        self.client.disconnect()
        self.client.loop_stop()
        self._looping = False
        self._connected.clear()
        self.logger.info(
            event=LogEvent.MQTT_DISCONNECTED,
            message="Disconnected",
            metadata={'client_id': self.client_id, **self.get_stats()},
        )

    def subscribe(self, topic: str, qos: int = 1) -> None:
        self.client.subscribe(topic, qos=qos)

    def publish_json(
        self,
        topic: str,
        payload: Optional[Dict[str, Any]],
        qos: int = 0,
        retain: bool = False,
    ) -> bool:
        """
        Publish `payload` as JSON (None clears a retained topic).

        Returns:
            False when offline or the client refused the message
        """
        if not self._connected.is_set():
            with self._stats_lock:
                self._dropped += 1
            self.logger.debug(
                event=LogEvent.MQTT_PUBLISH_FAILED,
                message="Offline, message not sent",
                metadata={'topic': topic},
            )
            return False

        body = b"" if payload is None else json.dumps(payload)
        try:
            info = self.client.publish(topic, body, qos=qos, retain=retain)
        except Exception as e:
            self.logger.error(
                event=LogEvent.MQTT_PUBLISH_ERROR,
                message="Publish raised",
                metadata={'topic': topic},
                exc_info=e,
            )
            return False

        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            self.logger.warning(
                event=LogEvent.MQTT_PUBLISH_FAILED,
                message=f"Publish refused (rc={info.rc})",
                metadata={'topic': topic},
            )
            return False

        with self._stats_lock:
            self._sent += 1
        return True

    def get_stats(self) -> Dict[str, Any]:
        with self._stats_lock:
            return {
                'message_count': self._sent,
                'dropped_count': self._dropped,
                'connected': self._connected.is_set(),
                'broker': self.broker,
            }

    # ===== paho callbacks (network thread) =====

    def _on_connect(self, client, userdata, flags, reason_code, properties) -> None:
        if reason_code.is_failure:
            self._connected.clear()
            self.logger.error(
                event=LogEvent.MQTT_CONNECTION_ERROR,
                message=f"Broker refused connection (rc={reason_code})",
                metadata={'broker': self.broker, 'client_id': self.client_id},
            )
            return

        self._connected.set()
        self.logger.info(
            event=LogEvent.MQTT_CONNECTED,
            message="Connected",
            metadata={'broker': self.broker, 'client_id': self.client_id},
        )
        for hook in list(self._hooks):
            try:
                hook(self)
            except Exception as e:
                self.logger.error(
                    event=LogEvent.MQTT_CONNECTION_ERROR,
                    message="Connect hook failed",
                    metadata={'client_id': self.client_id},
                    exc_info=e,
                )

    def _on_disconnect(self, client, userdata, flags, reason_code, properties) -> None:
        self._connected.clear()
        if reason_code.is_failure:
            self.logger.warning(
                event=LogEvent.MQTT_DISCONNECTED,
                message=f"Connection lost (rc={reason_code}), paho will reconnect",
                metadata={'broker': self.broker, 'client_id': self.client_id},
            )
