"""
Status Publisher
================

Bounded Context: Accessory status message production

Publishes StatusChangeMessage instances to `<device_status_topic>/<node_id>`,
retained, so a late subscriber sees the last known state of every
accessory. The publisher keeps that last state per node too:

- status changes made while offline are not lost; the latest one per node
  is published on (re)connect
- forget(node_id) deletes the node's retained message (node destroyed)

Example:
    >>> publisher = StatusPublisher(
    ...     broker_host="localhost",
    ...     topic="hearth/data/living_room/devices",
    ...     logger=create_logger("status"),
    ... )
    >>> publisher.connect()
    >>> publisher.publish_status("lamp_1", msg)
"""

import threading
from typing import Any, Dict, Optional

from ..connection import MQTTConnection
from ..logging import LogEvent, StructuredLogger
from ..schemas import StatusChangeMessage


class StatusPublisher:
    """Retained per-node publisher for accessory status changes."""

    def __init__(
        self,
        broker_host: str,
        topic: str,
        logger: StructuredLogger,
        broker_port: int = 1883,
        client_id: str = "hearth_status_publisher",
        username: Optional[str] = None,
        password: Optional[str] = None,
        qos: int = 0
    ):
        self.topic = topic
        self.qos = qos
        self.logger = logger
        self.connection = MQTTConnection(
            broker_host=broker_host,
            broker_port=broker_port,
            client_id=client_id,
            logger=logger,
            username=username,
            password=password,
        )
        self.connection.on_connected(self._replay)

        self._last: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def connect(self, timeout: float = 10.0) -> bool:
        return self.connection.connect(timeout=timeout)

    def disconnect(self) -> None:
        self.connection.disconnect()

    def is_connected(self) -> bool:
        return self.connection.is_connected()

    def format_message(self, status_msg: StatusChangeMessage) -> Dict[str, Any]:
        return status_msg.to_dict()

    def topic_for(self, node_id: str) -> str:
        return f"{self.topic.rstrip('/')}/{node_id}"

    def publish_status(self, node_id: str, status_msg: StatusChangeMessage) -> bool:
        """
        Record and publish one status change (retained).

        Returns:
            True if sent now; False if it waits for the next connect
        """
        message = self.format_message(status_msg)
        with self._lock:
            self._last[node_id] = message
        return self.connection.publish_json(
            self.topic_for(node_id), message, qos=self.qos, retain=True
        )

    def forget(self, node_id: str) -> None:
        """Drop the node's last status and delete its retained message."""
        with self._lock:
            known = self._last.pop(node_id, None) is not None
        if known:
            self.connection.publish_json(self.topic_for(node_id), None, qos=self.qos, retain=True)

    def last_status(self, node_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self._last.get(node_id)

    def _replay(self, connection: MQTTConnection) -> None:
        with self._lock:
            pending = dict(self._last)
        for node_id, message in pending.items():
            connection.publish_json(self.topic_for(node_id), message, qos=self.qos, retain=True)
        if pending:
            self.logger.info(
                event=LogEvent.MQTT_PUBLISH_SUCCESS,
                message=f"Republished last status of {len(pending)} node(s)",
                metadata={'topic': self.topic},
            )

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            tracked = len(self._last)
        return {**self.connection.get_stats(), 'topic': self.topic, 'tracked_nodes': tracked}
