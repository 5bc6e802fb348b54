"""
Helper nodes wired to a device or controller node.

- DeviceControlNode: feeds incoming messages into a device's change_status
- DeviceStatusNode: emits a device's status changes downstream
- ControllerStatusNode: same for a controller's remote accessory
"""

from typing import Any, Dict, Optional

from hearth_core.config import ConfigurationError
from hearth_mqtt.schemas import StatusChangeMessage

from .controller import ControllerNode
from .device import DeviceNode
from .runtime import BaseNode


class DeviceControlNode(BaseNode):
    """Input node: {"payload": {"on": true, "level": 120}} -> target device."""

    def __init__(self, runtime, config):
        super().__init__(runtime, config)
        target = runtime.get_node(config.device)
        if not isinstance(target, DeviceNode):
            raise ConfigurationError(f"Device '{config.device}' not found")
        self.target = target

    def receive(self, message: Dict[str, Any]) -> None:
        payload = message.get("payload") if isinstance(message, dict) else None
        if payload is None:
            self.warn("Message without payload ignored")
            return
        self.target.change_status(payload)


class StatusFollowerNode(BaseNode):
    """Re-emits the target's status_change events as output messages."""

    target_class = BaseNode
    target_label = "Node"

    def __init__(self, runtime, config):
        super().__init__(runtime, config)
        target = runtime.get_node(config.device)
        if not isinstance(target, self.target_class):
            raise ConfigurationError(f"{self.target_label} '{config.device}' not found")
        self.target = target
        self.last_message: Optional[StatusChangeMessage] = None
        self.target.on("status_change", self._on_status_change)

    def _on_status_change(self, message: StatusChangeMessage) -> None:
        self.last_message = message
        if message.status.on is None:
            self.status("grey", "ring", "unknown")
        elif message.status.on:
            self.status("green", "dot", "on")
        else:
            self.status("red", "dot", "off")
        self.send({'payload': message.to_dict(), 'topic': self.target.id})

    def on_close(self, removed: bool) -> None:
        self.target.remove_listener("status_change", self._on_status_change)


class DeviceStatusNode(StatusFollowerNode):
    target_class = DeviceNode
    target_label = "Device"


class ControllerStatusNode(StatusFollowerNode):
    target_class = ControllerNode
    target_label = "Controller"
