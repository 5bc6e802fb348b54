"""
Device node - one accessory (light or plug-in unit), standalone or aggregated.

Standalone: the node owns a CommissioningEndpoint and registers it with
its server; pairing data becomes available when the server starts.

Aggregated: the node only owns an Accessory and registers it with its
aggregator, which bridges it. Its storage lives under the aggregator's
namespace and is torn down together with the aggregator.

Status changes of the accessory are emitted as `status_change` events
(StatusChangeMessage) and published on the device status topic when the
runtime has a status publisher.
"""

from typing import Any, Dict, Optional

from hearth_core.config import STANDALONE, ConfigurationError
from hearth_core.lifecycle import LifecycleController
from hearth_mqtt.schemas import LEVEL_MAX, DeviceStatus, StatusChangeMessage

from .aggregator import AggregatorNode
from .backend import Accessory
from .pairing import CommissionableNode
from .server import HostedEndpoint, ServerNode


class DeviceNode(CommissionableNode):
    """Accessory node; see module docstring for the two categories."""

    STORAGE_KIND = "devices"

    def __init__(self, runtime, config):
        super().__init__(runtime, config)
        self.standalone = config.device_category == STANDALONE

        if self.standalone:
            parent = runtime.get_node(config.server)
            if not isinstance(parent, ServerNode):
                raise ConfigurationError(f"Server '{config.server}' not found for device '{self.id}'")
        else:
            parent = runtime.get_node(config.aggregator)
            if not isinstance(parent, AggregatorNode):
                raise ConfigurationError(
                    f"Aggregator '{config.aggregator}' not found for device '{self.id}'"
                )
        self.parent = parent

        self.accessory: Accessory = runtime.backend.create_accessory(config)
        self.accessory.add_status_listener(self._on_accessory_status)

        if self.standalone:
            self.storage = self.namespace(self.STORAGE_KIND)
            self.endpoint = runtime.backend.create_endpoint(config, self.accessory, self.storage)
            self.lifecycle = LifecycleController(f"device:{self.id}", self.storage)
            self.lifecycle.bind(resource=HostedEndpoint(parent, self.endpoint))
        else:
            self.storage = parent.storage.child("bridged", self.id)
            self.lifecycle = LifecycleController(f"device:{self.id}", self.storage)
            parent.lifecycle.add_dependent(self.lifecycle)

    def start(self) -> None:
        if self.standalone:
            self.status("yellow", "ring", "waiting for server")
            if self.register_with(self.parent, self.endpoint):
                self.follow_server(self.parent)
        elif self.register_with(self.parent, self.accessory):
            self.status("green", "dot", f"bridged by {self.parent.name}")

    # ─────────────────────────────────────────────────────────────────────
    # Status
    # ─────────────────────────────────────────────────────────────────────

    def change_status(self, payload: Dict[str, Any]) -> Optional[DeviceStatus]:
        """
        Apply an incoming status change ({"on": bool, "level": int}).

        Invalid fields are reported on the warn channel and skipped.

        Returns:
            The accessory status after the change
        """
        if not isinstance(payload, dict):
            self.warn(f"Status change must be an object, got {type(payload).__name__}")
            return None

        if "on" in payload:
            if isinstance(payload["on"], bool):
                self.accessory.set_on_off(payload["on"])
            else:
                self.warn(f"Invalid 'on' value: {payload['on']!r}")

        if "level" in payload:
            level = payload["level"]
            if not self.accessory.supports_level:
                self.warn(f"{self.config.device_type} does not support level")
            elif isinstance(level, bool) or not isinstance(level, int) or not 0 <= level <= LEVEL_MAX:
                self.warn(f"Invalid 'level' value: {level!r} (0-{LEVEL_MAX})")
            else:
                self.accessory.set_level(level)

        return self.accessory.get_status()

    def _on_accessory_status(self, status: DeviceStatus) -> None:
        message = StatusChangeMessage(
            type=self.config.device_type,
            name=self.name,
            id=self.id,
            status=status,
        )
        self.emit("status_change", message)
        self.runtime.publish_status(self.id, message)

    def on_close(self, removed: bool) -> None:
        self.lifecycle.close(removed)
        self.status("grey", "ring", "closed")
