"""Controller node - pairs with a remote accessory through the shared server."""

from hearth_core.config import ConfigurationError
from hearth_mqtt.schemas import DeviceStatus, StatusChangeMessage

from .backend import PairingController
from .runtime import BaseNode
from .server import ServerNode

REMOTE_DEVICE_TYPE = "OnOffLightDevice"


class ControllerNode(BaseNode):
    """
    Registers a PairingController with its server.

    The server connects every attached controller right after it starts;
    connection failures land on this node's error channel. Remote status
    changes are re-emitted as `status_change` events.
    """

    def __init__(self, runtime, config):
        super().__init__(runtime, config)

        server_node = runtime.get_node(config.server)
        if not isinstance(server_node, ServerNode):
            raise ConfigurationError("Associated server not found")
        self.server_node = server_node

        self.controller: PairingController = runtime.backend.create_controller(config)
        self.controller.add_status_listener(self._on_remote_status)

    def start(self) -> None:
        self.status("yellow", "ring", "waiting for server")
        self.register_with(self.server_node, self.controller)

    def _on_remote_status(self, name: str, endpoint_id, status: DeviceStatus) -> None:
        self.status("green", "dot", "connected")
        message = StatusChangeMessage(
            type=REMOTE_DEVICE_TYPE,
            name=name,
            id=endpoint_id,
            status=status,
        )
        self.emit("status_change", message)
        self.runtime.publish_status(self.id, message)
