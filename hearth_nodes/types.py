"""Built-in node types."""

from hearth_core.config import (
    AGGREGATOR_NODE,
    CONTROLLER_NODE,
    CONTROLLER_STATUS_NODE,
    DEVICE_CONTROL_NODE,
    DEVICE_NODE,
    DEVICE_STATUS_NODE,
    SERVER_NODE,
)

from .aggregator import AggregatorNode
from .controller import ControllerNode
from .device import DeviceNode
from .runtime import NodeTypeRegistry
from .server import ServerNode
from .status import ControllerStatusNode, DeviceControlNode, DeviceStatusNode


def default_registry() -> NodeTypeRegistry:
    registry = NodeTypeRegistry()
    registry.register(SERVER_NODE, ServerNode, "Shared protocol server")
    registry.register(AGGREGATOR_NODE, AggregatorNode, "Bridge exposing aggregated accessories")
    registry.register(DEVICE_NODE, DeviceNode, "Standalone or aggregated accessory")
    registry.register(CONTROLLER_NODE, ControllerNode, "Pairs with a remote accessory")
    registry.register(DEVICE_CONTROL_NODE, DeviceControlNode, "Feeds status changes into a device")
    registry.register(DEVICE_STATUS_NODE, DeviceStatusNode, "Emits a device's status changes")
    registry.register(CONTROLLER_STATUS_NODE, ControllerStatusNode, "Emits a controller's status changes")
    return registry
