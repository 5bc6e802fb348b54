"""
hearth_nodes - Host runtime and node types of the Hearth bridge.

Architecture:
  - FlowRuntime: constructs, looks up and closes the declared nodes
  - BaseNode: log/warn/error channels, status indicator, events
  - ServerNode / AggregatorNode: coordinator owners
  - DeviceNode / ControllerNode: participants
  - DeviceControlNode / DeviceStatusNode / ControllerStatusNode: helpers
  - backend: protocol stack boundary + in-process LoopbackBackend
"""

from .backend import (
    LoopbackBackend,
    PairingUnavailableError,
    ProtocolBackend,
    ResourceAlreadyStartedError,
)
from .runtime import BaseNode, FlowRuntime, NodeStatus, NodeTypeRegistry, UnknownNodeTypeError
from .pairing import CommissionableNode
from .server import ServerNode
from .aggregator import AggregatorNode
from .device import DeviceNode
from .controller import ControllerNode
from .status import ControllerStatusNode, DeviceControlNode, DeviceStatusNode
from .types import default_registry

__all__ = [
    "LoopbackBackend",
    "PairingUnavailableError",
    "ProtocolBackend",
    "ResourceAlreadyStartedError",
    "BaseNode",
    "FlowRuntime",
    "NodeStatus",
    "NodeTypeRegistry",
    "UnknownNodeTypeError",
    "CommissionableNode",
    "ServerNode",
    "AggregatorNode",
    "DeviceNode",
    "ControllerNode",
    "ControllerStatusNode",
    "DeviceControlNode",
    "DeviceStatusNode",
    "default_registry",
]
