"""
Bridge commands - control-plane handlers bound to a FlowRuntime.

Every handler receives the full command payload and returns the reply
body; the control plane publishes it on the status topic.

Commands:
    list_nodes          {}
    coordinator_state   {"node_id": "srv"}
    pairing_info        {"node_id": "lamp_1"}
    decommission        {"node_id": "lamp_1"}
    change_status       {"node_id": "lamp_1", "status": {"on": true, "level": 120}}
"""

import logging
from typing import Any, Dict

from hearth_nodes import (
    AggregatorNode,
    CommissionableNode,
    DeviceNode,
    FlowRuntime,
    PairingUnavailableError,
    ServerNode,
)

from .registry import CommandRegistry

logger = logging.getLogger(__name__)


class NodeNotFoundError(LookupError):
    """Raised when a command targets a node id the runtime does not know"""
    pass


class BridgeCommands:
    """Command handlers over one FlowRuntime."""

    def __init__(self, runtime: FlowRuntime):
        self.runtime = runtime

    def _node(self, command: Dict[str, Any], node_class=object):
        node_id = command.get('node_id')
        node = self.runtime.get_node(node_id)
        if node is None or not isinstance(node, node_class):
            raise NodeNotFoundError(f"Node '{node_id}' not found")
        return node

    def list_nodes(self, command: Dict[str, Any]) -> Dict[str, Any]:
        return {
            'nodes': [node.describe() for node in self.runtime.nodes],
            'failed': self.runtime.failed_nodes,
        }

    def coordinator_state(self, command: Dict[str, Any]) -> Dict[str, Any]:
        node = self._node(command, (ServerNode, AggregatorNode))
        coordinator = node.coordinator
        return {
            'node_id': node.id,
            'state': coordinator.state.value,
            'degraded': coordinator.degraded,
            'registrations': {
                pid: state.value for pid, state in coordinator.registrations.items()
            },
        }

    def pairing_info(self, command: Dict[str, Any]) -> Dict[str, Any]:
        node = self._node(command, CommissionableNode)
        info = node.current_pairing_info()
        if info is None:
            return {'node_id': node.id, 'commissioned': False, 'qrcode': None, 'manualPairingCode': None}
        return {'node_id': node.id, **info.to_dict()}

    def decommission(self, command: Dict[str, Any]) -> Dict[str, Any]:
        node = self._node(command, CommissionableNode)
        try:
            info = node.decommission()
        except PairingUnavailableError as e:
            raise ValueError(str(e)) from e
        logger.info(f"🧹 {node.id} decommissioned via control plane")
        return {'node_id': node.id, **info.to_dict()}

    def change_status(self, command: Dict[str, Any]) -> Dict[str, Any]:
        node = self._node(command, DeviceNode)
        status = node.change_status(command.get('status'))
        if status is None:
            raise ValueError("'status' must be an object")
        return {'node_id': node.id, 'status': status.to_dict()}


def register_bridge_commands(registry: CommandRegistry, runtime: FlowRuntime) -> BridgeCommands:
    """Register every bridge command in `registry`."""
    commands = BridgeCommands(runtime)

    registry.register(
        "list_nodes",
        commands.list_nodes,
        "List declared nodes and their status"
    )
    registry.register(
        "coordinator_state",
        commands.coordinator_state,
        "Startup state and registrations of a server or aggregator",
        required_fields=("node_id",),
    )
    registry.register(
        "pairing_info",
        commands.pairing_info,
        "Pairing code of a device or aggregator",
        required_fields=("node_id",),
    )
    registry.register(
        "decommission",
        commands.decommission,
        "Forget every paired fabric of a device or aggregator",
        required_fields=("node_id",),
    )
    registry.register(
        "change_status",
        commands.change_status,
        "Set on/off and level of a device",
        required_fields=("node_id", "status"),
    )

    logger.info("Control handlers registered")
    return commands
