"""
hearth_control - Control Plane for the Hearth bridge

Bounded Context: MQTT-based command-and-control
Responsibilities:
  - MQTT connection management (Control Plane)
  - Command registration and validation
  - Bridge commands over the flow runtime (list nodes, pairing, decommission,
    status changes, coordinator state)

Architecture:
  - CommandRegistry: Explicit registration pattern
  - MQTTControlPlane: MQTT client + command reception
  - BridgeCommands: handlers bound to a FlowRuntime
  - QoS 1 for control commands (at-least-once delivery)
"""

from .registry import CommandRegistry, CommandNotAvailableError, CommandValidationError
from .plane import MQTTControlPlane
from .commands import BridgeCommands, register_bridge_commands

__all__ = [
    "CommandRegistry",
    "CommandNotAvailableError",
    "CommandValidationError",
    "MQTTControlPlane",
    "BridgeCommands",
    "register_bridge_commands",
]
