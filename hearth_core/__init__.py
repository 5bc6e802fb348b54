"""
hearth_core - Readiness-gated startup coordination for bridged accessories.

This package provides the engine shared by the server and aggregator
nodes: a shared resource is declared once, depended on by a set of child
participants that register asynchronously, and must start exactly once,
after all of them are in (or after a bounded wait).

Architecture:
- RegistrationMap: observable participant states (fixed key set)
- resolve_participants: computes a coordinator's participant set from the flow
- StartupCoordinator: WAITING -> STARTING -> STARTED/FAILED state machine
- ResourceBroadcaster: write-once, read-many hand-off of the started resource
- LifecycleController: stop vs. destroy, scoped storage namespaces
- FlowConfig / NodeConfig: YAML flow configuration
"""

from hearth_core.config import ConfigurationError, FlowConfig, NodeConfig
from hearth_core.registry import ParticipantState, RegistrationMap
from hearth_core.resolver import (
    aggregator_participants,
    resolve_participants,
    server_participants,
)
from hearth_core.broadcaster import ResourceBroadcaster
from hearth_core.coordinator import (
    CoordinatorClosedError,
    CoordinatorState,
    RegistrationOutcome,
    ResourceStartError,
    StartupCoordinator,
)
from hearth_core.lifecycle import LifecycleController, StorageNamespace

__all__ = [
    "ConfigurationError",
    "FlowConfig",
    "NodeConfig",
    "ParticipantState",
    "RegistrationMap",
    "aggregator_participants",
    "resolve_participants",
    "server_participants",
    "ResourceBroadcaster",
    "CoordinatorClosedError",
    "CoordinatorState",
    "RegistrationOutcome",
    "ResourceStartError",
    "StartupCoordinator",
    "LifecycleController",
    "StorageNamespace",
]
