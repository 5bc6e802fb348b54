"""
Configuration schema for the Hearth bridge.

This module defines the flow configuration: the closed list of declared
nodes (server, aggregators, devices, controllers, helper nodes), the
storage root for persisted protocol state, the startup timeout shared by
every coordinator, and the optional MQTT / HTTP settings.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
import yaml


class ConfigurationError(Exception):
    """Raised when a node configuration is invalid or references a missing node"""
    pass


# Node type names (as they appear in flow YAML)
SERVER_NODE = "hearth-server"
AGGREGATOR_NODE = "hearth-aggregator"
DEVICE_NODE = "hearth-device"
CONTROLLER_NODE = "hearth-controller"
DEVICE_CONTROL_NODE = "hearth-device-control"
DEVICE_STATUS_NODE = "hearth-device-status"
CONTROLLER_STATUS_NODE = "hearth-controller-status"

NODE_TYPES = {
    SERVER_NODE,
    AGGREGATOR_NODE,
    DEVICE_NODE,
    CONTROLLER_NODE,
    DEVICE_CONTROL_NODE,
    DEVICE_STATUS_NODE,
    CONTROLLER_STATUS_NODE,
}

# Device categories
STANDALONE = "standalone"
AGGREGATED = "aggregated"

DEVICE_TYPES = {
    "OnOffLightDevice",
    "OnOffPluginUnitDevice",
    "DimmableLightDevice",
    "DimmablePluginUnitDevice",
}

DEFAULT_PRODUCT_ID = 0x8000
DEFAULT_DISCRIMINATOR = 3840
DEFAULT_STARTUP_TIMEOUT = 10.0


@dataclass(frozen=True)
class NodeConfig:
    """
    One declared node of the flow.

    Only the fields relevant to the node's type are used; the rest keep
    their defaults. `id` is the participant identifier used by every
    coordinator and must be stable across restarts.
    """

    id: str
    type: str
    name: Optional[str] = None
    disabled: bool = False

    # Parent references
    server: Optional[str] = None
    aggregator: Optional[str] = None

    # Accessory / aggregator settings
    device_category: Optional[str] = None  # "standalone" or "aggregated"
    device_type: Optional[str] = None
    port: int = 0  # 0 = let the backend pick
    discriminator: int = DEFAULT_DISCRIMINATOR
    product_id: int = DEFAULT_PRODUCT_ID

    # Controller settings
    pairing_code: Optional[str] = None
    ip: Optional[str] = None

    # Control / status nodes: target node id
    device: Optional[str] = None

    def __post_init__(self):
        """Validate node configuration."""
        if not self.id:
            raise ConfigurationError("Node id cannot be empty")

        if self.type not in NODE_TYPES:
            raise ConfigurationError(
                f"Invalid node type for '{self.id}': {self.type}. "
                f"Must be one of {sorted(NODE_TYPES)}"
            )

        if not 0 <= self.port <= 65535:
            raise ConfigurationError(
                f"Node '{self.id}' port must be in [0, 65535], got {self.port}"
            )

        if not 0 <= self.discriminator <= 0xFFF:
            raise ConfigurationError(
                f"Node '{self.id}' discriminator must be in [0, 4095], got {self.discriminator}"
            )

        if self.type == DEVICE_NODE:
            if self.device_category not in {STANDALONE, AGGREGATED}:
                raise ConfigurationError(
                    f"Invalid device_category for '{self.id}': {self.device_category}. "
                    f"Must be '{STANDALONE}' or '{AGGREGATED}'"
                )
            if self.device_type not in DEVICE_TYPES:
                raise ConfigurationError(
                    f"Invalid device_type for '{self.id}': {self.device_type}. "
                    f"Must be one of {sorted(DEVICE_TYPES)}"
                )

        if self.type == CONTROLLER_NODE and not self.pairing_code:
            raise ConfigurationError(f"Controller '{self.id}' requires a pairing_code")

    @property
    def display_name(self) -> str:
        return self.name or self.id

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NodeConfig":
        """
        Build a NodeConfig from a flow YAML entry.

        Unknown keys (editor coordinates, wires, ...) are ignored.
        """
        known = set(cls.__dataclass_fields__)
        values = {key: value for key, value in data.items() if key in known}

        try:
            for int_field in ("port", "discriminator", "product_id"):
                if values.get(int_field) is not None:
                    values[int_field] = int(values[int_field], 0) if isinstance(
                        values[int_field], str
                    ) else int(values[int_field])
                else:
                    values.pop(int_field, None)
            return cls(**values)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid node entry {data.get('id')!r}: {e}") from e


@dataclass(frozen=True)
class MQTTConfig:
    """MQTT broker configuration (control plane + status publishing)."""

    broker: str = "localhost"
    port: int = 1883
    username: Optional[str] = None
    password: Optional[str] = None
    qos: int = 0  # Status plane QoS (fire-and-forget)

    command_topic: str = "hearth/control/{bridge_id}/commands"
    status_topic: str = "hearth/control/{bridge_id}/status"
    device_status_topic: str = "hearth/data/{bridge_id}/devices"

    def __post_init__(self):
        """Validate MQTT configuration."""
        if not 1 <= self.port <= 65535:
            raise ConfigurationError(
                f"MQTT port must be in [1, 65535], got {self.port}"
            )

        if self.qos not in {0, 1, 2}:
            raise ConfigurationError(
                f"MQTT QoS must be 0, 1, or 2, got {self.qos}"
            )


@dataclass(frozen=True)
class HTTPConfig:
    """Admin HTTP endpoint configuration."""

    host: str = "127.0.0.1"
    port: int = 1881

    def __post_init__(self):
        if not 1 <= self.port <= 65535:
            raise ConfigurationError(
                f"HTTP port must be in [1, 65535], got {self.port}"
            )


@dataclass(frozen=True)
class FlowConfig:
    """
    Main configuration for a bridge process.

    This configuration is loaded from YAML and validated at startup.
    Immutable after construction (frozen dataclass).
    """

    bridge_id: str
    nodes: List[NodeConfig] = field(default_factory=list)
    storage_root: Path = Path("./storage")
    startup_timeout: float = DEFAULT_STARTUP_TIMEOUT

    mqtt_config: Optional[MQTTConfig] = None
    http_config: Optional[HTTPConfig] = None

    def __post_init__(self):
        """Validate flow configuration."""
        if not self.bridge_id:
            raise ConfigurationError("bridge_id cannot be empty")

        if self.startup_timeout <= 0:
            raise ConfigurationError(
                f"startup_timeout must be > 0, got {self.startup_timeout}"
            )

        seen = set()
        for node in self.nodes:
            if node.id in seen:
                raise ConfigurationError(f"Duplicate node id: {node.id}")
            seen.add(node.id)

    def get_node_config(self, node_id: str) -> Optional[NodeConfig]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FlowConfig":
        """Build a FlowConfig from an already-parsed YAML document."""
        if not isinstance(data, dict):
            raise ConfigurationError("Flow configuration must be a mapping")

        nodes = [NodeConfig.from_dict(entry) for entry in data.get("nodes", [])]

        mqtt_config_data = data.get("mqtt_config")
        mqtt_config = MQTTConfig(**mqtt_config_data) if mqtt_config_data else None

        http_config_data = data.get("http_config")
        http_config = HTTPConfig(**http_config_data) if http_config_data else None

        return cls(
            bridge_id=data.get("bridge_id", ""),
            nodes=nodes,
            storage_root=Path(data.get("storage_root", "./storage")),
            startup_timeout=float(data.get("startup_timeout", DEFAULT_STARTUP_TIMEOUT)),
            mqtt_config=mqtt_config,
            http_config=http_config,
        )

    @classmethod
    def from_yaml(cls, yaml_path: Path) -> "FlowConfig":
        """
        Load configuration from YAML file.

        Example YAML:
            bridge_id: "living_room"
            storage_root: "./storage"
            startup_timeout: 10

            nodes:
              - id: "srv"
                type: "hearth-server"
              - id: "lamp"
                type: "hearth-device"
                server: "srv"
                device_category: "standalone"
                device_type: "DimmableLightDevice"
                port: 5541
                discriminator: 1234

            mqtt_config:
              broker: "localhost"
              port: 1883

            http_config:
              port: 1881
        """
        with open(yaml_path) as f:
            data = yaml.safe_load(f)

        return cls.from_dict(data or {})
