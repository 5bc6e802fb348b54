"""
Flow Runtime - Host for the declared nodes of one bridge process.

Bounded Context: Node construction, lookup and teardown
Responsibilities:
  - Map node type names to node classes (NodeTypeRegistry)
  - Construct every declared node in dependency order, handing each one
    its own config plus the full sibling config list
  - Route participant timeout warnings to the affected node
  - Close every node with the host's removal flag (stop vs. destroy)

Node Contract (BaseNode):
  - log / warn / error channels (error also sets a red status indicator)
  - status(fill, shape, text) indicator
  - on / emit named events ("status_change", "output")
  - start() once every node of the flow exists
  - on_close(removed) teardown hook

Construction Order:
  Servers first, then aggregators, then devices and controllers, then
  the helper nodes that target them. A child looks its parent
  up with get_node() at construction, and the parent's coordinator has
  already resolved its participant set from each_config(), so no child
  can register before the coordinator observing it exists.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Set, Type

from hearth_core.config import (
    AGGREGATOR_NODE,
    CONTROLLER_NODE,
    DEVICE_NODE,
    SERVER_NODE,
    ConfigurationError,
    FlowConfig,
    NodeConfig,
)
from hearth_core.coordinator import CoordinatorClosedError, RegistrationOutcome
from hearth_core.lifecycle import StorageNamespace

from .backend import LoopbackBackend, ProtocolBackend

logger = logging.getLogger(__name__)

CONSTRUCTION_ORDER = {SERVER_NODE: 0, AGGREGATOR_NODE: 1, DEVICE_NODE: 2, CONTROLLER_NODE: 2}


class UnknownNodeTypeError(Exception):
    """Raised when a flow declares a node type nobody registered"""
    pass


@dataclass(frozen=True)
class NodeStatus:
    """Status indicator shown next to a node (fill colour, shape, text)."""

    fill: str = "grey"
    shape: str = "dot"
    text: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {'fill': self.fill, 'shape': self.shape, 'text': self.text}


class BaseNode:
    """
    Base class of every node type.

    Subclasses do their synchronous wiring in __init__ (raise
    ConfigurationError for invalid references) and register with their
    parent coordinator in start().
    """

    def __init__(self, runtime: "FlowRuntime", config: NodeConfig):
        self.runtime = runtime
        self.config = config
        self.id = config.id
        self.name = config.display_name
        self.logger = logging.getLogger(f"hearth.node.{config.type}")

        self.errors: List[str] = []
        self.warnings: List[str] = []
        self._status = NodeStatus()
        self._handlers: Dict[str, List[Callable[..., None]]] = {}
        self._handlers_lock = threading.Lock()
        self._closed = False

    # ─────────────────────────────────────────────────────────────────────
    # Channels
    # ─────────────────────────────────────────────────────────────────────

    def log(self, message: str) -> None:
        self.logger.info(f"[{self.id}] {message}")

    def warn(self, message: str) -> None:
        self.warnings.append(message)
        self.logger.warning(f"⚠️ [{self.id}] {message}")

    def error(self, message: str) -> None:
        """User-visible error: logged, recorded and shown as a red status."""
        self.errors.append(message)
        self.logger.error(f"❌ [{self.id}] {message}")
        self.status("red", "ring", message)

    def status(self, fill: str, shape: str = "dot", text: str = "") -> None:
        self._status = NodeStatus(fill, shape, text)

    @property
    def current_status(self) -> NodeStatus:
        return self._status

    # ─────────────────────────────────────────────────────────────────────
    # Events
    # ─────────────────────────────────────────────────────────────────────

    def on(self, event: str, handler: Callable[..., None]) -> None:
        with self._handlers_lock:
            self._handlers.setdefault(event, []).append(handler)

    def remove_listener(self, event: str, handler: Callable[..., None]) -> None:
        with self._handlers_lock:
            handlers = self._handlers.get(event, [])
            if handler in handlers:
                handlers.remove(handler)

    def emit(self, event: str, *args: Any) -> None:
        with self._handlers_lock:
            handlers = list(self._handlers.get(event, []))
        for handler in handlers:
            try:
                handler(*args)
            except Exception as e:
                self.logger.error(
                    f"❌ [{self.id}] '{event}' handler failed: {e}", exc_info=True
                )

    def send(self, message: Dict[str, Any]) -> None:
        """Emit a message on the node's output."""
        self.emit("output", message)

    # ─────────────────────────────────────────────────────────────────────
    # Participation helpers
    # ─────────────────────────────────────────────────────────────────────

    def namespace(self, kind: str) -> StorageNamespace:
        return StorageNamespace(self.runtime.storage_root, kind, self.id)

    def register_with(self, parent: Any, attachment: Any = None) -> bool:
        """
        Register this node with a parent coordinator node.

        Returns:
            True if the attachment made it into the parent's resource
        """
        try:
            outcome = parent.register_participant(self.id, attachment)
        except CoordinatorClosedError as e:
            self.error(str(e))
            return False

        if outcome is RegistrationOutcome.ACCEPTED:
            self.log(f"Registered with {parent.name}")
            return True
        if outcome is RegistrationOutcome.LATE:
            self.error(f"{parent.name} already started; this node will be unreachable")
        elif outcome is RegistrationOutcome.REJECTED:
            self.error(f"{parent.name} failed to add this node")
        elif outcome is RegistrationOutcome.UNKNOWN:
            self.error(f"Not a declared participant of {parent.name}")
        else:
            self.warn(f"Already registered with {parent.name}")
        return False

    # ─────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────

    def start(self) -> None:
        """Called once every node of the flow has been constructed."""

    def close(self, removed: bool = False) -> None:
        if self._closed:
            return
        self._closed = True
        self.on_close(removed)
        with self._handlers_lock:
            self._handlers.clear()

    def on_close(self, removed: bool) -> None:
        """Teardown hook; removed=True means the node was deleted for good."""

    def describe(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'type': self.config.type,
            'name': self.name,
            'status': self._status.to_dict(),
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.id!r})"


class NodeTypeRegistry:
    """
    Registry of node classes by flow type name.

    Example:
        registry = NodeTypeRegistry()
        registry.register("hearth-server", ServerNode, "Shared protocol server")
        node = registry.create(runtime, config)
    """

    def __init__(self):
        self._types: Dict[str, Type[BaseNode]] = {}
        self._descriptions: Dict[str, str] = {}
        self._lock = threading.Lock()

    def register(self, type_name: str, node_class: Type[BaseNode], description: str) -> None:
        """
        Raises:
            ValueError: If type_name already registered
        """
        with self._lock:
            if type_name in self._types:
                raise ValueError(f"Node type '{type_name}' already registered")
            self._types[type_name] = node_class
            self._descriptions[type_name] = description

    def create(self, runtime: "FlowRuntime", config: NodeConfig) -> BaseNode:
        if config.type not in self._types:
            raise UnknownNodeTypeError(
                f"Node type '{config.type}' not available. "
                f"Available types: {', '.join(sorted(self._types))}"
            )
        return self._types[config.type](runtime, config)

    @property
    def available_types(self) -> Set[str]:
        return set(self._types)

    def get_help(self) -> Dict[str, str]:
        return dict(self._descriptions)


class FlowRuntime:
    """
    Runs one flow: every declared node, sharing one backend.

    Threading:
      - load() and close() are called from the main thread
      - Nodes are looked up from coordinator, timer and MQTT threads;
        the node table is guarded by a lock

    Example:
        runtime = FlowRuntime(FlowConfig.from_yaml(path), LoopbackBackend())
        runtime.load()
        runtime.get_node("srv").server_ready.result(timeout=15)
        runtime.close(removed=False)
    """

    def __init__(
        self,
        flow_config: FlowConfig,
        backend: Optional[ProtocolBackend] = None,
        registry: Optional[NodeTypeRegistry] = None,
        timer_factory: Callable[[float, Callable[[], None]], Any] = threading.Timer,
        status_publisher: Any = None,
    ):
        """
        Args:
            flow_config: Declared nodes, storage root, startup timeout
            backend: Protocol backend (default: LoopbackBackend)
            registry: Node types (default: every built-in hearth node)
            timer_factory: Passed to every coordinator (tests inject fakes)
            status_publisher: Optional StatusPublisher for status_change events
        """
        if registry is None:
            from .types import default_registry
            registry = default_registry()

        self.flow_config = flow_config
        self.backend = backend or LoopbackBackend()
        self.registry = registry
        self.timer_factory = timer_factory
        self.status_publisher = status_publisher

        self._nodes: Dict[str, BaseNode] = {}
        self._failed: Dict[str, str] = {}
        self._lock = threading.Lock()
        self._closed = False

    @property
    def storage_root(self):
        return self.flow_config.storage_root

    @property
    def startup_timeout(self) -> float:
        return self.flow_config.startup_timeout

    def each_config(self) -> List[NodeConfig]:
        """Every declared node config, in declaration order."""
        return list(self.flow_config.nodes)

    def get_node(self, node_id: Optional[str]) -> Optional[BaseNode]:
        if node_id is None:
            return None
        with self._lock:
            return self._nodes.get(node_id)

    @property
    def nodes(self) -> List[BaseNode]:
        with self._lock:
            return list(self._nodes.values())

    @property
    def failed_nodes(self) -> Dict[str, str]:
        """Node id -> configuration error, for nodes that could not be built."""
        with self._lock:
            return dict(self._failed)

    def load(self) -> None:
        """Construct every enabled node, then start them in the same order."""
        configs = [c for c in self.each_config() if not c.disabled]
        configs.sort(key=lambda c: CONSTRUCTION_ORDER.get(c.type, 3))

        for config in configs:
            try:
                node = self.registry.create(self, config)
            except (ConfigurationError, UnknownNodeTypeError) as e:
                logger.error(f"❌ [{config.id}] {e}")
                with self._lock:
                    self._failed[config.id] = str(e)
                continue

            with self._lock:
                self._nodes[config.id] = node
            logger.debug(f"Node {config.id} ({config.type}) constructed")

        for node in self.nodes:
            try:
                node.start()
            except Exception as e:
                node.error(f"Failed to start: {e}")

        logger.info(
            f"✅ Flow loaded: {len(self._nodes)} node(s), {len(self._failed)} failed"
        )

    def notify_unreachable(self, coordinator_name: str, participant_id: str) -> None:
        """Warn a participant that missed its coordinator's startup window."""
        message = f"Did not register with {coordinator_name} in time and will be unreachable"
        node = self.get_node(participant_id)
        if node is not None:
            node.warn(message)
        else:
            logger.warning(f"⚠️ [{participant_id}] {message}")

    def report_error(self, node_id: str, message: str) -> None:
        node = self.get_node(node_id)
        if node is not None:
            node.error(message)
        else:
            logger.error(f"❌ [{node_id}] {message}")

    def publish_status(self, node_id: str, status_msg: Any) -> None:
        if self.status_publisher is not None:
            self.status_publisher.publish_status(node_id, status_msg)

    def remove_node(self, node_id: str) -> bool:
        """Delete one node for good (destroy: its storage is erased)."""
        with self._lock:
            node = self._nodes.pop(node_id, None)
        if node is None:
            return False
        node.close(removed=True)
        if self.status_publisher is not None:
            self.status_publisher.forget(node_id)
        logger.info(f"🗑️ Node {node_id} removed")
        return True

    def close(self, removed: bool = False) -> None:
        """
        Close every node in reverse construction order.

        Args:
            removed: True when the whole flow is deleted (destroy)
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            nodes = list(self._nodes.values())

        for node in reversed(nodes):
            try:
                node.close(removed)
            except Exception as e:
                logger.error(f"❌ Error closing {node.id}: {e}", exc_info=True)

        logger.info(f"✅ Flow closed (removed={removed})")
