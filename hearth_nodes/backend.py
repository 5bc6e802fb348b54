"""
Protocol Backend - Boundary with the commissioning protocol stack.

The bridge never speaks the commissioning protocol itself. Everything it
needs from a protocol stack is captured by the abstract classes below:

    ProtocolBackend   factory for every protocol object
    ProtocolServer    shared server; owns the network listeners
    CommissioningEndpoint / AggregatorEndpoint
                      one pairable endpoint (standalone accessory or bridge)
    Accessory         device model (on/off, level) exposed by an endpoint
    PairingController client pairing with a remote accessory

LoopbackBackend implements the boundary in-process: no sockets, JSON
state persisted under each endpoint's storage namespace, and controllers
pair with endpoints hosted by the same process. It is what run_bridge.py
uses until a real stack is plugged in, and what the tests run against.
"""

import itertools
import json
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from hearth_core.config import NodeConfig
from hearth_core.lifecycle import StorageNamespace
from hearth_mqtt.schemas import LEVEL_MAX, DeviceStatus, PairingInfo

logger = logging.getLogger(__name__)

DIMMABLE_TYPES = {"DimmableLightDevice", "DimmablePluginUnitDevice"}
DEFAULT_PASSCODE = 20202021
VENDOR_ID = 0xFFF1

StatusListener = Callable[[DeviceStatus], None]
RemoteStatusListener = Callable[[str, Any, DeviceStatus], None]


class ResourceAlreadyStartedError(Exception):
    """Raised when adding children to a resource that has already started"""
    pass


class PairingUnavailableError(Exception):
    """Raised when pairing data is requested before the endpoint is online"""
    pass


# ─────────────────────────────────────────────────────────────────────────────
# Boundary
# ─────────────────────────────────────────────────────────────────────────────

class Accessory(ABC):
    """Device model of one accessory."""

    def __init__(self, node_id: str, name: str, device_type: str):
        self.node_id = node_id
        self.name = name
        self.device_type = device_type

    @property
    def supports_level(self) -> bool:
        return self.device_type in DIMMABLE_TYPES

    @abstractmethod
    def set_on_off(self, on: bool) -> None: ...

    @abstractmethod
    def set_level(self, level: int) -> None: ...

    @abstractmethod
    def get_status(self) -> DeviceStatus: ...

    @abstractmethod
    def add_status_listener(self, listener: StatusListener) -> None: ...


class CommissioningEndpoint(ABC):
    """Pairable endpoint hosted by a ProtocolServer."""

    endpoint_id: str
    port: int

    @abstractmethod
    def get_pairing_info(self) -> PairingInfo:
        """Raises PairingUnavailableError until the hosting server is running."""

    @abstractmethod
    def decommission(self) -> None:
        """Forget every paired fabric and the persisted pairing state."""

    @abstractmethod
    def stop(self) -> None:
        """Go offline for good; later pairing writes are refused."""


class AggregatorEndpoint(CommissioningEndpoint):
    """Bridge endpoint exposing several bridged accessories."""

    @abstractmethod
    def add_bridged_device(self, accessory: Accessory, metadata: Dict[str, Any]) -> None:
        """Raises ResourceAlreadyStartedError once start() has run."""

    @abstractmethod
    def start(self) -> "AggregatorEndpoint":
        """Freeze the bridged device set; returns self for hand-off."""


class PairingController(ABC):
    """Client side: pairs with a remote accessory and follows its state."""

    node_id: str

    @abstractmethod
    def connect(self) -> None: ...

    @abstractmethod
    def add_status_listener(self, listener: RemoteStatusListener) -> None: ...


class ProtocolServer(ABC):
    """Shared server hosting endpoints and controllers."""

    @abstractmethod
    def add_endpoint(self, endpoint: CommissioningEndpoint) -> None: ...

    @abstractmethod
    def remove_endpoint(self, endpoint: CommissioningEndpoint) -> None:
        """Stop hosting `endpoint` (no-op if it is not hosted)."""

    @abstractmethod
    def add_controller(self, controller: PairingController) -> None: ...

    @abstractmethod
    def start(self) -> None: ...

    @abstractmethod
    def stop(self) -> None: ...


class ProtocolBackend(ABC):
    """Factory for every protocol object the nodes use."""

    @abstractmethod
    def create_server(self, namespace: StorageNamespace) -> ProtocolServer: ...

    @abstractmethod
    def create_accessory(self, config: NodeConfig) -> Accessory: ...

    @abstractmethod
    def create_endpoint(
        self, config: NodeConfig, accessory: Accessory, namespace: StorageNamespace
    ) -> CommissioningEndpoint: ...

    @abstractmethod
    def create_aggregator(
        self, config: NodeConfig, namespace: StorageNamespace
    ) -> AggregatorEndpoint: ...

    @abstractmethod
    def create_controller(self, config: NodeConfig) -> PairingController: ...


# ─────────────────────────────────────────────────────────────────────────────
# Loopback implementation
# ─────────────────────────────────────────────────────────────────────────────

class LoopbackAccessory(Accessory):
    """In-memory accessory; listeners fire on every state change."""

    def __init__(self, node_id: str, name: str, device_type: str):
        super().__init__(node_id, name, device_type)
        self._status = DeviceStatus(on=False, level=0 if self.supports_level else None)
        self._listeners: List[StatusListener] = []
        self._lock = threading.Lock()

    def set_on_off(self, on: bool) -> None:
        self._update(DeviceStatus(on=bool(on), level=self._status.level))

    def set_level(self, level: int) -> None:
        if not self.supports_level:
            raise ValueError(f"{self.device_type} has no level")
        level = max(0, min(LEVEL_MAX, int(level)))
        self._update(DeviceStatus(on=self._status.on, level=level))

    def get_status(self) -> DeviceStatus:
        return self._status

    def add_status_listener(self, listener: StatusListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def _update(self, status: DeviceStatus) -> None:
        with self._lock:
            if status == self._status:
                return
            self._status = status
            listeners = list(self._listeners)
        for listener in listeners:
            listener(status)


class LoopbackEndpoint(CommissioningEndpoint):
    """
    Endpoint whose pairing state lives in `<namespace>/endpoint.json`.

    State is created on first activation and kept across restarts until
    decommission() or a destroy of the namespace.
    """

    STATE_FILE = "endpoint.json"

    def __init__(
        self,
        backend: "LoopbackBackend",
        config: NodeConfig,
        namespace: StorageNamespace,
        accessory: Optional[Accessory] = None,
    ):
        self.backend = backend
        self.endpoint_id = config.id
        self.name = config.display_name
        self.port = config.port or backend.pick_port()
        self.discriminator = config.discriminator
        self.product_id = config.product_id
        self.namespace = namespace
        self.accessory = accessory

        self._state: Dict[str, Any] = {}
        self._active = False
        self._stopped = False
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self._active

    @property
    def state_path(self) -> Path:
        return self.namespace.path / self.STATE_FILE

    def activate(self) -> None:
        """Bring the endpoint online (called by the hosting server's start)."""
        with self._lock:
            if self._stopped:
                logger.warning(f"Endpoint {self.endpoint_id} was stopped, not activating it")
                return
            self._state = self._load_state()
            self._active = True
        self.backend.announce(self)
        logger.info(f"Endpoint {self.endpoint_id} announced on port {self.port}")

    def deactivate(self) -> None:
        with self._lock:
            self._active = False
        self.backend.withdraw(self)

    def stop(self) -> None:
        with self._lock:
            self._stopped = True
        self.deactivate()

    def get_pairing_info(self) -> PairingInfo:
        with self._lock:
            if not self._active:
                raise PairingUnavailableError(
                    f"Endpoint '{self.endpoint_id}' is not online yet"
                )
            passcode = self._state["passcode"]
            return PairingInfo(
                qr_code=f"MT:LB{self.product_id:04X}{self.discriminator:04d}{passcode:08d}",
                manual_pairing_code=self.manual_pairing_code(passcode),
                commissioned=bool(self._state["fabrics"]),
            )

    def manual_pairing_code(self, passcode: Optional[int] = None) -> str:
        passcode = DEFAULT_PASSCODE if passcode is None else passcode
        return f"{self.discriminator:04d}-{passcode:08d}"

    def commission(self, fabric_id: str) -> None:
        """Record a paired fabric (loopback controllers call this)."""
        with self._lock:
            if not self._active:
                raise PairingUnavailableError(f"Endpoint '{self.endpoint_id}' is offline")
            if fabric_id not in self._state["fabrics"]:
                self._state["fabrics"].append(fabric_id)
                self._save_state()

    def decommission(self) -> None:
        with self._lock:
            if self._stopped:
                raise PairingUnavailableError(f"Endpoint '{self.endpoint_id}' is stopped")
            if self.state_path.exists():
                self.state_path.unlink()
            self._state = self._fresh_state()
            if self._active:
                self._save_state()
        logger.info(f"Endpoint {self.endpoint_id} decommissioned")

    def _fresh_state(self) -> Dict[str, Any]:
        return {
            "passcode": DEFAULT_PASSCODE,
            "discriminator": self.discriminator,
            "vendor_id": VENDOR_ID,
            "product_id": self.product_id,
            "serial_number": f"hearth-{self.endpoint_id}",
            "fabrics": [],
        }

    def _load_state(self) -> Dict[str, Any]:
        if self.state_path.exists():
            with open(self.state_path) as f:
                return json.load(f)
        self._state = self._fresh_state()
        self._save_state()
        return self._state

    def _save_state(self) -> None:
        if self._stopped:
            raise PairingUnavailableError(
                f"Endpoint '{self.endpoint_id}' is stopped; its storage is no longer written"
            )
        self.namespace.ensure()
        with open(self.state_path, "w") as f:
            json.dump(self._state, f, indent=2)


class LoopbackAggregator(LoopbackEndpoint, AggregatorEndpoint):
    """Bridge endpoint; bridged devices get a subdirectory of its namespace."""

    def __init__(self, backend: "LoopbackBackend", config: NodeConfig, namespace: StorageNamespace):
        super().__init__(backend, config, namespace)
        self.bridged: Dict[str, Accessory] = {}
        self._sealed = False

    @property
    def started(self) -> bool:
        return self._sealed

    def add_bridged_device(self, accessory: Accessory, metadata: Dict[str, Any]) -> None:
        with self._lock:
            if self._sealed:
                raise ResourceAlreadyStartedError(
                    f"Aggregator '{self.endpoint_id}' already started; cannot bridge '{accessory.node_id}'"
                )
            self.bridged[accessory.node_id] = accessory

        device_ns = self.namespace.child("bridged", accessory.node_id)
        device_ns.ensure()
        with open(device_ns.path / "device.json", "w") as f:
            json.dump({"node_id": accessory.node_id, **metadata}, f, indent=2)

    def start(self) -> "LoopbackAggregator":
        with self._lock:
            self._sealed = True
        logger.info(
            f"Aggregator {self.endpoint_id} sealed with {len(self.bridged)} bridged device(s)"
        )
        return self

    def find_bridged(self, node_id: str) -> Optional[Accessory]:
        return self.bridged.get(node_id)


class LoopbackController(PairingController):
    """Pairs with a LoopbackEndpoint of the same backend by manual pairing code."""

    def __init__(self, backend: "LoopbackBackend", config: NodeConfig):
        self.backend = backend
        self.node_id = config.id
        self.pairing_code = config.pairing_code
        self.connected_endpoint: Optional[LoopbackEndpoint] = None
        self._listeners: List[RemoteStatusListener] = []

    def connect(self) -> None:
        endpoint = self.backend.lookup(self.pairing_code)
        if endpoint is None:
            raise ConnectionError(f"No endpoint answers pairing code {self.pairing_code}")

        endpoint.commission(fabric_id=self.node_id)
        self.connected_endpoint = endpoint

        accessory = endpoint.accessory
        if accessory is not None:
            def forward(status: DeviceStatus) -> None:
                for listener in list(self._listeners):
                    listener(accessory.name, 1, status)

            accessory.add_status_listener(forward)
            forward(accessory.get_status())

    def add_status_listener(self, listener: RemoteStatusListener) -> None:
        self._listeners.append(listener)


class LoopbackServer(ProtocolServer):
    """Hosts endpoints and controllers; start() activates endpoints in order."""

    def __init__(self, backend: "LoopbackBackend", namespace: StorageNamespace):
        self.backend = backend
        self.namespace = namespace
        self.endpoints: List[LoopbackEndpoint] = []
        self.controllers: List[LoopbackController] = []
        self._running = False
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._running

    def add_endpoint(self, endpoint: CommissioningEndpoint) -> None:
        with self._lock:
            if self._running:
                raise ResourceAlreadyStartedError("Server already running")
            self.endpoints.append(endpoint)

    def remove_endpoint(self, endpoint: CommissioningEndpoint) -> None:
        with self._lock:
            if endpoint in self.endpoints:
                self.endpoints.remove(endpoint)

    def add_controller(self, controller: PairingController) -> None:
        with self._lock:
            if self._running:
                raise ResourceAlreadyStartedError("Server already running")
            self.controllers.append(controller)

    def start(self) -> None:
        self.namespace.ensure()
        with self._lock:
            endpoints = list(self.endpoints)
            self._running = True
        for endpoint in endpoints:
            endpoint.activate()

    def stop(self) -> None:
        with self._lock:
            if not self._running:
                return
            self._running = False
            endpoints = list(self.endpoints)
        for endpoint in endpoints:
            endpoint.deactivate()


class LoopbackBackend(ProtocolBackend):
    """
    In-process protocol backend.

    Keeps a directory of online endpoints keyed by manual pairing code so
    loopback controllers can pair with them.
    """

    PORT_RANGE = (5400, 5540)

    def __init__(self):
        self._ports = itertools.count(self.PORT_RANGE[0])
        self._directory: Dict[str, LoopbackEndpoint] = {}
        self._lock = threading.Lock()

    def pick_port(self) -> int:
        with self._lock:
            port = next(self._ports)
            if port > self.PORT_RANGE[1]:
                raise RuntimeError("Loopback port range exhausted")
            return port

    def announce(self, endpoint: LoopbackEndpoint) -> None:
        code = endpoint.get_pairing_info().manual_pairing_code
        with self._lock:
            self._directory[code] = endpoint

    def withdraw(self, endpoint: LoopbackEndpoint) -> None:
        with self._lock:
            for code, known in list(self._directory.items()):
                if known is endpoint:
                    del self._directory[code]

    def lookup(self, pairing_code: Optional[str]) -> Optional[LoopbackEndpoint]:
        with self._lock:
            return self._directory.get(pairing_code or "")

    def create_server(self, namespace: StorageNamespace) -> LoopbackServer:
        return LoopbackServer(self, namespace)

    def create_accessory(self, config: NodeConfig) -> LoopbackAccessory:
        return LoopbackAccessory(config.id, config.display_name, config.device_type)

    def create_endpoint(
        self, config: NodeConfig, accessory: Accessory, namespace: StorageNamespace
    ) -> LoopbackEndpoint:
        return LoopbackEndpoint(self, config, namespace, accessory=accessory)

    def create_aggregator(self, config: NodeConfig, namespace: StorageNamespace) -> LoopbackAggregator:
        return LoopbackAggregator(self, config, namespace)

    def create_controller(self, config: NodeConfig) -> LoopbackController:
        return LoopbackController(self, config)
