"""
Lifecycle Controller - Stop vs. destroy teardown of coordinated resources.

Two teardown modes, selected by the host's removal flag (passed through
unchanged):

- Stop (removed=False): close the resource and its listeners, keep the
  persisted protocol state (pairing codes, fabrics) for the next run.
- Destroy (removed=True): stop (best-effort), then erase every file under
  the resource's storage namespace.

Storage layout:
    <storage_root>/<kind>/<resource_id>/...
    e.g. storage/aggregators/agg_1/bridged/lamp_3/

Namespaces are validated to lie strictly inside the storage root, so a
destroy can never reach a sibling resource or the root itself.
"""

import shutil
import threading
from pathlib import Path
from typing import Any, List, Optional

from hearth_mqtt.logging import LogEvent, StructuredLogger, create_logger


class StorageNamespace:
    """
    Storage directory owned by exactly one resource.

    Example:
        ns = StorageNamespace(Path("./storage"), "servers", "srv")
        ns.path            # storage/servers/srv
        ns.child("bridged", "lamp").path
        # storage/servers/srv/bridged/lamp
    """

    def __init__(self, root: Path, kind: str, resource_id: str):
        """
        Args:
            root: Storage root shared by every resource
            kind: Resource kind directory (e.g. "servers", "aggregators")
            resource_id: Owning resource identifier (node id)

        Raises:
            ValueError: If kind or resource_id would escape the namespace
        """
        for label, part in (("kind", kind), ("resource_id", resource_id)):
            if not part or part in {".", ".."} or "/" in part or "\\" in part:
                raise ValueError(f"Invalid storage {label}: {part!r}")

        self.root = Path(root)
        self.kind = kind
        self.resource_id = resource_id
        self.path = self.root / kind / resource_id

        root_resolved = self.root.resolve()
        path_resolved = self.path.resolve()
        if path_resolved == root_resolved or root_resolved not in path_resolved.parents:
            raise ValueError(f"Storage namespace {self.path} escapes root {self.root}")

    def child(self, kind: str, resource_id: str) -> "StorageNamespace":
        """Namespace nested under this one (erased together with it)."""
        return StorageNamespace(self.path, kind, resource_id)

    def ensure(self) -> Path:
        self.path.mkdir(parents=True, exist_ok=True)
        return self.path

    def exists(self) -> bool:
        return self.path.exists()

    def erase(self) -> bool:
        """
        Remove the namespace directory and everything below it.

        Returns:
            True if something was removed
        """
        if not self.path.exists():
            return False
        shutil.rmtree(self.path)
        return True

    def __repr__(self) -> str:
        return f"StorageNamespace({self.path})"


class LifecycleController:
    """
    Teardown driver for one coordinated resource.

    Order on close(removed):
      1. Dependents (e.g. bridged accessories of an aggregator), same flag
      2. Coordinator closed (late registrations rejected from here on)
      3. resource.stop(), failures logged and ignored
      4. removed=True only: storage namespace erased

    Thread Safety: close() is idempotent and serialized by a lock.
    """

    def __init__(
        self,
        name: str,
        namespace: Optional[StorageNamespace] = None,
        logger: Optional[StructuredLogger] = None,
    ):
        self.name = name
        self.namespace = namespace
        self.resource: Any = None
        self.coordinator: Any = None
        self._dependents: List["LifecycleController"] = []
        self._logger = logger or create_logger("lifecycle")
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def bind(self, resource: Any = None, coordinator: Any = None) -> None:
        """Attach the resource (anything with stop()) and/or its coordinator."""
        if resource is not None:
            self.resource = resource
        if coordinator is not None:
            self.coordinator = coordinator

    def add_dependent(self, dependent: "LifecycleController") -> None:
        with self._lock:
            if dependent not in self._dependents:
                self._dependents.append(dependent)

    def close(self, removed: bool) -> bool:
        """
        Stop (removed=False) or destroy (removed=True) the resource.

        Returns:
            True if every step succeeded, False if a step failed and was skipped
        """
        with self._lock:
            if self._closed:
                return True
            self._closed = True
            dependents = list(self._dependents)

        clean = True
        metadata = {'resource': self.name, 'removed': removed}

        for dependent in dependents:
            try:
                clean = dependent.close(removed) and clean
            except Exception as e:
                clean = False
                self._logger.error(
                    event=LogEvent.RESOURCE_STOP_ERROR,
                    message=f"Dependent '{dependent.name}' failed to close",
                    metadata=metadata,
                    exc_info=e,
                )

        if self.coordinator is not None:
            self.coordinator.close()

        if self.resource is not None:
            try:
                self.resource.stop()
                self._logger.info(
                    event=LogEvent.RESOURCE_STOPPED,
                    message="Resource stopped",
                    metadata=metadata,
                )
            except Exception as e:
                clean = False
                self._logger.error(
                    event=LogEvent.RESOURCE_STOP_ERROR,
                    message="Resource failed to stop, continuing teardown",
                    metadata=metadata,
                    exc_info=e,
                )

        if removed and self.namespace is not None:
            try:
                erased = self.namespace.erase()
            except OSError as e:
                self._logger.error(
                    event=LogEvent.RESOURCE_STOP_ERROR,
                    message="Failed to erase storage namespace",
                    metadata={**metadata, 'path': str(self.namespace.path)},
                    exc_info=e,
                )
                return False

            self._logger.info(
                event=LogEvent.RESOURCE_DESTROYED,
                message="Storage namespace erased" if erased else "Storage namespace already absent",
                metadata={**metadata, 'path': str(self.namespace.path)},
            )

        return clean
