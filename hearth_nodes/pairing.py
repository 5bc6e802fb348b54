"""Shared behaviour of nodes that expose a pairable endpoint (standalone devices, aggregators)."""

from typing import Optional

from hearth_core.coordinator import CoordinatorClosedError
from hearth_mqtt.schemas import PairingInfo

from .backend import CommissioningEndpoint, PairingUnavailableError
from .runtime import BaseNode


class CommissionableNode(BaseNode):
    """
    Node owning a CommissioningEndpoint hosted by a server node.

    Pairing data only exists once the hosting server has started, so the
    node subscribes to the server's broadcaster and refreshes its pairing
    info when the server comes up (immediately if it already has).
    """

    endpoint: Optional[CommissioningEndpoint] = None

    def __init__(self, runtime, config):
        super().__init__(runtime, config)
        self.pairing_info: Optional[PairingInfo] = None

    def follow_server(self, server_node) -> None:
        server_node.server_ready.subscribe(self._on_server_ready)

    def _on_server_ready(self, server, error: Optional[BaseException]) -> None:
        if isinstance(error, CoordinatorClosedError):
            return
        if error is not None:
            self.error(f"Server failed to start: {error}")
            return
        try:
            info = self.refresh_pairing_info()
        except PairingUnavailableError as e:
            # Degraded start without this endpoint
            self.warn(str(e))
            return
        self.log(f"Ready, manual pairing code {info.manual_pairing_code}")

    def refresh_pairing_info(self) -> PairingInfo:
        """
        Raises:
            PairingUnavailableError: If the endpoint is not online
        """
        if self.endpoint is None:
            raise PairingUnavailableError(f"{self.name} has no endpoint of its own")
        info = self.endpoint.get_pairing_info()
        self.pairing_info = info
        if info.commissioned:
            self.status("green", "dot", "commissioned")
        else:
            self.status("blue", "dot", "ready to pair")
        return info

    def current_pairing_info(self) -> Optional[PairingInfo]:
        """Latest pairing info, or None before the endpoint is online."""
        try:
            return self.refresh_pairing_info()
        except PairingUnavailableError:
            return None

    def decommission(self) -> PairingInfo:
        """
        Forget every paired fabric and return the fresh pairing info.

        Raises:
            PairingUnavailableError: If the endpoint is not online
        """
        self.refresh_pairing_info()
        self.endpoint.decommission()
        self.log("Decommissioned")
        return self.refresh_pairing_info()
