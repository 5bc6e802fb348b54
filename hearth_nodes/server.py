"""
Server node - the shared protocol server every other node hangs off.

Participants (resolved at construction from the whole flow): controllers,
aggregators and standalone accessories whose `server` is this node. Each
registers with an attachment (endpoint, aggregator endpoint or pairing
controller); the coordinator adds it to the server while WAITING and starts
the server once, when all are in or after the startup timeout.

Aggregators register as soon as the flow is up, before their own bridged
device set is sealed; the server's start waits for that seal (bounded by
the aggregator's own timeout) so a server never gives up on an aggregator
that is still waiting for its devices.
"""

import logging
from typing import Any, List, Tuple

from hearth_core.coordinator import CoordinatorClosedError, RegistrationOutcome, StartupCoordinator
from hearth_core.lifecycle import LifecycleController
from hearth_core.resolver import resolve_participants, server_participants

from .backend import AggregatorEndpoint, CommissioningEndpoint, PairingController, ProtocolServer
from .runtime import BaseNode

logger = logging.getLogger(__name__)


class ServerNode(BaseNode):
    """Owns the ProtocolServer and its startup coordinator."""

    STORAGE_KIND = "servers"

    def __init__(self, runtime, config):
        super().__init__(runtime, config)

        self.storage = self.namespace(self.STORAGE_KIND)
        self.server: ProtocolServer = runtime.backend.create_server(self.storage)
        self._controllers: List[Tuple[str, PairingController]] = []
        self._aggregators: List[Tuple[str, AggregatorEndpoint]] = []

        participants = resolve_participants(
            runtime.each_config(), server_participants(self.id)
        )
        coordinator_name = f"server:{self.id}"

        self.lifecycle = LifecycleController(coordinator_name, self.storage)
        self.coordinator: StartupCoordinator[ProtocolServer] = StartupCoordinator(
            name=coordinator_name,
            participants=participants,
            start=self._start_server,
            attach=self._attach,
            stop=lambda server: server.stop(),
            timeout=runtime.startup_timeout,
            on_participant_timeout=lambda pid: runtime.notify_unreachable(self.name, pid),
            on_failure=lambda error: self.error(str(error)),
            timer_factory=runtime.timer_factory,
        )
        self.lifecycle.bind(resource=self.server, coordinator=self.coordinator)

        if participants:
            self.status("yellow", "ring", f"waiting for {len(participants)} node(s)")

    @property
    def server_ready(self):
        """ResourceBroadcaster resolving to the started ProtocolServer."""
        return self.coordinator.handle

    def register_participant(self, participant_id: str, attachment: Any = None) -> RegistrationOutcome:
        return self.coordinator.register(participant_id, attachment)

    def _attach(self, participant_id: str, attachment: Any) -> None:
        if isinstance(attachment, PairingController):
            self.server.add_controller(attachment)
            self._controllers.append((participant_id, attachment))
        else:
            self.server.add_endpoint(attachment)
            if isinstance(attachment, AggregatorEndpoint):
                self._aggregators.append((participant_id, attachment))

    def _start_server(self) -> ProtocolServer:
        for participant_id, endpoint in self._aggregators:
            self._await_sealed(participant_id, endpoint)

        self.log("Starting server")
        self.server.start()

        # Pairing failures go to the controller node; the server stays up
        for participant_id, controller in self._controllers:
            try:
                controller.connect()
            except Exception as e:
                self.runtime.report_error(participant_id, f"Failed to connect: {e}")

        self.status("green", "dot", "started")
        self.log("Server started")
        return self.server

    def _await_sealed(self, participant_id: str, endpoint: AggregatorEndpoint) -> None:
        node = self.runtime.get_node(participant_id)
        if node is None:
            self.server.remove_endpoint(endpoint)
            return
        try:
            node.aggregator_ready.result()
        except CoordinatorClosedError:
            self.server.remove_endpoint(endpoint)
        except Exception as e:
            self.server.remove_endpoint(endpoint)
            self.warn(f"Hosting without aggregator {participant_id}: {e}")

    def on_close(self, removed: bool) -> None:
        self.lifecycle.close(removed)
        self.status("grey", "ring", "closed")


class HostedEndpoint:
    """
    Lifecycle resource of an endpoint hosted by a server node.

    stop() takes the endpoint off the server (so a later server start does
    not bring it back) and offline.
    """

    def __init__(self, server_node: ServerNode, endpoint: CommissioningEndpoint):
        self.server_node = server_node
        self.endpoint = endpoint

    def stop(self) -> None:
        self.server_node.server.remove_endpoint(self.endpoint)
        self.endpoint.stop()
