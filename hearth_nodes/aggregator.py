"""
Aggregator node - one pairable bridge exposing several aggregated accessories.

The aggregator is both a coordinator and a participant:

    aggregated devices --register--> aggregator coordinator
                                          | start: seal bridged device set
                                          v
                                   aggregator_ready
                                          ^ awaited by the server's start
    server coordinator <--register-- aggregator endpoint (on start())

Bridged devices can only be added before the aggregator seals, so the
aggregator waits for them (bounded by the startup timeout). Its endpoint
is registered with the server right away; the server holds its own start
until the seal, so a missing bridged device only costs that device.
"""

from typing import Any

from hearth_core.config import ConfigurationError
from hearth_core.coordinator import RegistrationOutcome, StartupCoordinator
from hearth_core.lifecycle import LifecycleController
from hearth_core.resolver import aggregator_participants, resolve_participants

from .backend import Accessory, AggregatorEndpoint
from .pairing import CommissionableNode
from .server import HostedEndpoint, ServerNode


class AggregatorNode(CommissionableNode):
    """Owns an AggregatorEndpoint and the coordinator its bridged devices register with."""

    STORAGE_KIND = "aggregators"

    def __init__(self, runtime, config):
        super().__init__(runtime, config)

        server_node = runtime.get_node(config.server)
        if not isinstance(server_node, ServerNode):
            raise ConfigurationError(f"Server '{config.server}' not found for aggregator '{self.id}'")
        self.server_node = server_node

        self.storage = self.namespace(self.STORAGE_KIND)
        self.endpoint: AggregatorEndpoint = runtime.backend.create_aggregator(config, self.storage)

        participants = resolve_participants(
            runtime.each_config(), aggregator_participants(self.id)
        )
        coordinator_name = f"aggregator:{self.id}"

        self.lifecycle = LifecycleController(coordinator_name, self.storage)
        self.coordinator: StartupCoordinator[AggregatorEndpoint] = StartupCoordinator(
            name=coordinator_name,
            participants=participants,
            start=self.endpoint.start,
            attach=self._attach_bridged,
            stop=lambda endpoint: endpoint.stop(),
            timeout=runtime.startup_timeout,
            on_participant_timeout=lambda pid: runtime.notify_unreachable(self.name, pid),
            on_failure=lambda error: self.error(str(error)),
            timer_factory=runtime.timer_factory,
        )
        self.lifecycle.bind(
            resource=HostedEndpoint(server_node, self.endpoint), coordinator=self.coordinator
        )

        if participants:
            self.status("yellow", "ring", f"waiting for {len(participants)} bridged device(s)")

    @property
    def aggregator_ready(self):
        """ResourceBroadcaster resolving to the sealed AggregatorEndpoint."""
        return self.coordinator.handle

    def register_participant(self, participant_id: str, attachment: Any = None) -> RegistrationOutcome:
        return self.coordinator.register(participant_id, attachment)

    def _attach_bridged(self, participant_id: str, accessory: Accessory) -> None:
        self.endpoint.add_bridged_device(
            accessory,
            {
                'nodeLabel': accessory.name,
                'productName': accessory.name,
                'productLabel': accessory.name,
                'serialNumber': f"hearth-{participant_id}",
                'reachable': True,
            },
        )

    def start(self) -> None:
        if self.register_with(self.server_node, self.endpoint):
            self.follow_server(self.server_node)

    def on_close(self, removed: bool) -> None:
        self.lifecycle.close(removed)
        self.status("grey", "ring", "closed")
