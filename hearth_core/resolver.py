"""
Dependency Set Resolver - Which participants must a coordinator wait for.

Runs synchronously at coordinator construction, before any node performs
asynchronous setup, over the complete (closed) list of declared node
configurations. Seeding the full participant set up front means a child
can never register before its coordinator exists to observe it.
"""

from typing import Callable, Iterable, List

from hearth_core.config import (
    AGGREGATED,
    AGGREGATOR_NODE,
    CONTROLLER_NODE,
    DEVICE_NODE,
    STANDALONE,
    NodeConfig,
)

ParticipantPredicate = Callable[[NodeConfig], bool]


def resolve_participants(
    configs: Iterable[NodeConfig],
    predicate: ParticipantPredicate,
) -> List[str]:
    """
    Compute the ordered participant identifier set for one coordinator.

    Args:
        configs: Every declared node configuration of the flow
        predicate: Selects configurations that participate in this coordinator

    Returns:
        Participant ids in declaration order (deduplicated, disabled nodes skipped)
    """
    participants: List[str] = []
    for config in configs:
        if config.disabled:
            continue
        if predicate(config) and config.id not in participants:
            participants.append(config.id)
    return participants


def server_participants(server_id: str) -> ParticipantPredicate:
    """
    Participants of a server: controllers, aggregators and standalone
    accessories whose `server` reference is `server_id`.

    Aggregated accessories register with their aggregator, not the server.
    """

    def predicate(config: NodeConfig) -> bool:
        if config.server != server_id:
            return False
        if config.type in (CONTROLLER_NODE, AGGREGATOR_NODE):
            return True
        return config.type == DEVICE_NODE and config.device_category == STANDALONE

    return predicate


def aggregator_participants(aggregator_id: str) -> ParticipantPredicate:
    """Participants of an aggregator: aggregated accessories bridged by it."""

    def predicate(config: NodeConfig) -> bool:
        return (
            config.type == DEVICE_NODE
            and config.device_category == AGGREGATED
            and config.aggregator == aggregator_id
        )

    return predicate
