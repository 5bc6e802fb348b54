"""
Structured Log Event Types
==========================

Bounded Context: Observability Event Taxonomy

This module defines typed event names for structured logging.

Design:
- Enum-based (prevents typos, enables autocomplete)
- Hierarchical naming (namespace.category.action)
- Searchable in log aggregators (Elasticsearch, CloudWatch Insights)

Event Naming Convention:
    <component>.<category>.<action>

    component: coordinator, participant, resource, mqtt, error
    category: registered, timeout, start
    action: success, failed, rejected

Example Log Query (CloudWatch Insights):
    fields @timestamp, event, message, metadata.participant_id
    | filter event = "participant.timeout"
    | stats count() by metadata.coordinator
"""

from enum import Enum


class LogEvent(str, Enum):
    """
    Typed log event names for structured logging.

    Categories:
    - coordinator.*: Startup gate transitions
    - participant.*: Registration events
    - resource.*: Underlying resource lifecycle
    - mqtt.*: MQTT broker interactions
    - error.*: Error conditions
    """

    # ========== Coordinator Events ==========
    COORDINATOR_WAITING = "coordinator.waiting"
    """Gate armed, waiting for participants."""

    COORDINATOR_STARTING = "coordinator.starting"
    """Gate opened, start procedure launched."""

    COORDINATOR_DEGRADED = "coordinator.degraded"
    """Gate opened by timeout with missing participants."""

    COORDINATOR_CLOSED = "coordinator.closed"
    """Coordinator torn down."""

    # ========== Participant Events ==========
    PARTICIPANT_REGISTERED = "participant.registered"
    """Participant registered while the gate was waiting."""

    PARTICIPANT_LATE = "participant.late"
    """Participant registered after the gate opened."""

    PARTICIPANT_DUPLICATE = "participant.duplicate"
    """Participant registered twice."""

    PARTICIPANT_UNKNOWN = "participant.unknown"
    """Registration from an id outside the resolved set."""

    PARTICIPANT_TIMEOUT = "participant.timeout"
    """Participant never registered before the timeout."""

    # ========== Resource Events ==========
    RESOURCE_STARTED = "resource.started"
    """Underlying resource started."""

    RESOURCE_STOPPED = "resource.stopped"
    """Underlying resource stopped (state preserved)."""

    RESOURCE_DESTROYED = "resource.destroyed"
    """Underlying resource stopped and storage namespace erased."""

    # ========== MQTT Events ==========
    MQTT_CONNECTED = "mqtt.connected"
    """MQTT broker connection established."""

    MQTT_DISCONNECTED = "mqtt.disconnected"
    """MQTT broker connection lost."""

    MQTT_PUBLISH_SUCCESS = "mqtt.publish.success"
    """Message successfully published to broker."""

    MQTT_PUBLISH_FAILED = "mqtt.publish.failed"
    """Message publication failed."""

    # ========== Error Events ==========
    RESOURCE_START_ERROR = "error.resource_start"
    """Underlying resource rejected its start."""

    RESOURCE_STOP_ERROR = "error.resource_stop"
    """Underlying resource failed to stop (teardown continues)."""

    REGISTRATION_ERROR = "error.registration"
    """Attach hook or map rejected a registration."""

    MQTT_CONNECTION_ERROR = "error.mqtt_connection"
    """Failed to connect to MQTT broker."""

    MQTT_PUBLISH_ERROR = "error.mqtt_publish"
    """Error during message publication."""


COORDINATOR_EVENTS = {
    LogEvent.COORDINATOR_WAITING,
    LogEvent.COORDINATOR_STARTING,
    LogEvent.COORDINATOR_DEGRADED,
    LogEvent.COORDINATOR_CLOSED,
}

PARTICIPANT_EVENTS = {
    LogEvent.PARTICIPANT_REGISTERED,
    LogEvent.PARTICIPANT_LATE,
    LogEvent.PARTICIPANT_DUPLICATE,
    LogEvent.PARTICIPANT_UNKNOWN,
    LogEvent.PARTICIPANT_TIMEOUT,
}

ERROR_EVENTS = {
    LogEvent.RESOURCE_START_ERROR,
    LogEvent.RESOURCE_STOP_ERROR,
    LogEvent.REGISTRATION_ERROR,
    LogEvent.MQTT_CONNECTION_ERROR,
    LogEvent.MQTT_PUBLISH_ERROR,
}
