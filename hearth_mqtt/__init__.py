"""
Hearth MQTT Communication Package
=================================

Bounded Context: Messaging and observability for the bridge

This package provides MQTT-based status publishing and structured logging
for the Hearth bridge.

Architecture:
- schemas/: Immutable data structures (status changes, pairing info)
- connection.py: Broker session shared by publisher and control plane
- publishers/: Message producers (StatusPublisher)
- logging/: Structured JSON logging for observability

Public API
----------
Schemas:
    Timestamp, DeviceStatus, StatusChangeMessage, PairingInfo

Connection:
    MQTTConnection

Publishers:
    StatusPublisher

Logging:
    LogEvent, StructuredLogger, create_logger
"""

__version__ = "1.0.0"

from .schemas import (
    Timestamp,
    DeviceStatus,
    StatusChangeMessage,
    PairingInfo,
)

from .connection import MQTTConnection

from .publishers import (
    StatusPublisher,
)

from .logging import (
    LogEvent,
    StructuredLogger,
    create_logger,
)

__all__ = [
    '__version__',
    'Timestamp',
    'DeviceStatus',
    'StatusChangeMessage',
    'PairingInfo',
    'MQTTConnection',
    'StatusPublisher',
    'LogEvent',
    'StructuredLogger',
    'create_logger',
]
