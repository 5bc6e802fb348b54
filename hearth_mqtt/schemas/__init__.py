"""
Hearth MQTT Schemas
===================

Bounded Context: Data Structures

This module defines immutable, typed data structures for MQTT messages.

Design:
- Frozen dataclasses (immutability)
- to_dict() for JSON serialization
- from_dict() for deserialization
- Schema versioning for evolution

Public API
----------
Common Types:
    Timestamp: ISO 8601 timestamp wrapper

Status Types:
    DeviceStatus: on/off + level of an accessory
    StatusChangeMessage: accessory status change
    PairingInfo: commissioning data of an endpoint
"""

from .common import Timestamp
from .status import LEVEL_MAX, DeviceStatus, PairingInfo, StatusChangeMessage

__all__ = [
    'Timestamp',
    'LEVEL_MAX',
    'DeviceStatus',
    'PairingInfo',
    'StatusChangeMessage',
]
