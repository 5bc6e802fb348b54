"""
Status and Pairing Message Schemas
==================================

Bounded Context: Accessory status and commissioning data

This module defines the messages exchanged about bridged accessories:

- DeviceStatus: on/off + optional level of one accessory
- StatusChangeMessage: emitted whenever an accessory (or a remote accessory
  seen by a controller) changes state
- PairingInfo: commissioning data of a started endpoint

Message Flow:
    Accessory -> device node "status_change" -> StatusPublisher -> MQTT
                                             -> device-status node
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from .common import Timestamp

LEVEL_MAX = 254
QR_CODE_URL = "https://project-chip.github.io/connectedhomeip/qrcode.html?data={}"


@dataclass(frozen=True)
class DeviceStatus:
    """
    Accessory state.

    Attributes:
        on: On/off state (None = unknown)
        level: Brightness level [0, 254] for dimmable devices (None otherwise)
    """
    on: Optional[bool] = None
    level: Optional[int] = None

    def __post_init__(self):
        """Validate invariants."""
        if self.level is not None and not 0 <= self.level <= LEVEL_MAX:
            raise ValueError(f"Level must be in [0, {LEVEL_MAX}], got {self.level}")

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'on': self.on}
        if self.level is not None:
            data['level'] = self.level
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DeviceStatus':
        level = data.get('level')
        return cls(
            on=data.get('on'),
            level=int(level) if level is not None else None,
        )


@dataclass(frozen=True)
class StatusChangeMessage:
    """
    Status change of one accessory.

    Attributes:
        type: Device type (e.g. "DimmableLightDevice")
        name: Accessory display name
        id: Node id (local accessory) or endpoint number (remote accessory)
        status: New accessory state
        timestamp: ISO 8601 timestamp of the change

    Example:
        >>> msg = StatusChangeMessage(
        ...     type="OnOffLightDevice",
        ...     name="Kitchen",
        ...     id="lamp_1",
        ...     status=DeviceStatus(on=True),
        ... )
        >>> msg.to_dict()['status']
        {'on': True}
    """
    type: str
    name: str
    id: Union[str, int, None]
    status: DeviceStatus
    timestamp: Timestamp = field(default_factory=Timestamp.now)
    schema_version: str = "1.0"

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            'schema_version': self.schema_version,
            'timestamp': self.timestamp.to_dict(),
            'type': self.type,
            'name': self.name,
            'id': self.id,
            'status': self.status.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StatusChangeMessage':
        """Deserialize from dict.

        Raises:
            ValueError: If required fields missing or invalid
        """
        try:
            return cls(
                type=str(data['type']),
                name=str(data['name']),
                id=data.get('id'),
                status=DeviceStatus.from_dict(data['status']),
                timestamp=Timestamp(value=data.get('timestamp') or Timestamp.now().value),
                schema_version=str(data.get('schema_version', "1.0")),
            )
        except KeyError as e:
            raise ValueError(f"Missing required StatusChangeMessage field: {e}")
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid StatusChangeMessage data: {e}")


@dataclass(frozen=True)
class PairingInfo:
    """
    Commissioning data of a started endpoint.

    Attributes:
        qr_code: QR payload ("MT:...")
        manual_pairing_code: Numeric code typed into a controller app
        commissioned: True once at least one fabric is paired
    """
    qr_code: str
    manual_pairing_code: str
    commissioned: bool = False

    @property
    def qr_code_url(self) -> str:
        return QR_CODE_URL.format(self.qr_code)

    def to_dict(self) -> Dict[str, Any]:
        """Admin API shape."""
        return {
            'commissioned': self.commissioned,
            'qrcode': self.qr_code,
            'qrcodeUrl': self.qr_code_url,
            'manualPairingCode': self.manual_pairing_code,
        }
