import pytest

from hearth_mqtt.schemas import DeviceStatus, PairingInfo, StatusChangeMessage


def test_level_bounds():
    with pytest.raises(ValueError):
        DeviceStatus(on=True, level=255)
    assert DeviceStatus(on=True).to_dict() == {"on": True}


def test_pairing_info_admin_shape():
    info = PairingInfo(qr_code="MT:ABC", manual_pairing_code="3840-20202021")

    assert info.to_dict() == {
        "commissioned": False,
        "qrcode": "MT:ABC",
        "qrcodeUrl": "https://project-chip.github.io/connectedhomeip/qrcode.html?data=MT:ABC",
        "manualPairingCode": "3840-20202021",
    }


def test_status_change_message_requires_fields():
    with pytest.raises(ValueError):
        StatusChangeMessage.from_dict({"name": "lamp", "status": {"on": True}})

    msg = StatusChangeMessage.from_dict({
        "type": "DimmableLightDevice",
        "name": "Floor lamp",
        "id": "lamp",
        "status": {"on": True, "level": 12},
    })
    assert msg.status == DeviceStatus(on=True, level=12)
    assert msg.to_dict()["schema_version"] == "1.0"
