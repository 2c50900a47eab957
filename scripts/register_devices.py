"""Register the demo sensor devices."""
from __future__ import annotations

from sqlalchemy import select

from airalert.db.models import Device
from airalert.db.session import SessionLocal

DEMO_DEVICES = [
    {
        "device_id": "Device_A",
        "name": "Main Campus Sensor",
        "location": {"address": "Universiti Malaya", "latitude": 3.1209, "longitude": 101.6538},
    },
    {
        "device_id": "Device_B",
        "name": "Library Sensor",
        "location": {"address": "UM Library", "latitude": 3.1220, "longitude": 101.6550},
    },
]


def register_devices() -> None:
    db = SessionLocal()
    try:
        for entry in DEMO_DEVICES:
            device = db.scalar(select(Device).where(Device.device_id == entry["device_id"]))
            if device is None:
                db.add(Device(is_active=True, **entry))
                print(f"Created {entry['device_id']}")
            else:
                device.name = entry["name"]
                device.location = entry["location"]
                device.is_active = True
                print(f"Updated {entry['device_id']}")
        db.commit()
    finally:
        db.close()


if __name__ == "__main__":
    register_devices()
