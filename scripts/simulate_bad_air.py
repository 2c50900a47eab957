"""Inject a hazardous reading to exercise the alert pipeline end to end."""
from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime, timezone

import redis
from sqlalchemy import select

from airalert.config import settings
from airalert.db.models import Device, SensorReading
from airalert.db.session import SessionLocal


def build_hazardous_reading(device: Device, recorded_at: datetime) -> dict:
    """Return an ingestion payload breaching every default critical level."""

    return {
        "metadata": {
            "device_id": device.device_id,
            "topic": f"udara/sensor/{device.device_id}",
            "timestamp_server": recorded_at.isoformat(),
            "location": (device.location or {}).get("address", "Simulated Location"),
        },
        "pm2_5": 150.5,
        "pm10": 300.0,
        "pm1_0": 100.0,
        "alphasense_voltages": {
            "CO_ppm": 25.0,
            "NO2_ppb": 400.0,
            "SO2_ppb": 400.0,
            "O3_ppb": 180.0,
        },
        "temperature_c": 32.5,
        "humidity_pct": 65.0,
        "pressure_hpa": 1012.0,
    }


def main() -> int:
    parser = argparse.ArgumentParser(description="Simulate a hazardous air quality reading")
    parser.add_argument("--device-id", default="Device_B", help="Target device identifier")
    parser.add_argument(
        "--mode",
        choices=["publish", "insert", "both"],
        default="both",
        help="Publish to the live feed, insert for the poller, or both",
    )
    args = parser.parse_args()

    recorded_at = datetime.now(timezone.utc)
    db = SessionLocal()
    try:
        device = db.scalar(select(Device).where(Device.device_id == args.device_id))
        if device is None:
            print(f"Device {args.device_id} not found")
            return 1
        print(f"Target device: {device.name} ({device.device_id})")

        payload = build_hazardous_reading(device, recorded_at)
        if args.mode in ("insert", "both"):
            db.add(
                SensorReading(
                    device_id=device.device_id,
                    recorded_at=recorded_at,
                    values={
                        "pm2_5": payload["pm2_5"],
                        "pm10": payload["pm10"],
                        "co": payload["alphasense_voltages"]["CO_ppm"],
                        "no2": payload["alphasense_voltages"]["NO2_ppb"],
                        "so2": payload["alphasense_voltages"]["SO2_ppb"],
                        "o3": payload["alphasense_voltages"]["O3_ppb"],
                        "temperature_c": payload["temperature_c"],
                        "humidity_pct": payload["humidity_pct"],
                    },
                )
            )
            db.commit()
            print("Hazardous reading stored for the next poll")
    finally:
        db.close()

    if args.mode in ("publish", "both"):
        client = redis.Redis.from_url(str(settings.REDIS_URL))
        receivers = client.publish(settings.READING_FEED_CHANNEL, json.dumps(payload))
        print(f"Hazardous reading published to {settings.READING_FEED_CHANNEL} ({receivers} listeners)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
