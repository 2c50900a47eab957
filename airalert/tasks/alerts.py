"""Celery tasks feeding polled sensor readings into the alert dispatcher."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

from loguru import logger
from sqlalchemy import select

from airalert.celery_app import celery_app
from airalert.config import settings
from airalert.db.models.device import Device, SensorReading
from airalert.db.session import SessionLocal
from airalert.schemas.reading import ReadingEvent
from airalert.services.dispatcher import get_alert_dispatcher


@celery_app.task(name="airalert.tasks.alerts.poll_recent_readings")
def poll_recent_readings(freshness_minutes: int | None = None) -> dict[str, int]:
    """Evaluate the latest fresh reading of every active device.

    Readings older than the freshness window are ignored so that a device
    that went offline does not keep alerting on stale data.
    """

    window = freshness_minutes or settings.READING_FRESHNESS_MINUTES
    cutoff = datetime.now(timezone.utc) - timedelta(minutes=window)

    db = SessionLocal()
    try:
        devices = db.scalars(
            select(Device).where(Device.is_active.is_(True)).order_by(Device.device_id)
        ).all()

        events: list[ReadingEvent] = []
        for device in devices:
            reading = db.scalars(
                select(SensorReading)
                .where(SensorReading.device_id == device.device_id)
                .where(SensorReading.recorded_at >= cutoff)
                .order_by(SensorReading.recorded_at.desc())
                .limit(1)
            ).first()
            if reading is None:
                continue
            events.append(
                ReadingEvent(
                    device_id=reading.device_id,
                    timestamp=reading.recorded_at,
                    values=reading.values or {},
                )
            )
    finally:
        db.close()

    dispatcher = get_alert_dispatcher()
    notified = 0
    suppressed = 0
    failed = 0
    for event in events:
        report = dispatcher.on_new_reading(event)
        notified += len(report.notified)
        suppressed += report.suppressed
        failed += report.failed

    logger.info(
        "Reading poll completed",
        devices=len(devices),
        fresh_readings=len(events),
        notified=notified,
        suppressed=suppressed,
    )

    return {
        "devices_checked": len(devices),
        "readings_processed": len(events),
        "notifications_created": notified,
        "suppressed": suppressed,
        "failed": failed,
    }
