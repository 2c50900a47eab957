"""Tests for Celery background tasks."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest

from airalert.celery_app import celery_app
from airalert.db.models import SensorReading
from airalert.services.dispatcher import DispatchReport
from airalert.services.notification_store import NotificationStore
from airalert.tasks.alerts import poll_recent_readings


@pytest.fixture()
def task_session_factory(session_factory):
    sessions: list = []

    def create_session():
        session = session_factory()
        sessions.append(session)
        return session

    try:
        yield create_session
    finally:
        for session in sessions:
            session.close()


@pytest.fixture()
def readings(db_session, make_device):
    now = datetime.now(timezone.utc)
    make_device("D1")
    make_device("D2", name="Harbour Sensor")
    make_device("D3", name="Retired Sensor", is_active=False)
    db_session.add_all(
        [
            SensorReading(device_id="D1", recorded_at=now - timedelta(minutes=12), values={"pm2_5": 20.0}),
            SensorReading(device_id="D1", recorded_at=now - timedelta(minutes=2), values={"pm2_5": 150.5}),
            SensorReading(device_id="D2", recorded_at=now - timedelta(minutes=45), values={"pm2_5": 400.0}),
            SensorReading(device_id="D3", recorded_at=now - timedelta(minutes=1), values={"pm2_5": 400.0}),
        ]
    )
    db_session.commit()
    return now


def test_poll_dispatches_latest_fresh_reading_per_active_device(task_session_factory, readings):
    dispatcher = MagicMock()
    dispatcher.on_new_reading.side_effect = lambda event: DispatchReport(
        device_id=event.device_id, subscribers=1, notified=["NOTIF-1"]
    )

    with patch("airalert.tasks.alerts.SessionLocal", side_effect=task_session_factory), patch(
        "airalert.tasks.alerts.get_alert_dispatcher", return_value=dispatcher
    ):
        result = poll_recent_readings.run()

    assert result == {
        "devices_checked": 2,
        "readings_processed": 1,
        "notifications_created": 1,
        "suppressed": 0,
        "failed": 0,
    }
    [call] = dispatcher.on_new_reading.call_args_list
    event = call.args[0]
    assert event.device_id == "D1"
    assert event.values == {"pm2_5": 150.5}
    assert event.timestamp.tzinfo is not None


def test_poll_respects_custom_freshness_window(task_session_factory, readings):
    dispatcher = MagicMock()
    dispatcher.on_new_reading.return_value = DispatchReport(device_id="D2")

    with patch("airalert.tasks.alerts.SessionLocal", side_effect=task_session_factory), patch(
        "airalert.tasks.alerts.get_alert_dispatcher", return_value=dispatcher
    ):
        result = poll_recent_readings.run(freshness_minutes=60)

    assert result["readings_processed"] == 2
    assert sorted(c.args[0].device_id for c in dispatcher.on_new_reading.call_args_list) == ["D1", "D2"]


def test_poll_end_to_end_creates_notification_once(
    task_session_factory, session_factory, readings, dispatcher, make_subscriber
):
    make_subscriber("U1", "D1")

    with patch("airalert.tasks.alerts.SessionLocal", side_effect=task_session_factory), patch(
        "airalert.tasks.alerts.get_alert_dispatcher", return_value=dispatcher
    ):
        first = poll_recent_readings.run()
        second = poll_recent_readings.run()

    assert first["notifications_created"] == 1
    assert second["notifications_created"] == 0
    assert second["suppressed"] == 1
    with session_factory() as db:
        [item] = NotificationStore(db).list_for_user("U1").items
    assert item.metric == "pm2_5"
    assert item.value == 150.5


def test_beat_schedule_and_routing():
    schedule = celery_app.conf.beat_schedule["poll-recent-readings"]

    assert schedule["task"] == "airalert.tasks.alerts.poll_recent_readings"
    assert celery_app.conf.task_routes["airalert.tasks.alerts.*"] == {"queue": "alerts"}
