"""API tests for subscriptions, the notification inbox and diagnostics."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from airalert.core.alerting.cooldown import CooldownKey
from airalert.db.models import Notification, NotificationRecipient, User
from airalert.services.notification_store import NotificationStore
from tests.conftest import VALID_TOKEN

API = "/api/v1"
T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def seeded_inbox(db_session):
    db_session.add(User(user_id="U1", push_tokens=[], recent_notifications=[]))
    db_session.commit()
    store = NotificationStore(db_session)
    for index, device_id in enumerate(["D1", "D2", "D1"]):
        store.append(
            Notification(
                notification_id=f"NOTIF-{index}",
                device_id=device_id,
                metric="pm2_5",
                value=150.5,
                threshold=150.0,
                severity="critical",
                subject=f"Air Quality Alert: {device_id}",
                message="PM2.5 is critical",
                violations=[],
                created_at=T0 + timedelta(minutes=index),
                recipients=[NotificationRecipient(user_id="U1", channels=["inApp"], status="sent")],
            )
        )
    return store


def test_subscribe_seeds_default_thresholds(client):
    response = client.post(f"{API}/notifications/subscribe", json={"userId": "U1", "deviceId": "D1"})

    assert response.status_code == 200
    assert response.json()["success"] is True

    listing = client.get(f"{API}/notifications/subscriptions/U1").json()
    [subscription] = listing["subscriptions"]
    assert subscription["deviceId"] == "D1"
    assert subscription["isActive"] is True
    assert subscription["customThresholds"]["pm2_5"]["warning"] == 35.0
    assert subscription["customThresholds"]["temperature_c"]["enabled"] is False


def test_subscribe_migrates_legacy_threshold_payload(client):
    client.post(
        f"{API}/notifications/subscribe",
        json={"userId": "U1", "deviceId": "D1", "customThresholds": {"pm2_5": {"max": 100}}},
    )

    thresholds = client.get(f"{API}/notifications/subscriptions/U1").json()["subscriptions"][0]["customThresholds"]
    assert thresholds["pm2_5"]["critical"] == 100
    assert thresholds["pm2_5"]["warning"] == pytest.approx(70)
    assert thresholds["pm10"]["critical"] == 255.0


def test_unsubscribe_then_resubscribe(client):
    client.post(f"{API}/notifications/subscribe", json={"userId": "U1", "deviceId": "D1"})

    response = client.post(f"{API}/notifications/unsubscribe", json={"userId": "U1", "deviceId": "D1"})
    assert response.json()["success"] is True
    assert client.get(f"{API}/notifications/subscriptions/U1").json()["subscriptions"] == []

    again = client.post(f"{API}/notifications/unsubscribe", json={"userId": "U1", "deviceId": "D9"})
    assert again.json()["success"] is False

    client.post(f"{API}/notifications/subscribe", json={"userId": "U1", "deviceId": "D1"})
    assert len(client.get(f"{API}/notifications/subscriptions/U1").json()["subscriptions"]) == 1


def test_unknown_user_has_no_subscriptions(client):
    response = client.get(f"{API}/notifications/subscriptions/nobody")

    assert response.status_code == 200
    assert response.json() == {"success": True, "subscriptions": []}


def test_subscribe_requires_identifiers(client):
    response = client.post(f"{API}/notifications/subscribe", json={"userId": "U1"})

    assert response.status_code == 422
    assert response.json()["message"] == "Validation failed"


def test_update_thresholds(client):
    client.post(f"{API}/notifications/subscribe", json={"userId": "U1", "deviceId": "D1"})

    response = client.put(
        f"{API}/notifications/subscriptions/U1/D1/thresholds",
        json={"thresholds": {"pm2_5": {"enabled": True, "warning": 20, "critical": 40, "unit": "µg/m³"}}},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["customThresholds"]["pm2_5"]["critical"] == 40
    assert body["customThresholds"]["co"]["critical"] == 15.0


def test_update_thresholds_validation_and_missing_subscription(client):
    missing = client.put(
        f"{API}/notifications/subscriptions/U1/D1/thresholds",
        json={"thresholds": {"pm2_5": {"warning": 20, "critical": 40}}},
    )
    assert missing.status_code == 404

    client.post(f"{API}/notifications/subscribe", json={"userId": "U1", "deviceId": "D1"})
    inverted = client.put(
        f"{API}/notifications/subscriptions/U1/D1/thresholds",
        json={"thresholds": {"pm2_5": {"warning": 80, "critical": 40}}},
    )
    assert inverted.status_code == 422


def test_register_push_token_is_idempotent(client, db_session):
    first = client.post(f"{API}/notifications/register", json={"userId": "U1", "token": VALID_TOKEN})
    second = client.post(f"{API}/notifications/register", json={"userId": "U1", "token": VALID_TOKEN})

    assert first.json()["message"] == "Push token registered"
    assert second.json()["message"] == "Push token already registered"
    db_session.expire_all()
    assert db_session.get(User, "U1").push_tokens == [VALID_TOKEN]


def test_register_requires_token(client):
    assert client.post(f"{API}/notifications/register", json={"userId": "U1"}).status_code == 422


def test_list_notifications_pagination(client, seeded_inbox):
    response = client.get(f"{API}/notifications/U1/notifications", params={"limit": 2, "skip": 0})

    assert response.status_code == 200
    body = response.json()
    assert [n["notificationId"] for n in body["notifications"]] == ["NOTIF-2", "NOTIF-1"]
    assert body["pagination"] == {"total": 3, "limit": 2, "skip": 0, "hasMore": True}
    assert body["unreadCount"] == 3
    assert body["notifications"][0]["deviceId"] == "D1"
    assert body["notifications"][0]["read"] is False


def test_mark_read_and_unread_filter(client, seeded_inbox):
    assert client.patch(f"{API}/notifications/U1/notifications/NOTIF-1/read").status_code == 200

    unread = client.get(f"{API}/notifications/U1/notifications", params={"unreadOnly": "true"}).json()
    assert [n["notificationId"] for n in unread["notifications"]] == ["NOTIF-2", "NOTIF-0"]
    assert client.get(f"{API}/notifications/U1/notifications/unread-count").json() == {
        "success": True,
        "unreadCount": 2,
    }


def test_mark_read_unknown_notification_is_404(client, seeded_inbox):
    assert client.patch(f"{API}/notifications/U1/notifications/NOTIF-404/read").status_code == 404


def test_mark_all_read(client, seeded_inbox):
    response = client.patch(f"{API}/notifications/U1/notifications/mark-all-read")

    assert response.status_code == 200
    assert client.get(f"{API}/notifications/U1/notifications/unread-count").json()["unreadCount"] == 0


def test_by_device_listing(client, seeded_inbox):
    body = client.get(f"{API}/notifications/U1/notifications/by-device/D1").json()

    assert body["deviceId"] == "D1"
    assert [n["notificationId"] for n in body["notifications"]] == ["NOTIF-2", "NOTIF-0"]


def test_delete_then_clear_all(client, seeded_inbox):
    assert client.delete(f"{API}/notifications/U1/notifications/NOTIF-1").status_code == 200
    assert client.delete(f"{API}/notifications/U1/notifications/NOTIF-1").status_code == 404

    ids = [n["notificationId"] for n in client.get(f"{API}/notifications/U1/notifications").json()["notifications"]]
    assert "NOTIF-1" not in ids

    assert client.delete(f"{API}/notifications/U1/notifications").status_code == 200
    body = client.get(f"{API}/notifications/U1/notifications").json()
    assert body["notifications"] == []
    assert body["unreadCount"] == 0
    assert body["pagination"]["total"] == 0


def test_send_test_notification_requires_tokens(client):
    response = client.post(f"{API}/test-notification/send", json={"userId": "U1"})

    assert response.status_code == 404


def test_send_test_notification_rejects_invalid_tokens(client):
    client.post(f"{API}/notifications/register", json={"userId": "U1", "token": "not-an-expo-token"})

    response = client.post(f"{API}/test-notification/send", json={"userId": "U1"})

    assert response.status_code == 400


def test_send_test_notification_returns_tickets(client, push_client):
    client.post(f"{API}/notifications/register", json={"userId": "U1", "token": VALID_TOKEN})

    response = client.post(
        f"{API}/test-notification/send",
        json={"userId": "U1", "title": "Hello", "body": "Testing"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["tickets"][0]["token"] == VALID_TOKEN
    assert body["tickets"][0]["ticketId"] == "ticket-ok"
    assert push_client.sent[0].title == "Hello"
    # Test pushes are not logged as notifications
    assert client.get(f"{API}/notifications/U1/notifications").json()["notifications"] == []


def test_reset_cooldowns(client, cooldowns):
    cooldowns.record_dispatch(CooldownKey("U1", "D1", "critical"), T0)

    response = client.post(f"{API}/test-notification/reset-cooldowns")

    assert response.json() == {"success": True, "message": "Cleared 1 cooldown entries", "cleared": 1}
    assert len(cooldowns) == 0


@pytest.mark.asyncio
async def test_unread_count_over_async_transport(async_client, seeded_inbox):
    response = await async_client.get(f"{API}/notifications/U1/notifications/unread-count")

    assert response.status_code == 200
    assert response.json()["unreadCount"] == 3


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
