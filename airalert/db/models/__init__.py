"""Database models package."""
from airalert.db.models.device import Device, SensorReading
from airalert.db.models.notification import Notification, NotificationRecipient
from airalert.db.models.user import DeviceSubscription, User

__all__ = [
    "Device",
    "SensorReading",
    "User",
    "DeviceSubscription",
    "Notification",
    "NotificationRecipient",
]
