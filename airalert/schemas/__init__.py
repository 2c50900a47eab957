"""Pydantic schemas package."""

from airalert.schemas.notification import (
    CooldownResetResponse,
    DeviceNotificationsResponse,
    NotificationListResponse,
    NotificationRead,
    PaginationRead,
    PushTicketRead,
    SendTestNotificationRequest,
    SendTestNotificationResponse,
    UnreadCountResponse,
    ViolationRead,
)
from airalert.schemas.reading import ReadingEvent
from airalert.schemas.subscription import (
    RegisterTokenRequest,
    SubscribeRequest,
    SubscriptionListResponse,
    SubscriptionRead,
    SuccessResponse,
    ThresholdUpdateRequest,
    UnsubscribeRequest,
)

__all__ = [
    "CooldownResetResponse",
    "DeviceNotificationsResponse",
    "NotificationListResponse",
    "NotificationRead",
    "PaginationRead",
    "PushTicketRead",
    "SendTestNotificationRequest",
    "SendTestNotificationResponse",
    "UnreadCountResponse",
    "ViolationRead",
    "ReadingEvent",
    "RegisterTokenRequest",
    "SubscribeRequest",
    "SubscriptionListResponse",
    "SubscriptionRead",
    "SuccessResponse",
    "ThresholdUpdateRequest",
    "UnsubscribeRequest",
]
