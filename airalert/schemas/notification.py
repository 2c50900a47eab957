"""Pydantic models for notification endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from airalert.schemas.subscription import CamelModel


class ViolationRead(CamelModel):
    metric: str
    value: float
    threshold: float
    severity: str
    unit: str = ""
    message: Optional[str] = None


class NotificationRead(CamelModel):
    """A notification as seen by one user, merged from the log and the inbox."""

    notification_id: str
    type: str = "threshold_exceeded"
    device_id: str
    metric: str
    value: float
    threshold: float
    severity: str
    subject: Optional[str] = None
    message: str
    violations: List[ViolationRead] = Field(default_factory=list)
    status: Optional[str] = None
    channels: List[str] = Field(default_factory=list)
    error: Optional[str] = None
    created_at: datetime
    read: bool = False
    read_at: Optional[datetime] = None
    source: str = "log"


class PaginationRead(CamelModel):
    total: int
    limit: int
    skip: int
    has_more: bool


class NotificationListResponse(CamelModel):
    success: bool = True
    notifications: List[NotificationRead]
    pagination: PaginationRead
    unread_count: int


class UnreadCountResponse(CamelModel):
    success: bool = True
    unread_count: int


class DeviceNotificationsResponse(CamelModel):
    success: bool = True
    notifications: List[NotificationRead]
    device_id: str


class SendTestNotificationRequest(CamelModel):
    user_id: str = Field(min_length=1)
    title: Optional[str] = None
    body: Optional[str] = None


class PushTicketRead(CamelModel):
    token: str
    ok: bool
    ticket_id: Optional[str] = None
    error: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)


class SendTestNotificationResponse(CamelModel):
    success: bool = True
    tickets: List[PushTicketRead]


class CooldownResetResponse(CamelModel):
    success: bool = True
    message: str
    cleared: int
