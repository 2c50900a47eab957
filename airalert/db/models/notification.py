"""Notification log models."""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Float, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from airalert.db.base import Base
from airalert.db.types import JSONDocument, StringList


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Notification(Base):
    """One dispatched alert. Immutable apart from recipient state."""

    __tablename__ = "notifications"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    notification_id = Column(String(64), unique=True, nullable=False, index=True)

    # Trigger
    trigger_type = Column(String(50), nullable=False, default="threshold_exceeded")
    device_id = Column(String(100), nullable=False, index=True)
    metric = Column(String(50), nullable=False)
    value = Column(Float, nullable=False)
    threshold = Column(Float, nullable=False)
    severity = Column(String(20), nullable=False)

    # Content
    subject = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    violations = Column(JSONDocument, default=list)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)

    recipients = relationship(
        "NotificationRecipient",
        back_populates="notification",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class NotificationRecipient(Base):
    """Delivery and read state of a notification for a single user."""

    __tablename__ = "notification_recipients"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    notification_pk = Column(
        UUID(as_uuid=True), ForeignKey("notifications.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(String(128), nullable=False, index=True)

    channels = Column(StringList, default=list)  # inApp, push
    status = Column(String(20), nullable=False, default="pending")  # pending, sent, failed
    sent_at = Column(DateTime(timezone=True))
    read_at = Column(DateTime(timezone=True))
    error = Column(Text)

    notification = relationship("Notification", back_populates="recipients")
