"""User and device subscription models."""
import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from airalert.db.base import Base
from airalert.db.types import JSONDocument, StringList


class User(Base):
    """Alert recipient, identified by the opaque id issued by the auth provider."""

    __tablename__ = "users"

    user_id = Column(String(128), primary_key=True)
    email = Column(String(255))
    name = Column(String(255))

    push_tokens = Column(StringList, default=list)
    # Bounded newest-first copy of the user's notifications, rebuilt from the log
    recent_notifications = Column(JSONDocument, default=list)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    subscriptions = relationship(
        "DeviceSubscription", back_populates="user", cascade="all, delete-orphan"
    )

    def add_push_token(self, token: str) -> bool:
        """Register a push destination; return ``False`` if already known."""

        tokens = list(self.push_tokens or [])
        if token in tokens:
            return False
        self.push_tokens = tokens + [token]
        return True

    def remove_push_tokens(self, tokens: set[str]) -> int:
        """Drop the given push destinations and return how many were removed."""

        current = list(self.push_tokens or [])
        kept = [token for token in current if token not in tokens]
        self.push_tokens = kept
        return len(current) - len(kept)


class DeviceSubscription(Base):
    """A user's opt-in to alerts for one device, with per-pollutant thresholds."""

    __tablename__ = "device_subscriptions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(
        String(128), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True
    )
    device_id = Column(String(100), nullable=False, index=True)
    device_name = Column(String(255))
    is_active = Column(Boolean, default=True, nullable=False)
    custom_thresholds = Column(JSONDocument, default=dict)  # { pm2_5: {enabled, warning, critical, unit} }

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="subscriptions")

    __table_args__ = (
        UniqueConstraint("user_id", "device_id", name="uq_device_subscriptions_user_device"),
    )
