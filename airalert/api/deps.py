"""Shared API dependencies."""
from __future__ import annotations

from fastapi import Depends
from sqlalchemy.orm import Session

from airalert.core.alerting.cooldown import CooldownTracker
from airalert.db.session import SessionLocal
from airalert.services.dispatcher import cooldown_tracker
from airalert.services.notification_store import NotificationStore
from airalert.services.push_gateway import ExpoPushClient
from airalert.services.subscriptions import SubscriptionService

_push_client_singleton: ExpoPushClient | None = None


def get_db() -> Session:
    """Yield a database session for request lifetime."""

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_notification_store(db: Session = Depends(get_db)) -> NotificationStore:
    return NotificationStore(db)


def get_subscription_service(db: Session = Depends(get_db)) -> SubscriptionService:
    return SubscriptionService(db)


def get_push_client() -> ExpoPushClient:
    """Return a cached push gateway client."""

    global _push_client_singleton
    if _push_client_singleton is None:
        _push_client_singleton = ExpoPushClient()
    return _push_client_singleton


def get_cooldown_tracker() -> CooldownTracker:
    return cooldown_tracker
