"""Service layer for device subscriptions and push destinations."""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from airalert.core.alerting.thresholds import ThresholdConfig, default_thresholds, parse_thresholds
from airalert.db.models.user import DeviceSubscription, User
from airalert.utils.exceptions import NotFoundError


class SubscriptionService:
    """Encapsulates subscription and push-token data access operations."""

    def __init__(self, db: Session):
        self.db = db

    def get_or_create_user(self, user_id: str) -> User:
        """Return the user record, provisioning it on first contact."""

        user = self.db.get(User, user_id)
        if user is None:
            user = User(user_id=user_id, push_tokens=[], recent_notifications=[])
            self.db.add(user)
            self.db.flush()
            logger.info("Provisioned user record", user_id=user_id)
        return user

    def _get(self, user_id: str, device_id: str) -> Optional[DeviceSubscription]:
        return self.db.scalar(
            select(DeviceSubscription)
            .where(DeviceSubscription.user_id == user_id)
            .where(DeviceSubscription.device_id == device_id)
        )

    def subscribe(
        self,
        user_id: str,
        device_id: str,
        device_name: str | None = None,
        thresholds: Mapping[str, ThresholdConfig] | None = None,
    ) -> DeviceSubscription:
        """Create or reactivate a subscription, seeding default thresholds."""

        self.get_or_create_user(user_id)
        subscription = self._get(user_id, device_id)
        if subscription is None:
            subscription = DeviceSubscription(
                user_id=user_id,
                device_id=device_id,
                device_name=device_name,
                is_active=True,
                custom_thresholds=default_thresholds(),
            )
            self.db.add(subscription)
        else:
            subscription.is_active = True
            if device_name:
                subscription.device_name = device_name

        if thresholds:
            subscription.custom_thresholds = self._merge_thresholds(subscription.custom_thresholds, thresholds)

        self.db.commit()
        logger.info("Subscribed to device", user_id=user_id, device_id=device_id)
        return subscription

    def unsubscribe(self, user_id: str, device_id: str) -> bool:
        """Deactivate a subscription. Thresholds are kept for re-subscription."""

        subscription = self._get(user_id, device_id)
        if subscription is None:
            return False
        subscription.is_active = False
        self.db.commit()
        logger.info("Unsubscribed from device", user_id=user_id, device_id=device_id)
        return True

    def list_active(self, user_id: str) -> List[DeviceSubscription]:
        stmt = (
            select(DeviceSubscription)
            .where(DeviceSubscription.user_id == user_id)
            .where(DeviceSubscription.is_active.is_(True))
            .order_by(DeviceSubscription.device_id)
        )
        return list(self.db.scalars(stmt))

    def update_thresholds(
        self, user_id: str, device_id: str, thresholds: Mapping[str, ThresholdConfig]
    ) -> DeviceSubscription:
        """Merge ``thresholds`` into an existing subscription."""

        subscription = self._get(user_id, device_id)
        if subscription is None:
            raise NotFoundError(f"No subscription for device {device_id}")
        subscription.custom_thresholds = self._merge_thresholds(subscription.custom_thresholds, thresholds)
        self.db.commit()
        return subscription

    @staticmethod
    def _merge_thresholds(
        current: Mapping[str, Any] | None, updates: Mapping[str, ThresholdConfig]
    ) -> Dict[str, Dict[str, Any]]:
        merged = {metric: config.model_dump() for metric, config in parse_thresholds(current).items()}
        for metric, config in updates.items():
            merged[metric] = ThresholdConfig.model_validate(config).model_dump()
        return merged

    def register_push_token(self, user_id: str, token: str) -> bool:
        """Add a push destination; return ``False`` if it was already registered."""

        user = self.get_or_create_user(user_id)
        added = user.add_push_token(token)
        self.db.commit()
        return added

    def get_push_tokens(self, user_id: str) -> List[str]:
        user = self.db.get(User, user_id)
        return list(user.push_tokens or []) if user else []

    def prune_push_tokens(self, user_id: str, tokens: set[str]) -> int:
        """Forget destinations the push transport reported as unregistered."""

        user = self.db.get(User, user_id)
        if user is None or not tokens:
            return 0
        removed = user.remove_push_tokens(tokens)
        self.db.commit()
        if removed:
            logger.info("Removed unregistered push tokens", user_id=user_id, removed=removed)
        return removed
