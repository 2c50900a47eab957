"""Alert dispatcher: turns a new reading into per-user notifications.

Both ingestion feeds (the Celery poller and the Redis live feed) call
:meth:`AlertDispatcher.on_new_reading`. For every active subscriber of the
reading's device the worst violation is evaluated, gated by the cooldown
tracker, written to the notification log and inbox, then pushed.
"""
from __future__ import annotations

import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Callable, List, Optional, Sequence, Tuple

import httpx
from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from airalert.config import settings
from airalert.core.alerting.cooldown import CooldownKey, CooldownTracker
from airalert.core.alerting.evaluator import Violation, find_violations
from airalert.core.alerting.thresholds import display_name
from airalert.db.models.device import Device
from airalert.db.models.notification import Notification, NotificationRecipient
from airalert.db.models.user import DeviceSubscription, User
from airalert.schemas.reading import ReadingEvent
from airalert.services.notification_store import NotificationStore
from airalert.services.push_gateway import ExpoPushClient, PushMessage, is_expo_push_token
from airalert.services.subscriptions import SubscriptionService
from airalert.utils.exceptions import PersistenceError, PushGatewayError
from airalert.utils.retry import log_retry

TRIGGER_THRESHOLD_EXCEEDED = "threshold_exceeded"

# Recipient delivery states. "sent" also covers in-app-only delivery.
STATUS_PENDING = "pending"
STATUS_SENT = "sent"
STATUS_FAILED = "failed"

CHANNEL_IN_APP = "inApp"
CHANNEL_PUSH = "push"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_notification_id() -> str:
    return f"NOTIF-{uuid.uuid4().hex}"


@dataclass(frozen=True)
class DeviceTarget:
    device_id: str
    name: str


@dataclass(frozen=True)
class Subscriber:
    user_id: str
    thresholds: dict
    push_tokens: Tuple[str, ...] = ()


@dataclass
class DispatchReport:
    """Summary of what one reading produced."""

    device_id: str
    subscribers: int = 0
    notified: List[str] = field(default_factory=list)
    suppressed: int = 0
    failed: int = 0


def _format_measure(value: float, unit: str) -> str:
    return f"{value:g} {unit}".strip()


def build_content(device: DeviceTarget, violations: Sequence[Violation]) -> Tuple[str, str, List[dict]]:
    """Return subject, message and violation descriptors for an alert."""

    driver = violations[0]
    subject = f"Air Quality Alert: {device.name}"
    message = (
        f"{display_name(driver.metric)} at {device.name} is {driver.severity.value} "
        f"({_format_measure(driver.value, driver.unit)}). Limit is {driver.threshold:g}."
    )
    if len(violations) > 1:
        others = len(violations) - 1
        message += f" {others} other pollutant{'s' if others > 1 else ''} also above threshold."

    descriptors = []
    for violation in violations:
        descriptor = violation.as_dict()
        descriptor["message"] = (
            f"{display_name(violation.metric)} is {violation.severity.value} "
            f"({_format_measure(violation.value, violation.unit)}). Limit is {violation.threshold:g}."
        )
        descriptors.append(descriptor)
    return subject, message, descriptors


class AlertDispatcher:
    """Evaluate subscribers of a device and dispatch consolidated alerts."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        push_client: ExpoPushClient,
        cooldowns: CooldownTracker,
        *,
        max_workers: int | None = None,
        persist_attempts: int | None = None,
        retry_wait: Any = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.push_client = push_client
        self.cooldowns = cooldowns
        self.max_workers = max_workers or settings.DISPATCH_MAX_WORKERS
        self.persist_attempts = persist_attempts or settings.PERSIST_MAX_ATTEMPTS
        self.retry_wait = retry_wait or wait_exponential(multiplier=0.5, min=0.5, max=4)
        self.clock = clock

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------
    def on_new_reading(self, reading: ReadingEvent) -> DispatchReport:
        """Process one reading event. Failures stay isolated to this reading."""

        report = DispatchReport(device_id=reading.device_id)
        now = self.clock()
        try:
            device, subscribers = self._load_targets(reading.device_id)
        except SQLAlchemyError as exc:
            logger.error("Target lookup failed, dropping reading", device_id=reading.device_id, error=str(exc))
            return report
        if device is None:
            return report

        report.subscribers = len(subscribers)
        for status, notification_id in self._fan_out(device, subscribers, reading, now):
            if status == "notified":
                report.notified.append(notification_id)
            elif status == "suppressed":
                report.suppressed += 1
            elif status == "failed":
                report.failed += 1

        if report.notified or report.failed:
            logger.info(
                "Reading processed",
                device_id=device.device_id,
                subscribers=report.subscribers,
                notified=len(report.notified),
                suppressed=report.suppressed,
                failed=report.failed,
            )
        return report

    def _load_targets(self, device_id: str) -> Tuple[Optional[DeviceTarget], List[Subscriber]]:
        with self.session_factory() as db:
            device = db.scalar(select(Device).where(Device.device_id == device_id))
            if device is None or not device.is_active:
                logger.warning("Dropping reading for unknown or inactive device", device_id=device_id)
                return None, []

            rows = db.execute(
                select(DeviceSubscription, User)
                .join(User, User.user_id == DeviceSubscription.user_id)
                .where(DeviceSubscription.device_id == device_id)
                .where(DeviceSubscription.is_active.is_(True))
            ).all()
            subscribers = [
                Subscriber(
                    user_id=user.user_id,
                    thresholds=dict(subscription.custom_thresholds or {}),
                    push_tokens=tuple(user.push_tokens or []),
                )
                for subscription, user in rows
            ]
            return DeviceTarget(device_id=device.device_id, name=device.name), subscribers

    def _fan_out(
        self,
        device: DeviceTarget,
        subscribers: Sequence[Subscriber],
        reading: ReadingEvent,
        now: datetime,
    ) -> List[Tuple[str, Optional[str]]]:
        def run(subscriber: Subscriber) -> Tuple[str, Optional[str]]:
            try:
                return self._dispatch_to_user(device, subscriber, reading, now)
            except Exception:  # isolate one subscriber's failure from the rest
                logger.exception(
                    "Unexpected dispatch failure", user_id=subscriber.user_id, device_id=device.device_id
                )
                return "failed", None

        if self.max_workers <= 1 or len(subscribers) <= 1:
            return [run(subscriber) for subscriber in subscribers]
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(subscribers))) as pool:
            return list(pool.map(run, subscribers))

    # ------------------------------------------------------------------
    # Per-user dispatch
    # ------------------------------------------------------------------
    def _dispatch_to_user(
        self,
        device: DeviceTarget,
        subscriber: Subscriber,
        reading: ReadingEvent,
        now: datetime,
    ) -> Tuple[str, Optional[str]]:
        violations = find_violations(reading.values, subscriber.thresholds)
        if not violations:
            return "skipped", None

        driver = violations[0]
        key = CooldownKey(subscriber.user_id, device.device_id, driver.severity.value)
        if not self.cooldowns.acquire(key, now):
            logger.debug("Alert suppressed by cooldown", key=str(key))
            return "suppressed", None

        notification_id = new_notification_id()
        subject, message, descriptors = build_content(device, violations)
        try:
            self._persist(
                Notification(
                    notification_id=notification_id,
                    trigger_type=TRIGGER_THRESHOLD_EXCEEDED,
                    device_id=device.device_id,
                    metric=driver.metric,
                    value=driver.value,
                    threshold=driver.threshold,
                    severity=driver.severity.value,
                    subject=subject,
                    message=message,
                    violations=descriptors,
                    created_at=now,
                ),
                subscriber.user_id,
            )
        except PersistenceError as exc:
            self.cooldowns.release(key, now)
            logger.error(
                "Alert could not be stored",
                user_id=subscriber.user_id,
                device_id=device.device_id,
                error=exc.message,
            )
            return "failed", None

        try:
            status, channels, error = self._deliver(subscriber, notification_id, device, subject, message)
        except Exception as exc:  # the stored recipient must not stay "pending"
            logger.exception(
                "Unexpected push delivery error",
                notification_id=notification_id,
                user_id=subscriber.user_id,
            )
            status, channels, error = STATUS_FAILED, [CHANNEL_IN_APP], str(exc) or type(exc).__name__
        self._record_delivery(subscriber.user_id, notification_id, status, channels, error, now)
        logger.info(
            "Alert dispatched",
            notification_id=notification_id,
            user_id=subscriber.user_id,
            device_id=device.device_id,
            metric=driver.metric,
            severity=driver.severity.value,
            status=status,
        )
        return "notified", notification_id

    def _persist(self, notification: Notification, user_id: str) -> None:
        """Write the log record and inbox entry, retrying transient failures."""

        retrying = Retrying(
            stop=stop_after_attempt(self.persist_attempts),
            wait=self.retry_wait,
            retry=retry_if_exception_type(SQLAlchemyError),
            before_sleep=log_retry("notification_write"),
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    with self.session_factory() as db:
                        SubscriptionService(db).get_or_create_user(user_id)
                        notification.recipients = [
                            NotificationRecipient(
                                user_id=user_id,
                                channels=[CHANNEL_IN_APP],
                                status=STATUS_PENDING,
                            )
                        ]
                        NotificationStore(db).append(notification)
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"Failed to store {notification.notification_id}", details={"error": str(exc)}
            ) from exc

    def _deliver(
        self,
        subscriber: Subscriber,
        notification_id: str,
        device: DeviceTarget,
        subject: str,
        message: str,
    ) -> Tuple[str, List[str], Optional[str]]:
        """Push the alert; return the recipient's status, channels and error."""

        messages = [
            PushMessage(
                to=token,
                title=subject,
                body=message,
                data={"notificationId": notification_id, "deviceId": device.device_id},
            )
            for token in subscriber.push_tokens
            if is_expo_push_token(token)
        ]
        skipped = len(subscriber.push_tokens) - len(messages)
        if skipped:
            logger.warning("Ignoring malformed push tokens", user_id=subscriber.user_id, count=skipped)
        if not messages:
            return STATUS_SENT, [CHANNEL_IN_APP], None

        try:
            outcomes = self.push_client.send(messages)
        except (PushGatewayError, httpx.HTTPError, ValueError) as exc:
            logger.error("Push delivery failed", user_id=subscriber.user_id, error=str(exc))
            return STATUS_FAILED, [CHANNEL_IN_APP], str(exc)

        stale = {outcome.token for outcome in outcomes if outcome.device_not_registered}
        if stale:
            self._prune_tokens(subscriber.user_id, stale)

        if any(outcome.ok for outcome in outcomes):
            return STATUS_SENT, [CHANNEL_IN_APP, CHANNEL_PUSH], None
        errors = sorted({outcome.error for outcome in outcomes if outcome.error})
        return STATUS_FAILED, [CHANNEL_IN_APP], "; ".join(errors) or "Push delivery failed"

    def _record_delivery(
        self,
        user_id: str,
        notification_id: str,
        status: str,
        channels: List[str],
        error: Optional[str],
        now: datetime,
    ) -> None:
        try:
            with self.session_factory() as db:
                NotificationStore(db).update_delivery(
                    user_id,
                    notification_id,
                    status=status,
                    channels=channels,
                    error=error,
                    sent_at=now if status == STATUS_SENT else None,
                )
        except SQLAlchemyError as exc:
            # The alert itself is stored; only its delivery state stays "pending".
            logger.error(
                "Failed to record delivery status",
                notification_id=notification_id,
                status=status,
                error=str(exc),
            )

    def _prune_tokens(self, user_id: str, tokens: set[str]) -> None:
        try:
            with self.session_factory() as db:
                SubscriptionService(db).prune_push_tokens(user_id, tokens)
        except SQLAlchemyError as exc:
            logger.error("Failed to prune push tokens", user_id=user_id, error=str(exc))


cooldown_tracker = CooldownTracker(window=timedelta(minutes=settings.ALERT_COOLDOWN_MINUTES))


@lru_cache()
def get_alert_dispatcher() -> AlertDispatcher:
    """Return the process-wide dispatcher bound to the shared cooldown tracker."""

    from airalert.db.session import SessionLocal

    return AlertDispatcher(SessionLocal, ExpoPushClient(), cooldown_tracker)
