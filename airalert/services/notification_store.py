"""Durable notification log and the per-user inbox derived from it.

The ``notifications`` table is the source of truth. ``User.recent_notifications``
is a bounded newest-first cache that is rebuilt from the log inside the same
transaction as every write, so both copies commit or roll back together.
Inbox entries without a log record (written before the log existed, or whose
record was lost) are still listed until they are read, deleted or evicted.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from airalert.config import settings
from airalert.db.models.notification import Notification, NotificationRecipient
from airalert.db.models.user import User
from airalert.schemas.notification import NotificationRead


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Any) -> Optional[datetime]:
    """Normalise stored timestamps (naive, aware or ISO strings) to aware UTC."""

    if value is None:
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    normalized = _as_utc(value)
    return normalized.isoformat() if normalized else None


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class NotificationPage:
    items: List[NotificationRead]
    total: int
    limit: int
    skip: int
    has_more: bool
    unread_count: int


class NotificationStore:
    """Query and mutate a user's notifications across the log and the inbox."""

    def __init__(self, db: Session, inbox_limit: int | None = None) -> None:
        self.db = db
        self.inbox_limit = inbox_limit or settings.RECENT_NOTIFICATIONS_LIMIT

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def append(self, notification: Notification) -> Notification:
        """Insert ``notification`` into the log and its recipients' inboxes."""

        self.db.add(notification)
        self.db.flush()
        for recipient in notification.recipients:
            self._refresh_inbox(recipient.user_id)
        self.db.commit()
        return notification

    def update_delivery(
        self,
        user_id: str,
        notification_id: str,
        *,
        status: str,
        channels: Iterable[str],
        error: str | None = None,
        sent_at: datetime | None = None,
    ) -> bool:
        """Record the delivery outcome for one recipient."""

        recipient = self._recipient(user_id, notification_id)
        if recipient is None:
            return False
        recipient.status = status
        recipient.channels = list(channels)
        recipient.error = error
        recipient.sent_at = sent_at
        self.db.commit()
        return True

    def mark_read(self, user_id: str, notification_id: str) -> bool:
        now = _utcnow()
        found = False
        recipient = self._recipient(user_id, notification_id)
        if recipient is not None:
            if recipient.read_at is None:
                recipient.read_at = now
            found = True

        def mark(entries: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
            return [
                {**entry, "read": True, "readAt": entry.get("readAt") or now.isoformat()}
                if entry.get("notificationId") == notification_id
                else entry
                for entry in entries
            ]

        found = self._rewrite_inbox(user_id, mark, match=notification_id) or found
        self.db.flush()
        self._refresh_inbox(user_id)
        self.db.commit()
        return found

    def mark_all_read(self, user_id: str) -> int:
        now = _utcnow()
        unread = self.db.scalars(
            select(NotificationRecipient)
            .where(NotificationRecipient.user_id == user_id)
            .where(NotificationRecipient.read_at.is_(None))
        ).all()
        for recipient in unread:
            recipient.read_at = now

        orphans = [item for item in self._inbox_only(user_id) if not item.read]
        orphan_ids = {item.notification_id for item in orphans}

        def mark(entries: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
            return [
                {**entry, "read": True, "readAt": now.isoformat()}
                if entry.get("notificationId") in orphan_ids
                else entry
                for entry in entries
            ]

        self._rewrite_inbox(user_id, mark)
        self.db.flush()
        self._refresh_inbox(user_id)
        self.db.commit()
        return len(unread) + len(orphans)

    def delete(self, user_id: str, notification_id: str) -> bool:
        """Remove a notification for ``user_id`` from the log and the inbox."""

        found = False
        recipient = self._recipient(user_id, notification_id)
        if recipient is not None:
            self._detach(recipient)
            found = True

        def drop(entries: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
            return [entry for entry in entries if entry.get("notificationId") != notification_id]

        found = self._rewrite_inbox(user_id, drop, match=notification_id) or found
        self.db.flush()
        self._refresh_inbox(user_id)
        self.db.commit()
        return found

    def clear_all(self, user_id: str) -> int:
        orphans = self._inbox_only(user_id)
        recipients = self.db.scalars(
            select(NotificationRecipient).where(NotificationRecipient.user_id == user_id)
        ).all()
        for recipient in recipients:
            self._detach(recipient)

        user = self.db.get(User, user_id)
        if user is not None:
            user.recent_notifications = []
        self.db.commit()
        logger.info("Cleared notifications", user_id=user_id, removed=len(recipients) + len(orphans))
        return len(recipients) + len(orphans)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def list_for_user(
        self, user_id: str, limit: int = 50, skip: int = 0, unread_only: bool = False
    ) -> NotificationPage:
        """Return a newest-first page merged from the log and the inbox."""

        rows = self.db.execute(
            self._recipient_stmt(user_id, unread_only=unread_only)
            .order_by(Notification.created_at.desc(), Notification.notification_id.desc())
            .limit(skip + limit)
        ).all()
        log_total = self._count(user_id, unread_only=unread_only)

        inbox_only = self._inbox_only(user_id)
        if unread_only:
            inbox_only = [item for item in inbox_only if not item.read]

        merged = self._merge([self._view_from_log(n, r) for n, r in rows], inbox_only)
        page = merged[skip : skip + limit]
        total = log_total + len(inbox_only)
        return NotificationPage(
            items=page,
            total=total,
            limit=limit,
            skip=skip,
            has_more=skip + len(page) < total,
            unread_count=self.count_unread(user_id),
        )

    def list_for_device(self, user_id: str, device_id: str, limit: int = 20) -> List[NotificationRead]:
        rows = self.db.execute(
            self._recipient_stmt(user_id, device_id=device_id)
            .order_by(Notification.created_at.desc(), Notification.notification_id.desc())
            .limit(limit)
        ).all()
        return [self._view_from_log(n, r) for n, r in rows]

    def count_unread(self, user_id: str) -> int:
        orphans = [item for item in self._inbox_only(user_id) if not item.read]
        return self._count(user_id, unread_only=True) + len(orphans)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _recipient_stmt(user_id: str, *, unread_only: bool = False, device_id: str | None = None):
        stmt = (
            select(Notification, NotificationRecipient)
            .join(NotificationRecipient, NotificationRecipient.notification_pk == Notification.id)
            .where(NotificationRecipient.user_id == user_id)
        )
        if unread_only:
            stmt = stmt.where(NotificationRecipient.read_at.is_(None))
        if device_id is not None:
            stmt = stmt.where(Notification.device_id == device_id)
        return stmt

    def _count(self, user_id: str, *, unread_only: bool = False) -> int:
        stmt = select(func.count(NotificationRecipient.id)).where(NotificationRecipient.user_id == user_id)
        if unread_only:
            stmt = stmt.where(NotificationRecipient.read_at.is_(None))
        return int(self.db.scalar(stmt) or 0)

    def _recipient(self, user_id: str, notification_id: str) -> Optional[NotificationRecipient]:
        return self.db.scalar(
            select(NotificationRecipient)
            .join(Notification, NotificationRecipient.notification_pk == Notification.id)
            .where(NotificationRecipient.user_id == user_id)
            .where(Notification.notification_id == notification_id)
        )

    def _detach(self, recipient: NotificationRecipient) -> None:
        notification = recipient.notification
        notification.recipients.remove(recipient)
        if not notification.recipients:
            self.db.delete(notification)

    def _rewrite_inbox(
        self,
        user_id: str,
        transform: Callable[[List[Dict[str, Any]]], List[Dict[str, Any]]],
        match: str | None = None,
    ) -> bool:
        """Apply ``transform`` to the stored inbox; report whether ``match`` was present."""

        user = self.db.get(User, user_id)
        if user is None:
            return False
        entries = list(user.recent_notifications or [])
        present = match is not None and any(entry.get("notificationId") == match for entry in entries)
        user.recent_notifications = transform(entries)
        return present

    def _inbox_only(self, user_id: str) -> List[NotificationRead]:
        """Inbox entries that have no log record for this user."""

        user = self.db.get(User, user_id)
        entries = [entry for entry in (user.recent_notifications or []) if entry.get("notificationId")] if user else []
        if not entries:
            return []
        in_log = set(
            self.db.scalars(
                select(Notification.notification_id)
                .join(NotificationRecipient, NotificationRecipient.notification_pk == Notification.id)
                .where(NotificationRecipient.user_id == user_id)
                .where(Notification.notification_id.in_([entry["notificationId"] for entry in entries]))
            )
        )
        return [self._view_from_inbox(entry) for entry in entries if entry["notificationId"] not in in_log]

    def _refresh_inbox(self, user_id: str) -> None:
        """Rebuild the user's inbox from the newest log records."""

        user = self.db.get(User, user_id)
        if user is None:
            return
        rows = self.db.execute(
            self._recipient_stmt(user_id)
            .order_by(Notification.created_at.desc(), Notification.notification_id.desc())
            .limit(self.inbox_limit)
        ).all()
        entries = [self._inbox_entry(n, r) for n, r in rows]

        orphan_ids = {item.notification_id for item in self._inbox_only(user_id)}
        orphans = [
            entry
            for entry in (user.recent_notifications or [])
            if entry.get("notificationId") in orphan_ids
        ]
        merged = sorted(
            entries + orphans,
            key=lambda entry: (_as_utc(entry.get("sentAt")) or _EPOCH, entry.get("notificationId", "")),
            reverse=True,
        )
        user.recent_notifications = merged[: self.inbox_limit]

    @staticmethod
    def _merge(log_items: List[NotificationRead], inbox_items: List[NotificationRead]) -> List[NotificationRead]:
        """Deduplicate by id, preferring the log record, then sort newest first."""

        merged: Dict[str, NotificationRead] = {}
        for item in log_items + inbox_items:
            merged.setdefault(item.notification_id, item)
        return sorted(
            merged.values(),
            key=lambda item: (item.created_at, item.notification_id),
            reverse=True,
        )

    @staticmethod
    def _inbox_entry(notification: Notification, recipient: NotificationRecipient) -> Dict[str, Any]:
        return {
            "notificationId": notification.notification_id,
            "deviceId": notification.device_id,
            "type": notification.trigger_type,
            "severity": notification.severity,
            "metric": notification.metric,
            "value": notification.value,
            "threshold": notification.threshold,
            "message": notification.message,
            "sentAt": _isoformat(notification.created_at),
            "read": recipient.read_at is not None,
            "readAt": _isoformat(recipient.read_at),
        }

    @staticmethod
    def _view_from_log(notification: Notification, recipient: NotificationRecipient) -> NotificationRead:
        return NotificationRead(
            notification_id=notification.notification_id,
            type=notification.trigger_type,
            device_id=notification.device_id,
            metric=notification.metric,
            value=notification.value,
            threshold=notification.threshold,
            severity=notification.severity,
            subject=notification.subject,
            message=notification.message,
            violations=notification.violations or [],
            status=recipient.status,
            channels=list(recipient.channels or []),
            error=recipient.error,
            created_at=_as_utc(notification.created_at),
            read=recipient.read_at is not None,
            read_at=_as_utc(recipient.read_at),
            source="log",
        )

    @staticmethod
    def _view_from_inbox(entry: Dict[str, Any]) -> NotificationRead:
        return NotificationRead(
            notification_id=entry["notificationId"],
            type=entry.get("type") or "threshold_exceeded",
            device_id=entry.get("deviceId") or "",
            metric=entry.get("metric") or "",
            value=entry.get("value") or 0.0,
            threshold=entry.get("threshold") or 0.0,
            severity=entry.get("severity") or "warning",
            message=entry.get("message") or "",
            channels=["inApp"],
            created_at=_as_utc(entry.get("sentAt")) or _EPOCH,
            read=bool(entry.get("read")),
            read_at=_as_utc(entry.get("readAt")),
            source="inbox",
        )
