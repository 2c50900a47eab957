"""Subscription, push registration and notification inbox endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError

from airalert.api import deps
from airalert.core.alerting.thresholds import parse_thresholds
from airalert.db.models.user import DeviceSubscription
from airalert.schemas import (
    DeviceNotificationsResponse,
    NotificationListResponse,
    PaginationRead,
    RegisterTokenRequest,
    SubscribeRequest,
    SubscriptionListResponse,
    SubscriptionRead,
    SuccessResponse,
    ThresholdUpdateRequest,
    UnreadCountResponse,
    UnsubscribeRequest,
)
from airalert.services.notification_store import NotificationStore
from airalert.services.subscriptions import SubscriptionService
from airalert.utils.exceptions import NotFoundError, handle_database_error, handle_not_found_error

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _subscription_read(subscription: DeviceSubscription) -> SubscriptionRead:
    return SubscriptionRead(
        device_id=subscription.device_id,
        device_name=subscription.device_name,
        is_active=subscription.is_active,
        custom_thresholds=parse_thresholds(subscription.custom_thresholds),
    )


# ----------------------------------------------------------------------
# Subscriptions and push destinations
# ----------------------------------------------------------------------
@router.post("/subscribe", response_model=SuccessResponse)
def subscribe(
    payload: SubscribeRequest,
    service: SubscriptionService = Depends(deps.get_subscription_service),
) -> SuccessResponse:
    """Subscribe a user to a device's alerts."""

    try:
        service.subscribe(
            payload.user_id,
            payload.device_id,
            device_name=payload.device_name,
            thresholds=payload.custom_thresholds,
        )
    except SQLAlchemyError as exc:
        raise handle_database_error(exc) from exc
    return SuccessResponse(message=f"Subscribed to {payload.device_id}")


@router.post("/unsubscribe", response_model=SuccessResponse)
def unsubscribe(
    payload: UnsubscribeRequest,
    service: SubscriptionService = Depends(deps.get_subscription_service),
) -> SuccessResponse:
    try:
        removed = service.unsubscribe(payload.user_id, payload.device_id)
    except SQLAlchemyError as exc:
        raise handle_database_error(exc) from exc
    if not removed:
        return SuccessResponse(success=False, message=f"Not subscribed to {payload.device_id}")
    return SuccessResponse(message=f"Unsubscribed from {payload.device_id}")


@router.post("/register", response_model=SuccessResponse)
def register_push_token(
    payload: RegisterTokenRequest,
    service: SubscriptionService = Depends(deps.get_subscription_service),
) -> SuccessResponse:
    """Register a push destination for the user."""

    try:
        added = service.register_push_token(payload.user_id, payload.token)
    except SQLAlchemyError as exc:
        raise handle_database_error(exc) from exc
    return SuccessResponse(message="Push token registered" if added else "Push token already registered")


@router.get("/subscriptions/{user_id}", response_model=SubscriptionListResponse)
def list_subscriptions(
    user_id: str,
    service: SubscriptionService = Depends(deps.get_subscription_service),
) -> SubscriptionListResponse:
    """Return active subscriptions. Unknown users simply have none."""

    subscriptions = service.list_active(user_id)
    return SubscriptionListResponse(subscriptions=[_subscription_read(sub) for sub in subscriptions])


@router.put("/subscriptions/{user_id}/{device_id}/thresholds", response_model=SubscriptionRead)
def update_thresholds(
    user_id: str,
    device_id: str,
    payload: ThresholdUpdateRequest,
    service: SubscriptionService = Depends(deps.get_subscription_service),
) -> SubscriptionRead:
    """Merge per-pollutant threshold edits into a subscription."""

    try:
        subscription = service.update_thresholds(user_id, device_id, payload.thresholds)
    except NotFoundError as exc:
        raise handle_not_found_error(exc) from exc
    except SQLAlchemyError as exc:
        raise handle_database_error(exc) from exc
    return _subscription_read(subscription)


# ----------------------------------------------------------------------
# Notification inbox
# ----------------------------------------------------------------------
@router.get("/{user_id}/notifications", response_model=NotificationListResponse)
def list_notifications(
    user_id: str,
    limit: int = Query(50, ge=1, le=200),
    skip: int = Query(0, ge=0),
    unread_only: bool = Query(False, alias="unreadOnly"),
    store: NotificationStore = Depends(deps.get_notification_store),
) -> NotificationListResponse:
    """Return the user's notifications, newest first."""

    try:
        page = store.list_for_user(user_id, limit=limit, skip=skip, unread_only=unread_only)
    except SQLAlchemyError as exc:
        raise handle_database_error(exc) from exc
    return NotificationListResponse(
        notifications=page.items,
        pagination=PaginationRead(total=page.total, limit=page.limit, skip=page.skip, has_more=page.has_more),
        unread_count=page.unread_count,
    )


@router.get("/{user_id}/notifications/unread-count", response_model=UnreadCountResponse)
def unread_count(
    user_id: str,
    store: NotificationStore = Depends(deps.get_notification_store),
) -> UnreadCountResponse:
    return UnreadCountResponse(unread_count=store.count_unread(user_id))


@router.get(
    "/{user_id}/notifications/by-device/{device_id}",
    response_model=DeviceNotificationsResponse,
)
def list_device_notifications(
    user_id: str,
    device_id: str,
    limit: int = Query(20, ge=1, le=200),
    store: NotificationStore = Depends(deps.get_notification_store),
) -> DeviceNotificationsResponse:
    return DeviceNotificationsResponse(
        notifications=store.list_for_device(user_id, device_id, limit=limit),
        device_id=device_id,
    )


@router.patch("/{user_id}/notifications/mark-all-read", response_model=SuccessResponse)
def mark_all_read(
    user_id: str,
    store: NotificationStore = Depends(deps.get_notification_store),
) -> SuccessResponse:
    try:
        updated = store.mark_all_read(user_id)
    except SQLAlchemyError as exc:
        raise handle_database_error(exc) from exc
    return SuccessResponse(message=f"{updated} notifications marked as read")


@router.patch("/{user_id}/notifications/{notification_id}/read", response_model=SuccessResponse)
def mark_read(
    user_id: str,
    notification_id: str,
    store: NotificationStore = Depends(deps.get_notification_store),
) -> SuccessResponse:
    try:
        found = store.mark_read(user_id, notification_id)
    except SQLAlchemyError as exc:
        raise handle_database_error(exc) from exc
    if not found:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return SuccessResponse(message="Notification marked as read")


@router.delete("/{user_id}/notifications/{notification_id}", response_model=SuccessResponse)
def delete_notification(
    user_id: str,
    notification_id: str,
    store: NotificationStore = Depends(deps.get_notification_store),
) -> SuccessResponse:
    try:
        found = store.delete(user_id, notification_id)
    except SQLAlchemyError as exc:
        raise handle_database_error(exc) from exc
    if not found:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return SuccessResponse(message="Notification deleted")


@router.delete("/{user_id}/notifications", response_model=SuccessResponse)
def clear_notifications(
    user_id: str,
    store: NotificationStore = Depends(deps.get_notification_store),
) -> SuccessResponse:
    try:
        removed = store.clear_all(user_id)
    except SQLAlchemyError as exc:
        raise handle_database_error(exc) from exc
    return SuccessResponse(message=f"{removed} notifications cleared")
