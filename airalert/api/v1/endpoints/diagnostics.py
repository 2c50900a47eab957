"""Operator diagnostics: direct test pushes and cooldown resets."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from loguru import logger

from airalert.api import deps
from airalert.core.alerting.cooldown import CooldownTracker
from airalert.schemas import (
    CooldownResetResponse,
    PushTicketRead,
    SendTestNotificationRequest,
    SendTestNotificationResponse,
)
from airalert.services.push_gateway import ExpoPushClient, PushMessage, is_expo_push_token
from airalert.services.subscriptions import SubscriptionService

router = APIRouter(prefix="/test-notification", tags=["diagnostics"])

DEFAULT_TEST_TITLE = "Test Notification"
DEFAULT_TEST_BODY = "This is a test notification from Air Quality Alerts."


@router.post("/send", response_model=SendTestNotificationResponse)
def send_test_notification(
    payload: SendTestNotificationRequest,
    service: SubscriptionService = Depends(deps.get_subscription_service),
    push_client: ExpoPushClient = Depends(deps.get_push_client),
) -> SendTestNotificationResponse:
    """Push a test message to every registered destination of a user.

    Nothing is written to the notification log.
    """

    tokens = service.get_push_tokens(payload.user_id)
    if not tokens:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No push tokens registered for this user",
        )

    valid = [token for token in tokens if is_expo_push_token(token)]
    if not valid:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No valid push tokens registered for this user",
        )

    messages = [
        PushMessage(
            to=token,
            title=payload.title or DEFAULT_TEST_TITLE,
            body=payload.body or DEFAULT_TEST_BODY,
            data={"type": "test"},
        )
        for token in valid
    ]
    outcomes = push_client.send(messages)
    logger.info(
        "Test notification sent",
        user_id=payload.user_id,
        destinations=len(valid),
        delivered=sum(1 for outcome in outcomes if outcome.ok),
    )
    return SendTestNotificationResponse(
        success=any(outcome.ok for outcome in outcomes),
        tickets=[
            PushTicketRead(
                token=outcome.token,
                ok=outcome.ok,
                ticket_id=outcome.ticket_id,
                error=outcome.error,
                details=outcome.details,
            )
            for outcome in outcomes
        ],
    )


@router.post("/reset-cooldowns", response_model=CooldownResetResponse)
def reset_cooldowns(
    tracker: CooldownTracker = Depends(deps.get_cooldown_tracker),
) -> CooldownResetResponse:
    cleared = tracker.reset()
    logger.info("Alert cooldowns reset", cleared=cleared)
    return CooldownResetResponse(message=f"Cleared {cleared} cooldown entries", cleared=cleared)
