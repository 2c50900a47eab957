"""Expo push gateway client with chunking, token validation and retries."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import httpx
from loguru import logger
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from airalert.config import settings
from airalert.utils.exceptions import PushGatewayError
from airalert.utils.retry import log_retry

_UUID_TOKEN = re.compile(r"^[a-z\d]{8}-[a-z\d]{4}-[a-z\d]{4}-[a-z\d]{4}-[a-z\d]{12}$", re.IGNORECASE)

INVALID_TOKEN_ERROR = "InvalidPushToken"
DEVICE_NOT_REGISTERED = "DeviceNotRegistered"


def is_expo_push_token(token: Any) -> bool:
    """Return whether ``token`` has the shape Expo accepts."""

    if not isinstance(token, str):
        return False
    if token.startswith(("ExponentPushToken[", "ExpoPushToken[")) and token.endswith("]"):
        return True
    return bool(_UUID_TOKEN.match(token))


@dataclass
class PushMessage:
    to: str
    title: str
    body: str
    data: Dict[str, Any] = field(default_factory=dict)
    sound: Optional[str] = "default"

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "to": self.to,
            "title": self.title,
            "body": self.body,
            "data": self.data,
        }
        if self.sound:
            payload["sound"] = self.sound
        return payload


@dataclass
class PushOutcome:
    """Per-message result reported by :meth:`ExpoPushClient.send`."""

    token: str
    ok: bool
    ticket_id: Optional[str] = None
    error: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def device_not_registered(self) -> bool:
        return self.details.get("error") == DEVICE_NOT_REGISTERED


class _RetryableResponse(Exception):
    """Raised for push responses worth retrying (429 and 5xx)."""


class ExpoPushClient:
    """Send push messages through the Expo push service.

    Invalid tokens are never submitted. Messages are chunked, and each chunk
    is retried on transport errors; a chunk that still fails marks only its
    own messages as failed.
    """

    def __init__(
        self,
        url: str | None = None,
        access_token: str | None = None,
        chunk_size: int | None = None,
        request_timeout: float | None = None,
        max_retries: int | None = None,
        transport: httpx.BaseTransport | None = None,
        retry_wait: Any = None,
    ) -> None:
        self.url = url or str(settings.EXPO_PUSH_URL)
        self.access_token = access_token if access_token is not None else settings.EXPO_ACCESS_TOKEN
        self.chunk_size = chunk_size or settings.PUSH_CHUNK_SIZE
        self.request_timeout = request_timeout or settings.PUSH_REQUEST_TIMEOUT_SECONDS
        self.max_retries = max_retries or settings.PUSH_MAX_RETRIES
        self._transport = transport
        self._retry_wait = retry_wait or wait_exponential(multiplier=1, min=1, max=8)

    def _build_headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Accept-Encoding": "gzip, deflate",
            "Content-Type": "application/json",
        }
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    def chunk(self, items: Sequence[Any]) -> List[List[Any]]:
        return [
            list(items[start : start + self.chunk_size])
            for start in range(0, len(items), self.chunk_size)
        ]

    def _post_once(self, client: httpx.Client, chunk: Sequence[PushMessage]) -> List[Dict[str, Any]]:
        response = client.post(
            self.url,
            json=[message.to_payload() for message in chunk],
            headers=self._build_headers(),
        )
        if response.status_code == 429 or response.status_code >= 500:
            raise _RetryableResponse(f"Expo returned {response.status_code}: {response.text}")
        if response.status_code >= 400:
            logger.error("Expo rejected push batch", status=response.status_code, body=response.text)
            raise PushGatewayError(
                f"Expo error {response.status_code}", details={"body": response.text}
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise PushGatewayError(
                "Expo response was not valid JSON", details={"body": response.text}
            ) from exc

        tickets = body.get("data") if isinstance(body, dict) else None
        if isinstance(tickets, dict):
            tickets = [tickets]
        if (
            not isinstance(tickets, list)
            or len(tickets) != len(chunk)
            or not all(isinstance(ticket, dict) for ticket in tickets)
        ):
            raise PushGatewayError(
                "Expo response did not include one ticket per message", details={"body": response.text}
            )
        return tickets

    def _post_chunk(self, client: httpx.Client, chunk: Sequence[PushMessage]) -> List[Dict[str, Any]]:
        retrying = Retrying(
            stop=stop_after_attempt(self.max_retries),
            wait=self._retry_wait,
            retry=retry_if_exception_type((httpx.TransportError, _RetryableResponse)),
            before_sleep=log_retry("push_chunk"),
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    return self._post_once(client, chunk)
        except (httpx.TransportError, _RetryableResponse) as exc:
            raise PushGatewayError(f"Push transport failed: {exc}") from exc
        raise PushGatewayError("Push transport failed")  # pragma: no cover - loop always returns or raises

    def send(self, messages: Sequence[PushMessage]) -> List[PushOutcome]:
        """Send ``messages`` and return one outcome per message, in order."""

        outcomes: List[Optional[PushOutcome]] = [None] * len(messages)
        valid: List[tuple[int, PushMessage]] = []
        for index, message in enumerate(messages):
            if is_expo_push_token(message.to):
                valid.append((index, message))
            else:
                logger.warning("Skipping invalid push token", token=message.to)
                outcomes[index] = PushOutcome(token=message.to, ok=False, error=INVALID_TOKEN_ERROR)

        with httpx.Client(timeout=self.request_timeout, transport=self._transport) as client:
            for batch in self.chunk(valid):
                chunk = [message for _, message in batch]
                try:
                    tickets = self._post_chunk(client, chunk)
                except PushGatewayError as exc:
                    logger.error("Push chunk failed", size=len(chunk), error=exc.message)
                    for index, message in batch:
                        outcomes[index] = PushOutcome(token=message.to, ok=False, error=exc.message)
                    continue

                for (index, message), ticket in zip(batch, tickets):
                    if ticket.get("status") == "ok":
                        outcomes[index] = PushOutcome(token=message.to, ok=True, ticket_id=ticket.get("id"))
                    else:
                        outcomes[index] = PushOutcome(
                            token=message.to,
                            ok=False,
                            error=ticket.get("message") or "Push rejected",
                            details=ticket.get("details") if isinstance(ticket.get("details"), dict) else {},
                        )

        sent = sum(1 for outcome in outcomes if outcome is not None and outcome.ok)
        logger.info("Push batch processed", total=len(messages), sent=sent)
        return [outcome for outcome in outcomes if outcome is not None]
