"""Live reading feed: Redis pub/sub subscription driving the alert dispatcher."""
from __future__ import annotations

import json
import threading
from typing import Any, Callable, Optional

import redis
from loguru import logger
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    stop_when_event_set,
    wait_exponential,
)

from airalert.config import settings
from airalert.schemas.reading import ReadingEvent
from airalert.services.dispatcher import AlertDispatcher, DispatchReport
from airalert.utils.exceptions import FeedDisconnectedError
from airalert.utils.retry import log_retry

_CONNECTION_ERRORS = (redis.ConnectionError, redis.TimeoutError)


class ReadingFeedListener:
    """Consume one JSON reading event per pub/sub message.

    A dropped connection is resubscribed with exponential backoff; when the
    reconnect attempts are exhausted :class:`FeedDisconnectedError` is raised
    instead of silently going deaf. :meth:`stop` ends :meth:`run` cleanly.
    """

    def __init__(
        self,
        dispatcher: AlertDispatcher,
        redis_url: str | None = None,
        channel: str | None = None,
        *,
        redis_factory: Callable[[], Any] | None = None,
        max_reconnect_attempts: int | None = None,
        max_backoff_seconds: float | None = None,
        retry_wait: Any = None,
        poll_timeout: float = 1.0,
    ) -> None:
        self.dispatcher = dispatcher
        self.redis_url = redis_url or str(settings.REDIS_URL)
        self.channel = channel or settings.READING_FEED_CHANNEL
        self._redis_factory = redis_factory or (
            lambda: redis.Redis.from_url(self.redis_url, decode_responses=True, socket_timeout=5)
        )
        self.max_reconnect_attempts = max_reconnect_attempts or settings.FEED_RECONNECT_MAX_ATTEMPTS
        self._retry_wait = retry_wait or wait_exponential(
            multiplier=1,
            min=1,
            max=max_backoff_seconds or settings.FEED_RECONNECT_MAX_BACKOFF_SECONDS,
        )
        self.poll_timeout = poll_timeout
        self.processed = 0
        self._stop = threading.Event()

    def stop(self) -> None:
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def run(self) -> None:
        """Block, dispatching readings until :meth:`stop` is called."""

        logger.info("Live reading feed starting", channel=self.channel)
        while not self._stop.is_set():
            pubsub = self._subscribe()
            if pubsub is None:
                break
            try:
                self._consume(pubsub)
            except _CONNECTION_ERRORS as exc:
                logger.warning("Live feed connection lost, resubscribing", error=str(exc))
            finally:
                self._close(pubsub)
        logger.info("Live reading feed stopped", processed=self.processed)

    def _subscribe(self) -> Optional[Any]:
        retrying = Retrying(
            stop=stop_after_attempt(self.max_reconnect_attempts) | stop_when_event_set(self._stop),
            wait=self._retry_wait,
            sleep=self._stop.wait,
            retry=retry_if_exception_type(_CONNECTION_ERRORS),
            before_sleep=log_retry("feed_subscribe"),
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    pubsub = self._redis_factory().pubsub(ignore_subscribe_messages=True)
                    pubsub.subscribe(self.channel)
                    logger.info("Subscribed to live reading feed", channel=self.channel)
                    return pubsub
        except _CONNECTION_ERRORS as exc:
            if self._stop.is_set():
                return None
            logger.error(
                "Live reading feed unavailable",
                channel=self.channel,
                attempts=self.max_reconnect_attempts,
                error=str(exc),
            )
            raise FeedDisconnectedError(
                f"Could not subscribe to {self.channel}", details={"error": str(exc)}
            ) from exc
        return None

    def _consume(self, pubsub: Any) -> None:
        while not self._stop.is_set():
            message = pubsub.get_message(timeout=self.poll_timeout)
            if not message or message.get("type") != "message":
                continue
            self.handle_message(message.get("data"))

    def _close(self, pubsub: Any) -> None:
        try:
            pubsub.close()
        except _CONNECTION_ERRORS as exc:
            logger.debug("Ignoring error while closing feed subscription", error=str(exc))

    def handle_message(self, data: Any) -> Optional[DispatchReport]:
        """Parse one feed payload and hand it to the dispatcher."""

        try:
            payload = json.loads(data) if isinstance(data, (str, bytes)) else data
            event = ReadingEvent.model_validate(payload)
        except (TypeError, ValueError) as exc:
            logger.warning("Discarding malformed reading event", error=str(exc))
            return None

        self.processed += 1
        return self.dispatcher.on_new_reading(event)
