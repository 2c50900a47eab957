"""Tests for the loguru-backed tenacity retry hook."""
import pytest
from loguru import logger
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_none

from airalert.utils.retry import log_retry


@pytest.fixture()
def captured():
    records: list = []
    sink_id = logger.add(lambda message: records.append(message.record), level="WARNING")
    try:
        yield records
    finally:
        logger.remove(sink_id)


def test_each_retry_is_logged_as_structured_warning(captured):
    attempts = []
    retrying = Retrying(
        stop=stop_after_attempt(3),
        wait=wait_none(),
        retry=retry_if_exception_type(ConnectionError),
        before_sleep=log_retry("feed_subscribe"),
        reraise=True,
    )

    for attempt in retrying:
        with attempt:
            attempts.append(attempt.retry_state.attempt_number)
            if len(attempts) < 3:
                raise ConnectionError("payload {'channel': 'readings:new'} rejected")

    assert attempts == [1, 2, 3]
    assert [record["level"].name for record in captured] == ["WARNING", "WARNING"]
    assert captured[0]["extra"]["operation"] == "feed_subscribe"
    assert captured[1]["extra"]["attempt"] == 2
    assert "readings:new" in captured[0]["extra"]["error"]
