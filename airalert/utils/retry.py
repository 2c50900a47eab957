"""tenacity hooks that log through loguru."""
from __future__ import annotations

from typing import Callable

from loguru import logger
from tenacity import RetryCallState


def log_retry(operation: str) -> Callable[[RetryCallState], None]:
    """Return a ``before_sleep`` hook logging each retry as a structured warning.

    Exception text is passed as a keyword so braces in driver or HTTP error
    messages are never treated as format fields.
    """

    def _before_sleep(retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        error = outcome.exception() if outcome is not None else None
        next_action = retry_state.next_action
        logger.warning(
            "Retrying after failure",
            operation=operation,
            attempt=retry_state.attempt_number,
            wait_seconds=round(next_action.sleep, 2) if next_action is not None else 0.0,
            error=repr(error),
        )

    return _before_sleep
