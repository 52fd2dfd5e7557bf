"""Retry timing constants and the errors a retry loop raises."""

from __future__ import annotations

from datetime import timedelta
from typing import Optional, Union

from migverifier.reportutils import duration_to_hms

# Default time limit for all retries, in seconds.
DEFAULT_DURATION_LIMIT = 10 * 60.0

# Exponential backoff between attempts, in seconds: 1, 2, 4, 8, 16, 16, ...
MIN_SLEEP_TIME = 1.0
MAX_SLEEP_TIME = 16.0
SLEEP_TIME_MULTIPLIER = 2


def next_sleep_time(current: float) -> float:
    """The pause to use after `current`, capped at MAX_SLEEP_TIME."""
    return min(current * SLEEP_TIME_MULTIPLIER, MAX_SLEEP_TIME)


class RetryDurationLimitExceededError(Exception):
    """A transient failure persisted past the retry duration limit."""

    def __init__(
        self,
        last_error: BaseException,
        attempts: int,
        duration: Union[timedelta, float],
    ) -> None:
        self.last_error = last_error
        self.attempts = attempts
        self.duration = duration
        super().__init__(
            f"retryable function did not succeed after {attempts} attempt(s) over "
            f"{duration_to_hms(duration)}; last error was: {last_error}"
        )
        self.__cause__ = last_error


class RetryCancelledError(Exception):
    """The retry loop was cancelled before the operation succeeded."""

    def __init__(self, last_error: Optional[BaseException] = None) -> None:
        self.last_error = last_error
        super().__init__("context canceled")
        if last_error is not None:
            self.__cause__ = last_error