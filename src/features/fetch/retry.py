"""Retry policy for transient failures inside a single strategy.

The pipeline never retries; it falls back to the next strategy instead.
Retries happen only within one strategy's own request logic.
"""

import threading
import time
from collections.abc import Callable
from typing import Annotated, TypeVar

import structlog
from pydantic import BaseModel, ConfigDict, Field

from src.features.fetch.constants import MAX_RETRY_AFTER_SECONDS
from src.features.fetch.errors import FetchError, FetchErrorClass
from src.features.fetch.metrics import FetchMetrics


logger = structlog.get_logger()

T = TypeVar("T")

RETRYABLE_CLASSES = frozenset(
    {
        FetchErrorClass.CONNECTION_ERROR,
        FetchErrorClass.NETWORK_TIMEOUT,
        FetchErrorClass.TERMINAL_TIMEOUT,
        FetchErrorClass.PROCESS_TIMEOUT,
    }
)


class RetryPolicy(BaseModel):
    """Configuration for retry behavior.

    Controls how many times a request is attempted and the backoff between
    attempts. With exponential backoff the delay before retry n (1-indexed)
    is base_delay_seconds * 2^(n-1), capped at max_delay_seconds.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_attempts: Annotated[int, Field(ge=1, le=10)] = 3
    base_delay_seconds: Annotated[float, Field(ge=0.0, le=60.0)] = 1.0
    exponential: bool = True
    max_delay_seconds: Annotated[float, Field(ge=0.0, le=300.0)] = 60.0

    @classmethod
    def no_retry(cls) -> "RetryPolicy":
        """Create a policy that makes a single attempt."""
        return cls(
            max_attempts=1,
            base_delay_seconds=0.0,
            exponential=False,
            max_delay_seconds=0.0,
        )

    def delay(self, attempt: int) -> float:
        """Calculate the backoff delay after a failed attempt.

        Args:
            attempt: The attempt that just failed (1-indexed).

        Returns:
            Delay in seconds.

        Raises:
            ValueError: If attempt is less than 1.
        """
        if attempt < 1:
            msg = f"attempt must be >= 1, got {attempt}"
            raise ValueError(msg)

        if self.exponential:
            delay = self.base_delay_seconds * (2 ** (attempt - 1))
        else:
            delay = self.base_delay_seconds
        return min(delay, self.max_delay_seconds)

    def is_retryable(self, error: FetchError) -> bool:
        """Check if an error is eligible for retry at all.

        Rate limiting is only retried when the server says how long to wait.

        Args:
            error: The error that occurred.

        Returns:
            True if the error class permits a retry.
        """
        if error.error_class == FetchErrorClass.RATE_LIMITED:
            return error.retry_after is not None
        return error.error_class in RETRYABLE_CLASSES

    def should_retry(self, error: FetchError, attempt: int) -> bool:
        """Determine if a request should be retried.

        Args:
            error: The error that occurred.
            attempt: The attempt that just failed (1-indexed).

        Returns:
            True if another attempt should be made.
        """
        if attempt >= self.max_attempts:
            return False
        return self.is_retryable(error)

    def wait_seconds(self, error: FetchError, attempt: int) -> float:
        """Get how long to wait before the next attempt.

        A server-provided Retry-After value takes precedence over the
        computed backoff.

        Args:
            error: The error that occurred.
            attempt: The attempt that just failed (1-indexed).

        Returns:
            Seconds to wait.
        """
        if (
            error.error_class == FetchErrorClass.RATE_LIMITED
            and error.retry_after is not None
        ):
            return float(min(error.retry_after, MAX_RETRY_AFTER_SECONDS))
        return self.delay(attempt)


def _raise_if_cancelled(
    cancel_event: threading.Event | None,
    error: FetchError,
    attempt: int,
    operation_name: str,
) -> None:
    if cancel_event is None or not cancel_event.is_set():
        return
    logger.info(
        "retry_cancelled",
        component="retry",
        operation=operation_name,
        attempts=attempt,
    )
    raise FetchError(
        FetchErrorClass.CANCELLED,
        f"{operation_name} cancelled after {attempt} attempt(s)",
    ) from error


def execute_with_retry(
    operation: Callable[[], T],
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], None] = time.sleep,
    operation_name: str = "request",
    cancel_event: threading.Event | None = None,
) -> T:
    """Run an operation, retrying transient failures per the policy.

    Args:
        operation: Zero-argument callable raising FetchError on failure.
        policy: Retry policy to apply.
        sleep: Function used to wait between attempts.
        operation_name: Name used in log events.
        cancel_event: Once set, no further attempt is started.

    Returns:
        The operation's result.

    Raises:
        FetchError: The last error once retries are exhausted or the error
            is not retryable, or CANCELLED once the cancel event is set.
    """
    log = logger.bind(component="retry", operation=operation_name)
    metrics = FetchMetrics.get_instance()
    attempt = 1

    while True:
        try:
            return operation()
        except FetchError as error:
            if not policy.should_retry(error, attempt):
                if attempt > 1:
                    log.warning(
                        "retries_exhausted",
                        attempts=attempt,
                        error_class=error.error_class.value,
                    )
                raise

            _raise_if_cancelled(cancel_event, error, attempt, operation_name)
            wait = policy.wait_seconds(error, attempt)
            metrics.record_retry()
            log.info(
                "retry_attempt",
                attempt=attempt,
                next_attempt=attempt + 1,
                wait_seconds=wait,
                error_class=error.error_class.value,
                max_attempts=policy.max_attempts,
            )
            sleep(wait)
            _raise_if_cancelled(cancel_event, error, attempt, operation_name)
            attempt += 1
