"""Retry logic using tenacity.

This module provides the retry policy shared by every storage operation:
a bounded number of attempts, exponential backoff with a capped exponent,
and a random jitter added on top of each delay.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)
from tenacity.wait import wait_base

from bucket_migration.client.exceptions import HTTPStatusError
from bucket_migration.config import RetryConfig
from bucket_migration.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and backoff shape for one storage operation.

    The delay after the n-th failed attempt is
    ``base_delay * 2 ** min(n - 1, max_backoff_exponent)`` plus a uniform
    jitter in ``[0, jitter]`` seconds.

    Attributes:
        max_attempts: Total attempts, including the first one
        base_delay: Delay in seconds after the first failure
        jitter: Upper bound in seconds of the random delay added to each wait
        max_backoff_exponent: Exponent at which backoff growth stops
        retry_client_errors: Retry 4xx responses like transient failures
    """

    max_attempts: int = 3
    base_delay: float = 0.5
    jitter: float = 0.2
    max_backoff_exponent: int = 4
    retry_client_errors: bool = True

    @classmethod
    def from_config(cls, config: RetryConfig) -> "RetryPolicy":
        """Build a policy from the retry section of the configuration."""
        return cls(
            max_attempts=config.max_attempts,
            base_delay=config.base_delay,
            jitter=config.jitter,
            max_backoff_exponent=config.max_backoff_exponent,
            retry_client_errors=config.retry_client_errors,
        )

    def wait_strategy(self) -> wait_base:
        """Return the tenacity wait strategy for this policy."""
        ceiling = self.base_delay * (2**self.max_backoff_exponent)
        return wait_exponential(multiplier=self.base_delay, exp_base=2, min=0, max=ceiling) + (
            wait_random(0, self.jitter)
        )

    def should_retry(self, error: BaseException) -> bool:
        """Decide whether a failed attempt is worth another try."""
        if not isinstance(error, Exception):
            return False
        if isinstance(error, HTTPStatusError) and error.is_client_error:
            return self.retry_client_errors
        return True


def _log_before_sleep(operation_name: str, context: dict[str, Any]) -> Callable[[RetryCallState], None]:
    def before_sleep(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "retry_scheduled",
            operation=operation_name,
            attempt=retry_state.attempt_number,
            wait_seconds=round(retry_state.next_action.sleep, 3) if retry_state.next_action else None,
            error=str(error) if error else None,
            **context,
        )

    return before_sleep


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    operation_name: str,
    **context: Any,
) -> T:
    """Run an async operation under a retry policy.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        policy: Retry policy to apply
        operation_name: Name used in retry log events
        **context: Extra structured fields for retry log events

    Returns:
        Result of the first successful attempt

    Raises:
        Exception: The last error once attempts are exhausted, or the first
            error the policy declines to retry
    """
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=policy.wait_strategy(),
        retry=retry_if_exception(policy.should_retry),
        before_sleep=_log_before_sleep(operation_name, context),
        reraise=True,
    ):
        with attempt:
            return await operation()

    raise RuntimeError("Unexpected retry loop exit")
