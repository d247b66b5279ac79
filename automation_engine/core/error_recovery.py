"""Retry helpers used by the ``retry`` error-handling mode."""

import logging
import random
import time
from typing import Any, Callable, Optional, Sequence, Type

from .exceptions import WorkflowEngineError
from .logging import get_logger, log_with_context

logger = get_logger(__name__)


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
        jitter: bool = False,
        retryable_exceptions: Optional[Sequence[Type[Exception]]] = None
    ):
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.retryable_exceptions = tuple(retryable_exceptions or (Exception,))

    @classmethod
    def from_policy(cls, policy) -> 'RetryConfig':
        """Build a retry configuration from a workflow ``RetryPolicy``."""
        return cls(
            max_attempts=policy.max_attempts,
            base_delay=policy.initial_delay,
            max_delay=policy.max_delay,
            exponential_base=policy.backoff_multiplier,
        )

    def should_retry(self, exception: Exception, attempt: int) -> bool:
        """Determine if an exception should be retried."""
        if attempt >= self.max_attempts:
            return False

        # Engine errors carry their own verdict
        if isinstance(exception, WorkflowEngineError):
            return exception.recoverable

        return isinstance(exception, self.retryable_exceptions)

    def get_delay(self, attempt: int) -> float:
        """Calculate delay after the given (1-based) failed attempt."""
        delay = self.base_delay * (self.exponential_base ** (attempt - 1))
        delay = min(delay, self.max_delay)

        if self.jitter:
            delay *= (0.5 + random.random() * 0.5)

        return delay


def execute_with_retry(
    func: Callable[[], Any],
    config: RetryConfig,
    on_retry: Optional[Callable[[Exception, int, float], None]] = None,
    sleep: Callable[[float], Any] = time.sleep,
    operation: Optional[str] = None
) -> Any:
    """
    Call ``func`` until it succeeds or the retry budget is spent.

    Args:
        func: Zero-argument callable to invoke
        config: Retry configuration
        on_retry: Called with (error, failed_attempt, delay) before each retry
        sleep: Function used to wait between attempts; a truthy return value
            means the wait was interrupted and ends the retries
        operation: Name used in log messages

    Returns:
        Whatever ``func`` returns on its first successful attempt

    Raises:
        The last exception raised by ``func``, also when a wait is interrupted
    """
    operation = operation or getattr(func, "__name__", "operation")
    attempt = 0

    while True:
        attempt += 1
        try:
            return func()
        except Exception as e:
            if not config.should_retry(e, attempt):
                if attempt > 1:
                    log_with_context(
                        logger, logging.ERROR,
                        f"Failed to recover from {operation} after {attempt} attempts",
                        operation=operation,
                        error_type=type(e).__name__,
                        error_message=str(e),
                        attempts_used=attempt
                    )
                raise

            delay = config.get_delay(attempt)
            log_with_context(
                logger, logging.WARNING,
                f"Recovery attempt {attempt}/{config.max_attempts} for {operation}",
                operation=operation,
                error_type=type(e).__name__,
                error_message=str(e),
                attempt=attempt,
                max_attempts=config.max_attempts
            )
            if on_retry:
                on_retry(e, attempt, delay)
            if sleep(delay):
                log_with_context(
                    logger, logging.INFO,
                    f"Retries of {operation} abandoned after {attempt} attempts: wait interrupted",
                    operation=operation,
                    attempts_used=attempt
                )
                raise

