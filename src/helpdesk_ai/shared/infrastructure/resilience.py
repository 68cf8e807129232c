"""
Resilience Utilities
====================

Circuit breaker and retry-with-backoff used by outbound adapters
(notification webhook, LLM provider) and by the triage workflow.
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from helpdesk_ai.shared.infrastructure.logging import LoggerLike, get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker for preventing cascade failures.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: After N failures, reject all requests for M seconds
    - HALF_OPEN: After timeout, allow one test request
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None

    @property
    def state(self) -> str:
        """Get current circuit state."""
        if self._state == CircuitState.OPEN and self._last_failure_time is not None:
            if time.monotonic() - self._last_failure_time >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        """Check if request should be allowed."""
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        """Record successful request."""
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        """Record failed request."""
        self._failure_count += 1
        self._last_failure_time = time.monotonic()

        if self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "circuit": self.name,
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    *,
    retries: int = 3,
    min_delay: float = 1.0,
    max_delay: float = 10.0,
    factor: float = 2.0,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    on_retry: Optional[Callable[[int, BaseException], Awaitable[None]]] = None,
    log: Optional[LoggerLike] = None,
) -> T:
    """
    Await ``operation`` until it succeeds or ``retries`` extra attempts fail.

    Delay before attempt ``n`` (1-based retry count) is
    ``min(max_delay, min_delay * factor ** (n - 1))``.

    Args:
        operation: Zero-argument coroutine factory
        retries: Number of retries after the first attempt
        min_delay: First backoff delay in seconds
        max_delay: Upper bound on any delay
        factor: Exponential growth factor
        retry_on: Exception types that trigger a retry
        on_retry: Optional hook awaited before each retry
        log: Logger for retry warnings

    Returns:
        The operation's result

    Raises:
        The last exception once retries are exhausted
    """
    log = log or logger
    attempt = 0
    while True:
        try:
            return await operation()
        except retry_on as e:
            if attempt >= retries:
                raise
            attempt += 1
            delay = min(max_delay, min_delay * factor ** (attempt - 1))
            log.warning(
                "Operation failed, retrying",
                extra={"attempt": attempt, "retries": retries, "delay_seconds": delay, "error": str(e)}
            )
            if on_retry is not None:
                await on_retry(attempt, e)
            await asyncio.sleep(delay)
