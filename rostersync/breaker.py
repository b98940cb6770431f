"""
Circuit breaker for registry writes.

A sync run never retries a failed write. The breaker is off unless
WRITE_BREAKER_THRESHOLD is set; when on, N consecutive failures open it and
the remaining writes are skipped and reported per row.
"""

from datetime import datetime
from typing import Callable, Optional, Type

from .errors import RegistryError


class CircuitBreaker:
    """
    Circuit breaker pattern to stop calling a failing registry.

    States:
    - CLOSED: Normal operation, calls pass through
    - OPEN: Too many consecutive failures, calls are refused
    - HALF_OPEN: One trial call is allowed after the recovery timeout
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: int = 60,
        expected_exception: Type[Exception] = RegistryError,
    ):
        """
        Initialize circuit breaker.

        Args:
            failure_threshold: Consecutive failures before opening (<= 0 disables)
            recovery_timeout: Seconds to wait before allowing a trial call
            expected_exception: Exception type that counts as failure
        """
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.expected_exception = expected_exception

        self.failure_count = 0
        self.last_failure_time: Optional[datetime] = None
        self.state = self.CLOSED

    def call(self, func: Callable, *args, **kwargs):
        """
        Execute function with circuit breaker protection.

        Raises:
            RegistryError: If circuit is OPEN
            Original exception: If function fails in CLOSED/HALF_OPEN state
        """
        if self.state == self.OPEN:
            if self._should_attempt_reset():
                self.state = self.HALF_OPEN
            else:
                raise RegistryError(
                    f"Circuit breaker is OPEN after {self.failure_count} consecutive write failures; write skipped"
                )

        try:
            result = func(*args, **kwargs)
        except self.expected_exception:
            self._on_failure()
            raise
        self._on_success()
        return result

    @property
    def is_open(self) -> bool:
        return self.state == self.OPEN

    def _should_attempt_reset(self) -> bool:
        if self.last_failure_time is None:
            return True

        elapsed = (datetime.now() - self.last_failure_time).total_seconds()
        return elapsed >= self.recovery_timeout

    def _on_success(self):
        self.failure_count = 0
        self.state = self.CLOSED

    def _on_failure(self):
        self.failure_count += 1
        self.last_failure_time = datetime.now()

        if self.failure_threshold > 0 and (
            self.state == self.HALF_OPEN or self.failure_count >= self.failure_threshold
        ):
            self.state = self.OPEN

    def reset(self):
        """Manually reset the circuit breaker."""
        self.failure_count = 0
        self.last_failure_time = None
        self.state = self.CLOSED
