"""Circuit breaker for the AeroSpace CLI.

When AeroSpace is overloaded, every command can hang until its timeout and
a single activation issues dozens of them. After one timeout the breaker
opens and fails every call immediately until the cooldown elapses, then
closes again. There is no half-open probing.

One instance is shared by every caller in the process. It also holds the
lock that serializes window manager invocations: the AeroSpace CLI races
when focus/move commands run concurrently.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from ..errors import CircuitOpenError, CommandTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_COOLDOWN_SECONDS = 30.0


@dataclass(frozen=True)
class CircuitBreakerState:
    """Snapshot of breaker state."""
    is_open: bool
    opened_at: Optional[float]
    failure_count: int


class CircuitBreaker:
    """Fail-fast guard around calls to an unreliable external process."""

    def __init__(
        self,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize circuit breaker.

        Args:
            cooldown_seconds: How long the breaker stays open after a timeout
            clock: Monotonic time source (injectable for tests)
        """
        if cooldown_seconds <= 0:
            raise ValueError("cooldown_seconds must be positive")
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._is_open = False
        self._opened_at: Optional[float] = None
        self._failure_count = 0
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitBreakerState:
        return CircuitBreakerState(
            is_open=self._is_open,
            opened_at=self._opened_at,
            failure_count=self._failure_count,
        )

    @property
    def is_open(self) -> bool:
        """True while calls would be rejected."""
        return self._remaining() > 0

    def _remaining(self) -> float:
        if not self._is_open or self._opened_at is None:
            return 0.0
        return max(0.0, self.cooldown_seconds - (self._clock() - self._opened_at))

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run an operation unless the breaker is open.

        Args:
            operation: Zero-argument coroutine function to invoke

        Returns:
            The operation's result

        Raises:
            CircuitOpenError: If the breaker is open (operation not invoked)
            CommandTimeoutError: If the operation timed out (breaker now open)
            Exception: Any other error from the operation, unchanged
        """
        async with self._lock:
            remaining = self._remaining()
            if remaining > 0:
                logger.debug(f"Circuit open, rejecting call ({remaining:.1f}s remaining)")
                raise CircuitOpenError(remaining, self.cooldown_seconds)

            if self._is_open:
                logger.info("Circuit breaker cooldown elapsed, closing")
                self._is_open = False
                self._opened_at = None

            try:
                result = await operation()
            except CommandTimeoutError as e:
                self._trip(e)
                raise

            self._failure_count = 0
            return result

    def _trip(self, error: CommandTimeoutError) -> None:
        self._failure_count += 1
        self._is_open = True
        self._opened_at = self._clock()
        logger.warning(
            f"Circuit breaker tripped by timeout ({error.command}); "
            f"failing fast for {self.cooldown_seconds:g}s"
        )

    def reset(self) -> None:
        """Close the breaker immediately."""
        self._is_open = False
        self._opened_at = None
        self._failure_count = 0
