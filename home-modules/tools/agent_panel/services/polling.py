"""Deadline-bound polling with cooperative cancellation.

Polls are explicit loops: the deadline is computed once on entry, checked
after every attempt, and attempts are paced by sleeping rather than
spinning. Cancellation is a flag checked between attempts.
"""

import asyncio
import threading
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, TypeVar

from ..errors import cancelled

T = TypeVar("T")

Clock = Callable[[], float]
Sleeper = Callable[[float], Awaitable[None]]


class CancellationToken:
    """Flag a caller sets to abandon an in-flight activation.

    Safe to set from any thread (e.g. a UI thread dismissing the panel).
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def check(self, stage: str) -> None:
        """Raise ApError(cancelled) if cancellation was requested."""
        if self._event.is_set():
            raise cancelled(stage)


def check_cancelled(token: Optional[CancellationToken], stage: str) -> None:
    if token is not None:
        token.check(stage)


@dataclass(frozen=True)
class PollSchedule:
    """Sleep intervals between attempts, in seconds.

    The first attempts use `initial_intervals` in order, then `steady_interval`.
    """
    steady_interval: float
    initial_intervals: Tuple[float, ...] = ()

    def interval(self, attempt: int) -> float:
        if attempt < len(self.initial_intervals):
            return self.initial_intervals[attempt]
        return self.steady_interval


async def poll(
    attempt: Callable[[], Awaitable[Optional[T]]],
    timeout: float,
    schedule: PollSchedule,
    clock: Clock = time.monotonic,
    sleep: Sleeper = asyncio.sleep,
    cancellation: Optional[CancellationToken] = None,
    stage: str = "polling",
) -> Optional[T]:
    """Call `attempt` until it returns a value or the deadline passes.

    Args:
        attempt: Coroutine function returning a value, or None to keep waiting
        timeout: Overall budget in seconds; <= 0 means do not poll at all
        schedule: Pacing between attempts
        clock: Monotonic time source
        sleep: Async sleep function
        cancellation: Optional cancellation flag, checked before each attempt
        stage: Stage name reported if cancelled

    Returns:
        The first non-None value, or None on timeout

    Raises:
        ApError: cancelled, or whatever `attempt` raises
    """
    if timeout <= 0:
        return None

    deadline = clock() + timeout
    attempts = 0

    while True:
        check_cancelled(cancellation, stage)

        value = await attempt()
        if value is not None:
            return value

        now = clock()
        if now >= deadline:
            return None

        delay = min(schedule.interval(attempts), deadline - now)
        attempts += 1
        await sleep(delay)
