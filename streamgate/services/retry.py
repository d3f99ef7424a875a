"""Bounded exponential backoff as a small, testable state machine.

A RetryPolicy describes the schedule (attempt ceiling, delays, jitter).
A RetryState tracks one operation's progress through it: each failure is
recorded and either yields the delay before the next attempt or None when
the operation must give up (terminal error or budget exhausted).
"""

import asyncio
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry schedule. `max_attempts` counts the first try."""
    max_attempts: int = 4
    base_delay: float = 0.5
    max_delay: float = 8.0
    factor: float = 2.0
    jitter: float = 0.0  # Extra random 0..jitter seconds per delay

    def delay_for(self, attempt: int) -> float:
        """Delay after failed attempt number `attempt` (1-based), without jitter."""
        return min(self.base_delay * (self.factor ** (attempt - 1)), self.max_delay)

    def schedule(self) -> List[float]:
        """All delays this policy can produce, in order."""
        return [self.delay_for(a) for a in range(1, self.max_attempts)]


@dataclass
class RetryState:
    """Progress of one operation through a RetryPolicy."""
    policy: RetryPolicy
    is_transient: Callable[[BaseException], bool]
    attempt: int = 0
    last_error: Optional[BaseException] = None
    delays: List[float] = field(default_factory=list)

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.policy.max_attempts

    def begin(self) -> int:
        """Mark the start of an attempt and return its 1-based number."""
        self.attempt += 1
        return self.attempt

    def record_failure(self, error: BaseException) -> Optional[float]:
        """
        Record a failed attempt.

        Returns:
            Seconds to wait before the next attempt, or None when the error
            is terminal or the attempt budget is spent.
        """
        self.last_error = error
        if not self.is_transient(error) or self.exhausted:
            return None
        delay = self.policy.delay_for(self.attempt)
        if self.policy.jitter:
            delay += random.uniform(0, self.policy.jitter)
        self.delays.append(delay)
        return delay


async def run_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    is_transient: Callable[[BaseException], bool],
    on_retry: Optional[Callable[[RetryState, float], None]] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run `operation` until it succeeds, raises a terminal error, or the
    policy runs out of attempts. The last error is re-raised.

    Cancellation is never retried: CancelledError is not an Exception.
    """
    state = RetryState(policy=policy, is_transient=is_transient)
    while True:
        state.begin()
        try:
            return await operation()
        except Exception as e:
            delay = state.record_failure(e)
            if delay is None:
                raise
            if on_retry is not None:
                on_retry(state, delay)
            await sleep(delay)
