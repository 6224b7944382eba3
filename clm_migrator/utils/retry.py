"""
Retry state machine shared by folder resolution and document upload.

Folder resolution backs off exponentially (base * 2**attempt); uploads wait
a fixed delay. Each retry loop owns exactly one RetryState.
"""
import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

Sleeper = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """How long to wait between attempts and when to give up."""
    base_delay: float
    max_attempts: int
    exponential: bool = False
    max_delay: Optional[float] = None

    def delay_for(self, attempt: int) -> float:
        """Delay (seconds) to wait after failed attempt number `attempt` (0-based)."""
        if not self.exponential:
            return self.base_delay
        delay = (2 ** attempt) * self.base_delay
        if self.max_delay is not None:
            return min(delay, self.max_delay)
        return delay

    def start(self) -> "RetryState":
        return RetryState(attempt=0, max_attempts=self.max_attempts, next_delay=self.delay_for(0), policy=self)

    @classmethod
    def exponential_backoff(cls, base_delay: float, max_attempts: int, max_delay: Optional[float] = None):
        return cls(base_delay=base_delay, max_attempts=max_attempts, exponential=True, max_delay=max_delay)

    @classmethod
    def fixed(cls, delay: float, max_attempts: int):
        return cls(base_delay=delay, max_attempts=max_attempts, exponential=False)


@dataclass
class RetryState:
    """Transient state of one retry loop; discarded on success or exhaustion."""
    attempt: int
    max_attempts: int
    next_delay: float
    policy: RetryPolicy

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.max_attempts

    def record_failure(self) -> float:
        """
        Count a failed attempt.

        Returns the delay to wait before the next attempt. The delay is
        computed from the attempt that just failed, so the wait after
        attempt k is `policy.delay_for(k)`.
        """
        delay = self.policy.delay_for(self.attempt)
        self.attempt += 1
        self.next_delay = self.policy.delay_for(self.attempt)
        return delay

    async def wait(self, delay: float, sleep: Optional[Sleeper] = None) -> None:
        if self.exhausted:
            return
        await (sleep or asyncio.sleep)(delay)
