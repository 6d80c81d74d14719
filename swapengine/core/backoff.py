"""
Retry with exponential backoff.

A single policy object used by venue builds, RPC tiers and the Jito relay so
every layer shares the same timing and jitter rules.

Usage:
    policy = BackoffPolicy(max_attempts=2, base_delay=1.0)
    signature = await policy.run(send_once, is_retryable)
"""
import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, TypeVar

from .errors import is_retryable as default_is_retryable

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class BackoffPolicy:
    """Bounded exponential backoff: delay = base * multiplier**attempt (+ jitter), capped."""

    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 10.0
    jitter: float = 0.0                     # Fraction of delay added at random
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must be >= 0")

    def delay_for(self, attempt: int) -> float:
        """Delay after the given zero-based attempt."""
        delay = min(self.max_delay, self.base_delay * (self.multiplier ** attempt))
        if self.jitter > 0:
            delay += delay * self.jitter * random.random()
        return delay

    async def run(
        self,
        operation: Callable[[int], Awaitable[T]],
        is_retryable: Optional[Callable[[BaseException], bool]] = None,
        label: str = "operation",
    ) -> T:
        """
        Call `operation(attempt)` until it returns or attempts run out.

        Non-retryable errors and the error from the final attempt propagate.
        """
        check = is_retryable or default_is_retryable

        for attempt in range(self.max_attempts):
            try:
                return await operation(attempt)
            except Exception as e:
                last_attempt = attempt >= self.max_attempts - 1
                if last_attempt or not check(e):
                    raise
                delay = self.delay_for(attempt)
                logger.debug(f"{label} attempt {attempt + 1}/{self.max_attempts} failed: {e}; retry in {delay:.2f}s")
                await self.sleep(delay)

        raise RuntimeError("unreachable")
