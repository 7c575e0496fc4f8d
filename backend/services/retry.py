"""
Retry with backoff for individual upstream calls.

The aggregation pipeline itself never retries a failing call (it widens the
radius instead); this is only used at photo-fetch granularity, where each
attempt gets a longer timeout than the last.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Tuple, Type, TypeVar

from services.errors import ProviderUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    max_retries retries after the first attempt. Attempt n (0-based) uses
    timeouts[n] (the last entry repeats) and waits backoff_s * (n + 1) before
    the next attempt.
    """
    timeouts: Tuple[float, ...] = (5.0, 8.0, 12.0)
    max_retries: int = 2
    backoff_s: float = 1.0
    retry_on: Tuple[Type[BaseException], ...] = (ProviderUnavailable,)

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def timeout_for(self, attempt: int) -> float:
        return self.timeouts[min(attempt, len(self.timeouts) - 1)]

    def delay_after(self, attempt: int) -> float:
        return self.backoff_s * (attempt + 1)


PHOTO_RETRY_POLICY = RetryPolicy()


def retry_with_backoff(
    func: Callable[[float], T],
    policy: RetryPolicy = PHOTO_RETRY_POLICY,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call func(timeout) until it succeeds or the policy is exhausted.

    Errors outside policy.retry_on propagate immediately. When every attempt
    fails the last error is raised.
    """
    for attempt in range(policy.max_attempts):
        timeout = policy.timeout_for(attempt)
        try:
            return func(timeout)
        except policy.retry_on as exc:
            if attempt + 1 >= policy.max_attempts:
                logger.warning("Giving up after %d attempts: %s", policy.max_attempts, exc)
                raise
            delay = policy.delay_after(attempt)
            logger.info(
                "Attempt %d/%d failed (timeout %.0fs): %s. Retrying in %.1fs",
                attempt + 1, policy.max_attempts, timeout, exc, delay,
            )
            sleep(delay)
    raise RuntimeError("retry policy allows no attempts")
