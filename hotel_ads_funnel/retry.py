"""
Retry with exponential backoff for ad-platform calls.

Only throttling (RateLimitError) is retried. Auth failures and other API
errors surface immediately so the caller can log and skip the unit.
"""

import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar

from .errors import RateLimitError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: float = 1.0

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number `attempt` (1-based)."""
        backoff = min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))
        return backoff + (random.uniform(0, self.jitter) if self.jitter > 0 else 0)


DEFAULT_POLICY = RetryPolicy()


@dataclass
class Result:
    """Outcome of attempt(): either a value or the error that ended it."""
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def execute(
    fn: Callable[[], T],
    policy: Optional[RetryPolicy] = None,
    sleep: Callable[[float], None] = time.sleep,
    description: str = "request",
) -> T:
    """Call fn(), retrying on RateLimitError; re-raise once attempts run out."""
    policy = policy or DEFAULT_POLICY
    attempts = max(policy.max_attempts, 1)

    for attempt_number in range(1, attempts + 1):
        try:
            return fn()
        except RateLimitError as e:
            if attempt_number == attempts:
                logger.error("%s rate limited, giving up after %d attempts: %s",
                             description, attempts, e)
                raise
            delay = policy.delay_for(attempt_number)
            logger.warning("%s rate limited (attempt %d/%d), retrying in %.1fs",
                           description, attempt_number, attempts, delay)
            sleep(delay)

    raise AssertionError("unreachable")


def attempt(
    fn: Callable[[], T],
    policy: Optional[RetryPolicy] = None,
    sleep: Callable[[float], None] = time.sleep,
    description: str = "request",
) -> Result:
    """Like execute(), but returns a Result instead of raising."""
    try:
        return Result(value=execute(fn, policy, sleep=sleep, description=description))
    except Exception as e:
        return Result(error=e)
