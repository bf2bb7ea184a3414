"""Single retry-with-backoff helper shared by feeds, LLM calls and writes."""

from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from .logging import get_logger

T = TypeVar("T")
logger = get_logger("newsroom.retry")

RetryPredicate = Callable[[BaseException], bool]


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    """How many times to try and how long to wait between attempts.

    ``attempts`` counts the first call, so ``attempts=1`` means no retry.
    The delay before retry ``n`` (1-based) is
    ``min(max_delay, base_delay * multiplier ** (n - 1)) + uniform(0, jitter)``.
    """

    attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0
    jitter: float = 0.2

    def delay_for(self, retry_number: int) -> float:
        delay = min(self.max_delay, self.base_delay * (self.multiplier ** (retry_number - 1)))
        if self.jitter > 0:
            delay += random.uniform(0, self.jitter)
        return max(0.0, delay)


NO_RETRY = RetryPolicy(attempts=1, base_delay=0.0, jitter=0.0)


def _always(_: BaseException) -> bool:
    return True


def retry_call(
    fn: Callable[[], T],
    *,
    policy: RetryPolicy = RetryPolicy(),
    retryable: Optional[RetryPredicate] = None,
    label: str = "call",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``fn`` until it succeeds or the policy is exhausted.

    Exceptions for which ``retryable`` returns False are raised immediately.
    The last exception is re-raised unchanged once attempts run out.
    """
    should_retry = retryable or _always
    attempts = max(1, policy.attempts)
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except Exception as exc:  # noqa: BLE001 - re-raised below when terminal
            if attempt >= attempts or not should_retry(exc):
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                "%s failed (attempt %s/%s): %s; retrying in %.2fs",
                label,
                attempt,
                attempts,
                exc,
                delay,
            )
            sleep(delay)
    raise AssertionError("unreachable")  # pragma: no cover
