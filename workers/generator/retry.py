"""
Bounded exponential backoff around a single backend call.
"""
import logging
import random
import time
from typing import Any, Callable, NamedTuple

from .cancel import check_cancelled
from .errors import is_transient

LOGGER = logging.getLogger("aijobs.retry")


class RetryPolicy(NamedTuple):
    max_attempts: int = 3
    base_delay: float = 1.0
    # upper bound of the uniform jitter added to every sleep
    jitter: float = 1.0
    is_retryable: Callable[[BaseException], bool] = is_transient


DEFAULT_POLICY = RetryPolicy(max_attempts=3, base_delay=1.0, jitter=1.0)
PRO_POLICY = RetryPolicy(max_attempts=6, base_delay=2.0, jitter=2.0)


def backoff_delay(policy: RetryPolicy, attempt: int, rand=random.uniform) -> float:
    """Sleep between attempt `attempt` (0-based) and the next one."""
    return policy.base_delay * (2**attempt) + rand(0, policy.jitter)


def with_retry(
    operation: Callable[[], Any],
    policy: RetryPolicy = DEFAULT_POLICY,
    sleep: Callable[[float], None] = time.sleep,
    rand=random.uniform,
):
    if policy.max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")
    attempt = 0
    while True:
        check_cancelled()
        try:
            return operation()
        except Exception as e:
            retryable = policy.is_retryable(e)
            if hasattr(e, "attempts"):
                e.attempts = attempt + 1
            if not retryable or attempt + 1 >= policy.max_attempts:
                LOGGER.warning(
                    "giving up",
                    extra={"attempt": attempt + 1, "retryable": retryable, "error": str(e)},
                )
                raise
            delay = backoff_delay(policy, attempt, rand)
            LOGGER.info(
                "retrying after transient error",
                extra={"attempt": attempt + 1, "delay": round(delay, 3), "error": str(e)},
            )
            check_cancelled()
            sleep(delay)
            attempt += 1


def policy_for(job) -> RetryPolicy:
    """Pro-tier jobs wait longer; their backend is scarcer."""
    data = getattr(job, "input", None) or {}
    tier = str(data.get("tier") or "").lower()
    model = str((data.get("config") or {}).get("model") or "").lower()
    if tier == "pro" or "-pro" in model:
        return PRO_POLICY
    return DEFAULT_POLICY
