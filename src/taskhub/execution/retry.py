"""Retry policies for durable activity and sub-orchestration calls.

A ``RetryPolicy`` is attached to a call site inside an orchestrator. The
activity itself is retry-agnostic: every retry is a new scheduled task,
decided by the orchestration when it replays a failure. ``next_delay`` is
the pure evaluator behind that decision.

Delay for attempt *n* (1-based)::

    n == 1   → 0
    n  > 1   → min(first_retry_interval × backoff_coefficient^(n-2), max_retry_interval)
    give up  ← n > max_number_of_attempts  or  elapsed > retry_timeout

Example:
    >>> from datetime import timedelta
    >>> policy = RetryPolicy(
    ...     max_number_of_attempts=3,
    ...     first_retry_interval=timedelta(seconds=1),
    ...     backoff_coefficient=2.0,
    ...     max_retry_interval=timedelta(seconds=10),
    ... )
    >>> [next_delay(policy, n) for n in (1, 2, 3, 4)]
    [datetime.timedelta(0), datetime.timedelta(seconds=1), datetime.timedelta(seconds=2), <GiveUp.GIVE_UP: 'give_up'>]
"""

from dataclasses import dataclass, replace
from datetime import timedelta
from enum import Enum

# Ceiling for computed delays so huge attempt numbers cannot overflow timedelta
_MAX_DELAY_SECONDS = timedelta.max.total_seconds() / 2


class GiveUp(Enum):
    """Sentinel returned by ``next_delay`` when no further attempt is allowed."""

    GIVE_UP = "give_up"


GIVE_UP = GiveUp.GIVE_UP


@dataclass(frozen=True)
class RetryPolicy:
    """Immutable retry configuration for one call site.

    Attributes:
        max_number_of_attempts: Total attempts including the first (≥ 1)
        first_retry_interval: Delay before attempt 2 (> 0)
        backoff_coefficient: Multiplier applied per further attempt (≥ 1.0)
        max_retry_interval: Cap for any single delay (None = uncapped)
        retry_timeout: Give up once this much time has passed since attempt 1
            (None = unlimited)

    Raises:
        ValueError: If any field is out of range.
    """

    max_number_of_attempts: int
    first_retry_interval: timedelta = timedelta(seconds=1)
    backoff_coefficient: float = 1.0
    max_retry_interval: timedelta | None = None
    retry_timeout: timedelta | None = None

    def __post_init__(self) -> None:
        if self.max_number_of_attempts < 1:
            raise ValueError("max_number_of_attempts must be greater than zero")
        if self.first_retry_interval <= timedelta(0):
            raise ValueError("first_retry_interval must be greater than zero")
        if self.backoff_coefficient < 1.0:
            raise ValueError("backoff_coefficient must be greater than or equal to 1.0")
        if self.max_retry_interval is not None and self.max_retry_interval < self.first_retry_interval:
            raise ValueError("max_retry_interval must be greater than or equal to first_retry_interval")
        if self.retry_timeout is not None and self.retry_timeout < self.first_retry_interval:
            raise ValueError("retry_timeout must be greater than or equal to first_retry_interval")

    # Builder-style copies

    def with_backoff_coefficient(self, coefficient: float) -> "RetryPolicy":
        return replace(self, backoff_coefficient=coefficient)

    def with_max_retry_interval(self, interval: timedelta | None) -> "RetryPolicy":
        return replace(self, max_retry_interval=interval)

    def with_retry_timeout(self, timeout: timedelta | None) -> "RetryPolicy":
        return replace(self, retry_timeout=timeout)


def next_delay(
    policy: RetryPolicy,
    attempt: int,
    elapsed: timedelta = timedelta(0),
) -> timedelta | GiveUp:
    """Delay before ``attempt`` runs, or ``GIVE_UP``.

    Args:
        policy: The call site's retry policy
        attempt: 1-based attempt number about to run
        elapsed: Time since attempt 1 started

    Returns:
        ``timedelta(0)`` for the first attempt, the backoff delay for later
        attempts, or ``GIVE_UP`` when the attempt budget or the retry timeout
        is exhausted.
    """
    if attempt < 1:
        raise ValueError(f"attempt must be 1 or greater, got {attempt}")
    if attempt > policy.max_number_of_attempts:
        return GIVE_UP
    if policy.retry_timeout is not None and elapsed > policy.retry_timeout:
        return GIVE_UP
    if attempt == 1:
        return timedelta(0)

    try:
        seconds = policy.first_retry_interval.total_seconds() * policy.backoff_coefficient ** (attempt - 2)
    except OverflowError:
        seconds = _MAX_DELAY_SECONDS
    if policy.max_retry_interval is not None:
        seconds = min(seconds, policy.max_retry_interval.total_seconds())
    return timedelta(seconds=min(seconds, _MAX_DELAY_SECONDS))
