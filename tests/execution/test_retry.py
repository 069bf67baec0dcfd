"""Tests for the retry policy evaluator."""

from datetime import timedelta

import pytest

from taskhub.execution.retry import GIVE_UP, GiveUp, RetryPolicy, next_delay


def seconds(n: float) -> timedelta:
    return timedelta(seconds=n)


class TestRetryPolicy:
    def test_defaults(self):
        policy = RetryPolicy(max_number_of_attempts=3)
        assert policy.first_retry_interval == seconds(1)
        assert policy.backoff_coefficient == 1.0
        assert policy.max_retry_interval is None
        assert policy.retry_timeout is None

    def test_builders_return_copies(self):
        base = RetryPolicy(max_number_of_attempts=3)
        tuned = base.with_backoff_coefficient(2.0).with_max_retry_interval(seconds(10)).with_retry_timeout(seconds(60))
        assert base.backoff_coefficient == 1.0
        assert tuned.backoff_coefficient == 2.0
        assert tuned.max_retry_interval == seconds(10)
        assert tuned.retry_timeout == seconds(60)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_number_of_attempts": 0},
            {"max_number_of_attempts": 3, "first_retry_interval": timedelta(0)},
            {"max_number_of_attempts": 3, "backoff_coefficient": 0.5},
            {"max_number_of_attempts": 3, "first_retry_interval": seconds(5), "max_retry_interval": seconds(1)},
            {"max_number_of_attempts": 3, "first_retry_interval": seconds(5), "retry_timeout": seconds(1)},
        ],
    )
    def test_rejects_invalid(self, kwargs):
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)


class TestNextDelay:
    def test_schedule_then_give_up(self):
        """first=1s, max=3, cap=10s, backoff=2 gives 0s, 1s, 2s, then GIVE_UP."""
        policy = RetryPolicy(
            max_number_of_attempts=3,
            first_retry_interval=seconds(1),
            max_retry_interval=seconds(10),
            backoff_coefficient=2.0,
        )
        assert [next_delay(policy, n) for n in (1, 2, 3, 4)] == [seconds(0), seconds(1), seconds(2), GIVE_UP]

    def test_interval_is_capped(self):
        """backoff=10, first=1s, cap=5s: attempt 3 would be 10s, clamps to 5s."""
        policy = RetryPolicy(
            max_number_of_attempts=5,
            first_retry_interval=seconds(1),
            max_retry_interval=seconds(5),
            backoff_coefficient=10.0,
        )
        assert next_delay(policy, 3) == seconds(5)

    def test_first_attempt_is_immediate(self):
        assert next_delay(RetryPolicy(max_number_of_attempts=1, first_retry_interval=seconds(30)), 1) == timedelta(0)

    def test_single_attempt_policy_never_retries(self):
        assert next_delay(RetryPolicy(max_number_of_attempts=1), 2) is GiveUp.GIVE_UP

    def test_constant_backoff(self):
        policy = RetryPolicy(max_number_of_attempts=5, first_retry_interval=seconds(3))
        assert {next_delay(policy, n) for n in (2, 3, 4, 5)} == {seconds(3)}

    def test_retry_timeout_is_strict(self):
        policy = RetryPolicy(max_number_of_attempts=10, retry_timeout=seconds(5))
        assert next_delay(policy, 2, elapsed=seconds(5)) == seconds(1)
        assert next_delay(policy, 2, elapsed=seconds(6)) is GIVE_UP

    def test_huge_exponent_does_not_overflow(self):
        policy = RetryPolicy(max_number_of_attempts=1000, backoff_coefficient=10.0)
        delay = next_delay(policy, 500)
        assert isinstance(delay, timedelta)
        assert delay > timedelta(days=365)

    def test_attempt_must_be_positive(self):
        with pytest.raises(ValueError):
            next_delay(RetryPolicy(max_number_of_attempts=3), 0)
