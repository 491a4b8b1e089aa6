"""Tests for RetryPolicy."""

import pytest
from classroom_media_shared.retry import RetryPolicy


def test_default_policy_delays_double_from_two_seconds() -> None:
    policy = RetryPolicy()
    assert policy.max_attempts == 3
    assert [policy.delay_for(n) for n in (1, 2, 3)] == [2.0, 4.0, 8.0]


def test_should_retry_until_max_attempts() -> None:
    policy = RetryPolicy(max_attempts=3)
    assert policy.should_retry(1)
    assert policy.should_retry(2)
    assert not policy.should_retry(3)


def test_no_delay_before_first_attempt() -> None:
    assert RetryPolicy().delay_for(0) == 0.0


def test_invalid_policy_rejected() -> None:
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)
    with pytest.raises(ValueError):
        RetryPolicy(base_delay_sec=-1)
