"""
Tests for BackoffPolicy value object.

Covers:
- Fixed policy returns a constant delay
- Exponential doubling per finalized attempt
- Jitter band (+/-20%) and the 5 minute cap
- Dict round trip used by the brokers
"""

import random

import pytest
from pydantic import ValidationError

from src.domain.jobs import BackoffKind, BackoffPolicy
from src.domain.jobs.constants import MAX_BACKOFF_MS


class _PinnedRandom(random.Random):
    """Random source whose uniform() always returns a fixed value."""

    def __init__(self, value: float) -> None:
        super().__init__()
        self._value = value

    def uniform(self, a, b):
        return self._value


def test_fixed_policy_ignores_attempt_count():
    policy = BackoffPolicy.fixed(500)

    assert policy.kind == BackoffKind.FIXED
    assert policy.compute_delay_ms(0) == 500
    assert policy.compute_delay_ms(7) == 500


@pytest.mark.parametrize(
    "attempts_made, expected",
    [(0, 2000), (1, 4000), (2, 8000), (3, 16000)],
)
def test_exponential_doubles_without_jitter(attempts_made, expected):
    policy = BackoffPolicy.exponential(2000)

    assert policy.compute_delay_ms(attempts_made, rng=_PinnedRandom(0.0)) == expected


def test_exponential_jitter_stays_within_band():
    policy = BackoffPolicy.exponential(1000)
    rng = random.Random(42)

    delays = [policy.compute_delay_ms(2, rng=rng) for _ in range(200)]

    assert min(delays) >= 3200
    assert max(delays) <= 4800


def test_exponential_is_capped_at_five_minutes():
    policy = BackoffPolicy.exponential(2000)

    # Upper jitter must not push the delay above the cap
    assert policy.compute_delay_ms(20, rng=_PinnedRandom(0.2)) == MAX_BACKOFF_MS
    assert policy.compute_delay_ms(10_000, rng=_PinnedRandom(0.0)) == MAX_BACKOFF_MS


def test_negative_delay_rejected():
    with pytest.raises(ValidationError):
        BackoffPolicy.fixed(-1)


def test_policy_is_immutable():
    policy = BackoffPolicy.fixed(100)

    with pytest.raises(ValidationError):
        policy.delay_ms = 5


def test_dict_round_trip():
    policy = BackoffPolicy.exponential(250)

    assert BackoffPolicy.from_dict(policy.to_dict()) == policy
