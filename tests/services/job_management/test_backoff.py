"""Tests for retry backoff policies."""

import pytest

from autopilot.backend.models import BackoffSettings, BackoffType
from autopilot.services.infrastructure.job_management.backoff import (
    ExponentialBackoff,
    FixedBackoff,
    compute_retry_delay,
    from_settings,
    to_settings,
)


class TestComputeRetryDelay:
    def test_fixed_delay_never_grows(self):
        policy = FixedBackoff(10_000)
        assert [compute_retry_delay(policy, n) for n in (1, 2, 5)] == [
            10_000,
            10_000,
            10_000,
        ]

    def test_exponential_doubles_from_base(self):
        policy = ExponentialBackoff(2000)
        assert compute_retry_delay(policy, 1) == 2000
        assert compute_retry_delay(policy, 2) == 4000
        assert compute_retry_delay(policy, 3) == 8000

    def test_exponential_is_capped(self):
        policy = ExponentialBackoff(5000, cap_ms=12_000)
        assert compute_retry_delay(policy, 2) == 10_000
        assert compute_retry_delay(policy, 3) == 12_000
        assert compute_retry_delay(policy, 30) == 12_000

    def test_attempts_must_be_positive(self):
        with pytest.raises(ValueError):
            compute_retry_delay(FixedBackoff(100), 0)


class TestSettingsConversion:
    def test_fixed_settings(self):
        settings = to_settings(FixedBackoff(10_000))
        assert settings.type == BackoffType.FIXED
        assert from_settings(settings) == FixedBackoff(10_000)

    def test_exponential_settings_keep_cap(self):
        settings = to_settings(ExponentialBackoff(5000, cap_ms=60_000))
        assert settings.max_delay_ms == 60_000
        assert from_settings(settings) == ExponentialBackoff(5000, 60_000)

    def test_missing_cap_uses_default(self):
        policy = from_settings(
            BackoffSettings(type=BackoffType.EXPONENTIAL, delay_ms=1000),
            default_cap_ms=30_000,
        )
        assert policy == ExponentialBackoff(1000, 30_000)
