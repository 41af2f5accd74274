"""Retry backoff policies and the pure delay calculation."""

from dataclasses import dataclass
from typing import Optional, Union

from autopilot.backend.models import BackoffSettings, BackoffType

# One hour
DEFAULT_MAX_DELAY_MS = 3_600_000


@dataclass(frozen=True)
class FixedBackoff:
    delay_ms: int


@dataclass(frozen=True)
class ExponentialBackoff:
    base_ms: int
    cap_ms: int = DEFAULT_MAX_DELAY_MS


BackoffPolicy = Union[FixedBackoff, ExponentialBackoff]


def compute_retry_delay(policy: BackoffPolicy, attempts_made: int) -> int:
    """Delay in milliseconds before the next run after ``attempts_made`` failures.

    Fixed policies always wait ``delay_ms``. Exponential policies wait
    ``base_ms * 2 ** (attempts_made - 1)`` capped at ``cap_ms``.
    """
    if attempts_made < 1:
        raise ValueError("attempts_made must be at least 1")
    if isinstance(policy, FixedBackoff):
        return policy.delay_ms
    if isinstance(policy, ExponentialBackoff):
        return min(policy.base_ms * (2 ** (attempts_made - 1)), policy.cap_ms)
    raise TypeError(f"Unsupported backoff policy: {policy!r}")


def to_settings(policy: BackoffPolicy) -> BackoffSettings:
    if isinstance(policy, FixedBackoff):
        return BackoffSettings(type=BackoffType.FIXED, delay_ms=policy.delay_ms)
    return BackoffSettings(
        type=BackoffType.EXPONENTIAL,
        delay_ms=policy.base_ms,
        max_delay_ms=policy.cap_ms,
    )


def from_settings(
    settings: BackoffSettings, default_cap_ms: Optional[int] = None
) -> BackoffPolicy:
    if settings.type == BackoffType.FIXED:
        return FixedBackoff(settings.delay_ms)
    cap = settings.max_delay_ms or default_cap_ms or DEFAULT_MAX_DELAY_MS
    return ExponentialBackoff(settings.delay_ms, cap)
