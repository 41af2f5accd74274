from dataclasses import dataclass
from enum import Enum
from typing import List

from autopilot.backend.models import Alert, AlertType, ProbeMetrics
from autopilot.config import ProberConfig

ACTIVE_ALERT_WINDOW_MS = 24 * 60 * 60 * 1000


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"

    def __str__(self):
        return self.value


@dataclass(frozen=True)
class HealthThresholds:
    healthy_uptime: float = 0.95
    degraded_uptime: float = 0.90
    max_active_alerts: int = 5

    @classmethod
    def from_config(cls, config: ProberConfig) -> "HealthThresholds":
        return cls(
            healthy_uptime=config.healthy_uptime,
            degraded_uptime=config.degraded_uptime,
            max_active_alerts=config.max_active_alerts,
        )


def active_alerts(alerts: List[Alert], now: int) -> List[Alert]:
    """Alerts raised in the last 24 hours."""
    return [a for a in alerts if a.timestamp > now - ACTIVE_ALERT_WINDOW_MS]


def derive_health_status(
    metrics: ProbeMetrics,
    alerts: List[Alert],
    now: int,
    thresholds: HealthThresholds = HealthThresholds(),
) -> HealthStatus:
    active = active_alerts(alerts, now)
    if (
        metrics.uptime < thresholds.degraded_uptime
        or len(active) > thresholds.max_active_alerts
    ):
        return HealthStatus.UNHEALTHY
    if metrics.uptime < thresholds.healthy_uptime or any(
        a.type == AlertType.CRITICAL_FAILURE for a in active
    ):
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY
