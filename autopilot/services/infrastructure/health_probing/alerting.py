"""Alert rules applied to probe results."""

import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from autopilot.backend.models import (
    Alert,
    AlertSeverity,
    AlertType,
    EndpointResult,
    TestResult,
)
from autopilot.config import ProberConfig


@dataclass(frozen=True)
class AlertThresholds:
    # Both compared with strict ">"
    error_rate: float = 0.05
    response_time_ms: float = 5000.0

    @classmethod
    def from_config(cls, config: ProberConfig) -> "AlertThresholds":
        return cls(
            error_rate=config.error_rate_threshold,
            response_time_ms=config.response_time_threshold_ms,
        )


def _new_alert(
    alert_type: AlertType,
    message: str,
    severity: AlertSeverity,
    now: int,
    details: Optional[Dict[str, Any]] = None,
) -> Alert:
    return Alert(
        id=f"alert_{now}_{uuid.uuid4().hex[:8]}",
        type=alert_type,
        message=message,
        severity=severity,
        timestamp=now,
        details=details or {},
    )


def critical_failure_alert(
    message: str, failures: List[EndpointResult], now: int
) -> Alert:
    return _new_alert(
        AlertType.CRITICAL_FAILURE,
        f"CRITICAL: {message}",
        AlertSeverity.HIGH,
        now,
        {"failures": [failure.model_dump() for failure in failures]},
    )


def evaluate_sweep(
    result: TestResult, thresholds: AlertThresholds, now: int
) -> List[Alert]:
    """Return the alerts raised by one endpoint sweep.

    Results without a summary (health checks, bursts) raise nothing here.
    """
    summary = result.summary
    if summary is None or summary.total == 0:
        return []

    alerts: List[Alert] = []
    context = {"test_id": result.test_id, "summary": summary.model_dump()}

    error_rate = summary.error_rate
    if error_rate > thresholds.error_rate:
        alerts.append(
            _new_alert(
                AlertType.HIGH_ERROR_RATE,
                f"High error rate detected: {error_rate * 100:.1f}% "
                f"({summary.failed}/{summary.total} failed)",
                AlertSeverity.MEDIUM,
                now,
                context,
            )
        )

    if summary.avg_response_time > thresholds.response_time_ms:
        alerts.append(
            _new_alert(
                AlertType.SLOW_RESPONSE,
                f"Slow response time detected: {summary.avg_response_time:.0f}ms average",
                AlertSeverity.MEDIUM,
                now,
                context,
            )
        )

    critical = [r for r in result.results if r.critical and not r.success]
    if critical:
        alerts.append(critical_failure_alert("Critical endpoint failures", critical, now))

    return alerts
