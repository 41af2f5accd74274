from .alerting import AlertThresholds, evaluate_sweep
from .health import HealthStatus, derive_health_status
from .metrics import RollingMetrics
from .prober import DEFAULT_ENDPOINTS, PeriodicProber

__all__ = [
    "AlertThresholds",
    "DEFAULT_ENDPOINTS",
    "HealthStatus",
    "PeriodicProber",
    "RollingMetrics",
    "derive_health_status",
    "evaluate_sweep",
]
