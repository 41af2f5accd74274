import os
from dataclasses import dataclass, field
from typing import Dict, List

from dotenv import load_dotenv

from autopilot.lib.logger import configure_logger

logger = configure_logger(__name__)

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class StoreConfig:
    """Where job state and monitoring history are kept."""

    backend: str = os.getenv("AUTOPILOT_STORE_BACKEND", "memory")
    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    key_prefix: str = os.getenv("AUTOPILOT_STORE_KEY_PREFIX", "autopilot")
    connect_retries: int = int(os.getenv("AUTOPILOT_STORE_CONNECT_RETRIES", "10"))
    connect_backoff_ms: int = int(
        os.getenv("AUTOPILOT_STORE_CONNECT_BACKOFF_MS", "100")
    )
    connect_max_backoff_ms: int = int(
        os.getenv("AUTOPILOT_STORE_CONNECT_MAX_BACKOFF_MS", "3000")
    )
    socket_timeout_seconds: float = float(
        os.getenv("AUTOPILOT_STORE_SOCKET_TIMEOUT_SECONDS", "5")
    )


@dataclass
class QueueConfig:
    """Admission defaults and worker behaviour for the job pipeline."""

    default_attempts: int = int(os.getenv("AUTOPILOT_JOB_ATTEMPTS", "3"))
    default_backoff_type: str = os.getenv("AUTOPILOT_JOB_BACKOFF_TYPE", "exponential")
    default_backoff_delay_ms: int = int(
        os.getenv("AUTOPILOT_JOB_BACKOFF_DELAY_MS", "2000")
    )
    max_backoff_delay_ms: int = int(
        os.getenv("AUTOPILOT_JOB_MAX_BACKOFF_DELAY_MS", "3600000")
    )
    default_priority: int = int(os.getenv("AUTOPILOT_JOB_DEFAULT_PRIORITY", "2"))

    # Terminal job retention (most recent N kept per queue)
    keep_completed: int = int(os.getenv("AUTOPILOT_KEEP_COMPLETED_JOBS", "50"))
    keep_failed: int = int(os.getenv("AUTOPILOT_KEEP_FAILED_JOBS", "20"))

    poll_interval_seconds: float = float(
        os.getenv("AUTOPILOT_WORKER_POLL_INTERVAL_SECONDS", "0.5")
    )
    max_idle_interval_seconds: float = float(
        os.getenv("AUTOPILOT_WORKER_MAX_IDLE_INTERVAL_SECONDS", "5")
    )
    stall_interval_seconds: float = float(
        os.getenv("AUTOPILOT_STALL_INTERVAL_SECONDS", "300")
    )
    stall_check_interval_seconds: float = float(
        os.getenv("AUTOPILOT_STALL_CHECK_INTERVAL_SECONDS", "30")
    )

    # Per-queue concurrency overrides, e.g. AUTOPILOT_VIDEO_PUBLISHING_CONCURRENCY=1
    concurrency_overrides: Dict[str, int] = field(
        default_factory=lambda: {
            key[len("AUTOPILOT_") : -len("_CONCURRENCY")]
            .lower()
            .replace("_", "-"): int(value)
            for key, value in os.environ.items()
            if key.startswith("AUTOPILOT_") and key.endswith("_CONCURRENCY")
        }
    )


@dataclass
class ProberConfig:
    """Periodic self-testing of the deployed service."""

    enabled: bool = _env_bool("AUTOPILOT_PROBER_ENABLED", "false")
    base_url: str = os.getenv("AUTOPILOT_PROBER_BASE_URL", "http://localhost:8000")

    health_check_interval_seconds: int = int(
        os.getenv("AUTOPILOT_PROBER_HEALTH_INTERVAL_SECONDS", "120")
    )
    endpoint_test_interval_seconds: int = int(
        os.getenv("AUTOPILOT_PROBER_ENDPOINT_INTERVAL_SECONDS", "900")
    )
    performance_test_interval_seconds: int = int(
        os.getenv("AUTOPILOT_PROBER_PERFORMANCE_INTERVAL_SECONDS", "3600")
    )
    summary_interval_seconds: int = int(
        os.getenv("AUTOPILOT_PROBER_SUMMARY_INTERVAL_SECONDS", "21600")
    )

    request_timeout_seconds: float = float(
        os.getenv("AUTOPILOT_PROBER_REQUEST_TIMEOUT_SECONDS", "10")
    )
    inter_request_delay_seconds: float = float(
        os.getenv("AUTOPILOT_PROBER_INTER_REQUEST_DELAY_SECONDS", "0.1")
    )
    performance_concurrency: int = int(
        os.getenv("AUTOPILOT_PROBER_PERFORMANCE_CONCURRENCY", "5")
    )
    performance_path: str = os.getenv("AUTOPILOT_PROBER_PERFORMANCE_PATH", "/health")
    health_path: str = os.getenv("AUTOPILOT_PROBER_HEALTH_PATH", "/health")

    # Alert thresholds
    error_rate_threshold: float = float(
        os.getenv("AUTOPILOT_PROBER_ERROR_RATE_THRESHOLD", "0.05")
    )
    response_time_threshold_ms: float = float(
        os.getenv("AUTOPILOT_PROBER_RESPONSE_TIME_THRESHOLD_MS", "5000")
    )

    # Retention
    max_recent_results: int = int(os.getenv("AUTOPILOT_PROBER_MAX_RESULTS", "100"))
    max_recent_alerts: int = int(os.getenv("AUTOPILOT_PROBER_MAX_ALERTS", "50"))
    result_ttl_seconds: int = int(
        os.getenv("AUTOPILOT_PROBER_RESULT_TTL_SECONDS", str(7 * 24 * 60 * 60))
    )
    alert_ttl_seconds: int = int(
        os.getenv("AUTOPILOT_PROBER_ALERT_TTL_SECONDS", str(24 * 60 * 60))
    )
    metrics_ttl_seconds: int = int(
        os.getenv("AUTOPILOT_PROBER_METRICS_TTL_SECONDS", str(30 * 24 * 60 * 60))
    )
    summary_ttl_seconds: int = int(
        os.getenv("AUTOPILOT_PROBER_SUMMARY_TTL_SECONDS", str(24 * 60 * 60))
    )

    # Health derivation
    healthy_uptime: float = float(os.getenv("AUTOPILOT_HEALTHY_UPTIME", "0.95"))
    degraded_uptime: float = float(os.getenv("AUTOPILOT_DEGRADED_UPTIME", "0.90"))
    max_active_alerts: int = int(os.getenv("AUTOPILOT_MAX_ACTIVE_ALERTS", "5"))


@dataclass
class CollaboratorConfig:
    """Endpoints of the external content services invoked by job handlers."""

    generator_url: str = os.getenv("AUTOPILOT_GENERATOR_URL", "")
    tester_url: str = os.getenv("AUTOPILOT_TESTER_URL", "")
    content_creator_url: str = os.getenv("AUTOPILOT_CONTENT_CREATOR_URL", "")
    publisher_url: str = os.getenv("AUTOPILOT_PUBLISHER_URL", "")
    mailer_url: str = os.getenv("AUTOPILOT_MAILER_URL", "")
    analytics_url: str = os.getenv("AUTOPILOT_ANALYTICS_URL", "")
    api_key: str = os.getenv("AUTOPILOT_COLLABORATOR_API_KEY", "")
    timeout_seconds: float = float(
        os.getenv("AUTOPILOT_COLLABORATOR_TIMEOUT_SECONDS", "300")
    )


@dataclass
class APIConfig:
    port: int = int(os.getenv("PORT", "8000"))
    cors_origins: List[str] = field(
        default_factory=lambda: [
            origin
            for origin in os.getenv(
                "AUTOPILOT_CORS_ORIGINS", "http://localhost:3000"
            ).split(",")
            if origin
        ]
    )
    run_workers: bool = _env_bool("AUTOPILOT_API_RUN_WORKERS", "true")


@dataclass
class Config:
    store: StoreConfig = field(default_factory=StoreConfig)
    queues: QueueConfig = field(default_factory=QueueConfig)
    prober: ProberConfig = field(default_factory=ProberConfig)
    collaborators: CollaboratorConfig = field(default_factory=CollaboratorConfig)
    api: APIConfig = field(default_factory=APIConfig)

    @classmethod
    def load(cls) -> "Config":
        """Load and validate configuration"""
        config = cls()
        if config.store.backend not in ("memory", "redis"):
            raise ValueError(
                f"Unsupported AUTOPILOT_STORE_BACKEND: {config.store.backend}"
            )
        if config.queues.default_backoff_type not in ("fixed", "exponential"):
            raise ValueError(
                f"Unsupported AUTOPILOT_JOB_BACKOFF_TYPE: {config.queues.default_backoff_type}"
            )
        logger.info("Configuration loaded successfully")
        return config


# Global configuration instance
config = Config.load()
