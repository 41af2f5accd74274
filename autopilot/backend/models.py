from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CustomBaseModel(BaseModel):
    model_config = ConfigDict(
        use_enum_values=False,
        arbitrary_types_allowed=True,
    )


# Job pipeline models


class JobState(str, Enum):
    WAITING = "waiting"
    DELAYED = "delayed"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"

    def __str__(self):
        return self.value

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED)


class BackoffType(str, Enum):
    FIXED = "fixed"
    EXPONENTIAL = "exponential"

    def __str__(self):
        return self.value


class BackoffSettings(CustomBaseModel):
    """Serialized form of a retry backoff policy as stored on a job."""

    type: BackoffType = BackoffType.EXPONENTIAL
    delay_ms: int = 2000
    max_delay_ms: Optional[int] = None


class Job(CustomBaseModel):
    """Authoritative job record held by the job store."""

    id: str
    queue_name: str
    type: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    priority: int = 2
    # Monotonic admission counter, tie-breaker within a priority
    sequence: int = 0
    attempts: int = 0
    max_attempts: int = 3
    backoff: BackoffSettings = Field(default_factory=BackoffSettings)
    delay_until: Optional[int] = None
    state: JobState = JobState.WAITING
    progress: int = 0
    result: Optional[Any] = None
    error: Optional[str] = None
    stacktrace: List[str] = Field(default_factory=list)
    created_at: int
    processed_at: Optional[int] = None
    finished_at: Optional[int] = None
    heartbeat_at: Optional[int] = None

    def to_view(self) -> "JobView":
        return JobView(
            id=self.id,
            queue=self.queue_name,
            type=self.type,
            state=self.state,
            progress=self.progress,
            attempts=self.attempts,
            max_attempts=self.max_attempts,
            result=self.result,
            error=self.error,
            created_at=self.created_at,
            processed_at=self.processed_at,
            finished_at=self.finished_at,
            delay_until=self.delay_until,
        )


class JobView(CustomBaseModel):
    """Read-only status projection returned to pollers."""

    model_config = ConfigDict(frozen=True)

    id: str
    queue: str
    type: str
    state: JobState
    progress: int
    attempts: int
    max_attempts: int
    result: Optional[Any] = None
    error: Optional[str] = None
    created_at: int
    processed_at: Optional[int] = None
    finished_at: Optional[int] = None
    delay_until: Optional[int] = None


class QueueCounts(CustomBaseModel):
    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    delayed: int = 0
    paused: bool = False


# Prober models


class TestType(str, Enum):
    __test__ = False

    HEALTH_CHECK = "health_check"
    ENDPOINT_TEST = "endpoint_test"
    PERFORMANCE_TEST = "performance_test"

    def __str__(self):
        return self.value


class AlertType(str, Enum):
    HIGH_ERROR_RATE = "high_error_rate"
    SLOW_RESPONSE = "slow_response"
    CRITICAL_FAILURE = "critical_failure"

    def __str__(self):
        return self.value


class AlertSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    def __str__(self):
        return self.value


class ProbeEndpoint(CustomBaseModel):
    path: str
    method: str = "GET"
    critical: bool = False


class EndpointResult(CustomBaseModel):
    endpoint: str
    method: str = "GET"
    success: bool
    status_code: int = 0
    response_time_ms: float = 0.0
    critical: bool = False
    error: Optional[str] = None
    timestamp: int


class TestSummary(CustomBaseModel):
    __test__ = False

    total: int
    passed: int
    failed: int
    avg_response_time: float

    @property
    def error_rate(self) -> float:
        return self.failed / self.total if self.total else 0.0


class PerformanceMetrics(CustomBaseModel):
    concurrent_requests: int
    successful_requests: int
    avg_response_time: float
    min_response_time: float
    max_response_time: float
    total_duration_ms: float


class TestResult(CustomBaseModel):
    __test__ = False

    test_id: str
    type: TestType
    timestamp: int
    results: List[EndpointResult] = Field(default_factory=list)
    summary: Optional[TestSummary] = None
    metrics: Optional[PerformanceMetrics] = None
    duration_ms: int = 0


class Alert(CustomBaseModel):
    id: str
    type: AlertType
    message: str
    severity: AlertSeverity = AlertSeverity.MEDIUM
    timestamp: int
    details: Dict[str, Any] = Field(default_factory=dict)


class ProbeMetrics(CustomBaseModel):
    """Lifetime aggregate over every ingested test result."""

    total_tests: int = 0
    total_failures: int = 0
    total_probes: int = 0
    total_response_time_ms: float = 0.0
    avg_response_time: float = 0.0
    uptime: float = 1.0
    last_test_time: Optional[int] = None


class HealthSummary(CustomBaseModel):
    timestamp: int
    uptime: str
    total_tests: int
    total_failures: int
    avg_response_time: str
    last_test_time: Optional[int] = None
