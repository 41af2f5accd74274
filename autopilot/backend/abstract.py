from abc import ABC, abstractmethod
from typing import List, Optional

from autopilot.backend.models import (
    Alert,
    HealthSummary,
    Job,
    JobState,
    ProbeMetrics,
    QueueCounts,
    TestResult,
)


class StoreUnavailableError(Exception):
    """The backing store could not be reached.

    Transient infrastructure failure, surfaced to the caller and never
    recorded as a job failure.
    """


class JobNotFoundError(KeyError):
    """A state-changing call referenced a job id the store does not hold."""

    def __init__(self, job_id: str):
        super().__init__(job_id)
        self.job_id = job_id

    def __str__(self) -> str:
        return f"Job not found: {self.job_id}"


class AbstractJobStore(ABC):
    """Durable home of job records and their per-queue state buckets.

    Every state transition must be atomic with respect to concurrent
    ``claim_next`` calls: a job is handed to at most one claimer.
    """

    @abstractmethod
    async def next_sequence(self) -> int:
        """Return a fresh, strictly increasing admission sequence number."""
        pass

    @abstractmethod
    async def add(self, job: Job) -> Job:
        """Persist a new job in its initial ``waiting`` or ``delayed`` state."""
        pass

    @abstractmethod
    async def claim_next(self, queue_name: str, now: int) -> Optional[Job]:
        """Atomically claim the next eligible job of a queue.

        Delayed jobs whose ``delay_until`` is at or before ``now`` are promoted
        first. The claimed job is the lowest ``(priority, sequence)`` waiting
        job; it becomes ``active`` with ``processed_at`` and ``heartbeat_at``
        stamped. Returns None when nothing is eligible or the queue is paused.
        """
        pass

    @abstractmethod
    async def update_progress(self, job_id: str, progress: int, now: int) -> Job:
        pass

    @abstractmethod
    async def touch(self, job_id: str, now: int) -> None:
        """Refresh the liveness heartbeat of an active job."""
        pass

    @abstractmethod
    async def complete(self, job_id: str, result, now: int) -> Job:
        pass

    @abstractmethod
    async def retry(
        self, job_id: str, error: str, attempts: int, delay_until: Optional[int], now: int
    ) -> Job:
        """Put a failed attempt back in line (``delayed`` when ``delay_until`` is set)."""
        pass

    @abstractmethod
    async def fail(self, job_id: str, error: str, attempts: int, now: int) -> Job:
        """Terminally fail a job."""
        pass

    @abstractmethod
    async def get(self, job_id: str) -> Optional[Job]:
        pass

    @abstractmethod
    async def counts(self, queue_name: str) -> QueueCounts:
        pass

    @abstractmethod
    async def list_jobs(
        self, queue_name: str, state: JobState, limit: int = 50
    ) -> List[Job]:
        pass

    @abstractmethod
    async def list_active(self, queue_name: str) -> List[Job]:
        pass

    @abstractmethod
    async def pause(self, queue_name: str) -> None:
        pass

    @abstractmethod
    async def resume(self, queue_name: str) -> None:
        pass

    @abstractmethod
    async def is_paused(self, queue_name: str) -> bool:
        pass

    @abstractmethod
    async def clean(
        self, queue_name: str, state: JobState, grace_ms: int, now: int
    ) -> List[str]:
        """Remove terminal jobs finished more than ``grace_ms`` ago; returns their ids."""
        pass

    @abstractmethod
    async def ping(self) -> bool:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass


class AbstractMonitoringStore(ABC):
    """Bounded, expiring history written by the periodic prober."""

    @abstractmethod
    async def save_test_result(self, result: TestResult) -> None:
        pass

    @abstractmethod
    async def recent_test_results(self, limit: int = 10) -> List[TestResult]:
        pass

    @abstractmethod
    async def save_alert(self, alert: Alert) -> None:
        pass

    @abstractmethod
    async def recent_alerts(self, limit: int = 10) -> List[Alert]:
        pass

    @abstractmethod
    async def load_metrics(self) -> Optional[ProbeMetrics]:
        pass

    @abstractmethod
    async def save_metrics(self, metrics: ProbeMetrics) -> None:
        pass

    @abstractmethod
    async def save_health_summary(self, summary: HealthSummary) -> None:
        pass

    @abstractmethod
    async def latest_health_summary(self) -> Optional[HealthSummary]:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass
