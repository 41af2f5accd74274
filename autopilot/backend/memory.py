"""In-process store implementations.

Used for local development, the worker-in-API mode and the test suite. State
lives in the event loop's process; a single ``asyncio.Lock`` serializes every
transition so concurrent claimers never receive the same job.
"""

import asyncio
import heapq
from collections import deque
from typing import Deque, Dict, List, Optional, Tuple

from autopilot.backend.abstract import (
    AbstractJobStore,
    AbstractMonitoringStore,
    JobNotFoundError,
)
from autopilot.backend.models import (
    Alert,
    HealthSummary,
    Job,
    JobState,
    ProbeMetrics,
    QueueCounts,
    TestResult,
)
from autopilot.lib.logger import configure_logger
from autopilot.lib.utils import Clock, now_ms

logger = configure_logger(__name__)

# Error strings kept per job for diagnostics
MAX_STACKTRACE_ENTRIES = 10


class _QueueBuckets:
    def __init__(self) -> None:
        # (priority, sequence, job_id)
        self.waiting: List[Tuple[int, int, str]] = []
        # (delay_until, sequence, job_id)
        self.delayed: List[Tuple[int, int, str]] = []
        self.active: Dict[str, None] = {}
        # Newest last
        self.completed: Deque[str] = deque()
        self.failed: Deque[str] = deque()
        self.paused = False


class MemoryJobStore(AbstractJobStore):
    def __init__(self, keep_completed: int = 50, keep_failed: int = 20):
        self._jobs: Dict[str, Job] = {}
        self._queues: Dict[str, _QueueBuckets] = {}
        self._sequence = 0
        self._lock = asyncio.Lock()
        self.keep_completed = keep_completed
        self.keep_failed = keep_failed

    def _buckets(self, queue_name: str) -> _QueueBuckets:
        if queue_name not in self._queues:
            self._queues[queue_name] = _QueueBuckets()
        return self._queues[queue_name]

    def _require(self, job_id: str) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def next_sequence(self) -> int:
        async with self._lock:
            self._sequence += 1
            return self._sequence

    async def add(self, job: Job) -> Job:
        async with self._lock:
            stored = job.model_copy(deep=True)
            self._jobs[stored.id] = stored
            buckets = self._buckets(stored.queue_name)
            if stored.state == JobState.DELAYED:
                heapq.heappush(
                    buckets.delayed, (stored.delay_until or 0, stored.sequence, stored.id)
                )
            else:
                heapq.heappush(
                    buckets.waiting, (stored.priority, stored.sequence, stored.id)
                )
            return stored.model_copy(deep=True)

    def _promote_due(self, buckets: _QueueBuckets, now: int) -> None:
        while buckets.delayed and buckets.delayed[0][0] <= now:
            _, _, job_id = heapq.heappop(buckets.delayed)
            job = self._jobs.get(job_id)
            if job is None or job.state != JobState.DELAYED:
                continue
            job.state = JobState.WAITING
            heapq.heappush(buckets.waiting, (job.priority, job.sequence, job.id))

    async def claim_next(self, queue_name: str, now: int) -> Optional[Job]:
        async with self._lock:
            buckets = self._buckets(queue_name)
            if buckets.paused:
                return None
            self._promote_due(buckets, now)
            while buckets.waiting:
                _, _, job_id = heapq.heappop(buckets.waiting)
                job = self._jobs.get(job_id)
                if job is None or job.state != JobState.WAITING:
                    continue
                job.state = JobState.ACTIVE
                job.processed_at = now
                job.heartbeat_at = now
                buckets.active[job.id] = None
                return job.model_copy(deep=True)
            return None

    async def update_progress(self, job_id: str, progress: int, now: int) -> Job:
        async with self._lock:
            job = self._require(job_id)
            job.progress = progress
            job.heartbeat_at = now
            return job.model_copy(deep=True)

    async def touch(self, job_id: str, now: int) -> None:
        async with self._lock:
            job = self._require(job_id)
            if job.state == JobState.ACTIVE:
                job.heartbeat_at = now

    def _record_error(self, job: Job, error: str, attempts: int) -> None:
        job.attempts = attempts
        job.error = error
        job.stacktrace = (job.stacktrace + [error])[-MAX_STACKTRACE_ENTRIES:]

    def _prune(self, bucket: Deque[str], keep: int) -> None:
        while len(bucket) > keep:
            self._jobs.pop(bucket.popleft(), None)

    async def complete(self, job_id: str, result, now: int) -> Job:
        async with self._lock:
            job = self._require(job_id)
            buckets = self._buckets(job.queue_name)
            buckets.active.pop(job.id, None)
            job.state = JobState.COMPLETED
            job.result = result
            job.progress = 100
            job.finished_at = now
            snapshot = job.model_copy(deep=True)
            buckets.completed.append(job.id)
            self._prune(buckets.completed, self.keep_completed)
            return snapshot

    async def retry(
        self, job_id: str, error: str, attempts: int, delay_until: Optional[int], now: int
    ) -> Job:
        async with self._lock:
            job = self._require(job_id)
            buckets = self._buckets(job.queue_name)
            buckets.active.pop(job.id, None)
            self._record_error(job, error, attempts)
            job.heartbeat_at = None
            if delay_until is not None and delay_until > now:
                job.state = JobState.DELAYED
                job.delay_until = delay_until
                heapq.heappush(buckets.delayed, (delay_until, job.sequence, job.id))
            else:
                job.state = JobState.WAITING
                heapq.heappush(buckets.waiting, (job.priority, job.sequence, job.id))
            return job.model_copy(deep=True)

    async def fail(self, job_id: str, error: str, attempts: int, now: int) -> Job:
        async with self._lock:
            job = self._require(job_id)
            buckets = self._buckets(job.queue_name)
            buckets.active.pop(job.id, None)
            self._record_error(job, error, attempts)
            job.state = JobState.FAILED
            job.finished_at = now
            snapshot = job.model_copy(deep=True)
            buckets.failed.append(job.id)
            self._prune(buckets.failed, self.keep_failed)
            return snapshot

    async def get(self, job_id: str) -> Optional[Job]:
        async with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    async def counts(self, queue_name: str) -> QueueCounts:
        async with self._lock:
            buckets = self._buckets(queue_name)
            delayed = sum(
                1
                for _, _, job_id in buckets.delayed
                if job_id in self._jobs and self._jobs[job_id].state == JobState.DELAYED
            )
            waiting = sum(
                1
                for _, _, job_id in buckets.waiting
                if job_id in self._jobs and self._jobs[job_id].state == JobState.WAITING
            )
            return QueueCounts(
                waiting=waiting,
                active=len(buckets.active),
                completed=len(buckets.completed),
                failed=len(buckets.failed),
                delayed=delayed,
                paused=buckets.paused,
            )

    async def list_jobs(
        self, queue_name: str, state: JobState, limit: int = 50
    ) -> List[Job]:
        async with self._lock:
            buckets = self._buckets(queue_name)
            if state == JobState.WAITING:
                ids = [entry[2] for entry in sorted(buckets.waiting)]
            elif state == JobState.DELAYED:
                ids = [entry[2] for entry in sorted(buckets.delayed)]
            elif state == JobState.ACTIVE:
                ids = list(buckets.active)
            elif state == JobState.COMPLETED:
                ids = list(reversed(buckets.completed))
            else:
                ids = list(reversed(buckets.failed))
            jobs = [
                self._jobs[job_id].model_copy(deep=True)
                for job_id in ids
                if job_id in self._jobs and self._jobs[job_id].state == state
            ]
            return jobs[:limit]

    async def list_active(self, queue_name: str) -> List[Job]:
        async with self._lock:
            buckets = self._buckets(queue_name)
            return [self._jobs[job_id].model_copy(deep=True) for job_id in buckets.active]

    async def pause(self, queue_name: str) -> None:
        async with self._lock:
            self._buckets(queue_name).paused = True

    async def resume(self, queue_name: str) -> None:
        async with self._lock:
            self._buckets(queue_name).paused = False

    async def is_paused(self, queue_name: str) -> bool:
        async with self._lock:
            return self._buckets(queue_name).paused

    async def clean(
        self, queue_name: str, state: JobState, grace_ms: int, now: int
    ) -> List[str]:
        if not state.is_terminal:
            raise ValueError(f"Only terminal jobs can be cleaned, got {state}")
        async with self._lock:
            buckets = self._buckets(queue_name)
            bucket = buckets.completed if state == JobState.COMPLETED else buckets.failed
            cutoff = now - grace_ms
            removed = []
            kept: Deque[str] = deque()
            for job_id in bucket:
                job = self._jobs.get(job_id)
                if job is not None and (job.finished_at or 0) < cutoff:
                    removed.append(job_id)
                    self._jobs.pop(job_id, None)
                else:
                    kept.append(job_id)
            if state == JobState.COMPLETED:
                buckets.completed = kept
            else:
                buckets.failed = kept
            return removed

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        logger.debug("Memory job store closed", extra={"event_type": "store_closed"})


class MemoryMonitoringStore(AbstractMonitoringStore):
    """Prober history with the same retention rules as the Redis layout."""

    def __init__(
        self,
        max_results: int = 100,
        max_alerts: int = 50,
        result_ttl_seconds: int = 7 * 24 * 60 * 60,
        alert_ttl_seconds: int = 24 * 60 * 60,
        metrics_ttl_seconds: int = 30 * 24 * 60 * 60,
        summary_ttl_seconds: int = 24 * 60 * 60,
        clock: Clock = now_ms,
    ):
        self.max_results = max_results
        self.max_alerts = max_alerts
        self.result_ttl_ms = result_ttl_seconds * 1000
        self.alert_ttl_ms = alert_ttl_seconds * 1000
        self.metrics_ttl_ms = metrics_ttl_seconds * 1000
        self.summary_ttl_ms = summary_ttl_seconds * 1000
        self._clock = clock
        # Newest first, mirroring LPUSH ordering
        self._results: Deque[Tuple[int, TestResult]] = deque()
        self._alerts: Deque[Tuple[int, Alert]] = deque()
        self._metrics: Optional[Tuple[int, ProbeMetrics]] = None
        self._summary: Optional[Tuple[int, HealthSummary]] = None

    def _alive(self, expires_at: int) -> bool:
        return expires_at > self._clock()

    async def save_test_result(self, result: TestResult) -> None:
        self._results.appendleft((self._clock() + self.result_ttl_ms, result))
        while len(self._results) > self.max_results:
            self._results.pop()

    async def recent_test_results(self, limit: int = 10) -> List[TestResult]:
        alive = [result for expires, result in self._results if self._alive(expires)]
        return alive[:limit]

    async def save_alert(self, alert: Alert) -> None:
        self._alerts.appendleft((self._clock() + self.alert_ttl_ms, alert))
        while len(self._alerts) > self.max_alerts:
            self._alerts.pop()

    async def recent_alerts(self, limit: int = 10) -> List[Alert]:
        alive = [alert for expires, alert in self._alerts if self._alive(expires)]
        return alive[:limit]

    async def load_metrics(self) -> Optional[ProbeMetrics]:
        if self._metrics and self._alive(self._metrics[0]):
            return self._metrics[1].model_copy()
        return None

    async def save_metrics(self, metrics: ProbeMetrics) -> None:
        self._metrics = (self._clock() + self.metrics_ttl_ms, metrics.model_copy())

    async def save_health_summary(self, summary: HealthSummary) -> None:
        self._summary = (self._clock() + self.summary_ttl_ms, summary)

    async def latest_health_summary(self) -> Optional[HealthSummary]:
        if self._summary and self._alive(self._summary[0]):
            return self._summary[1]
        return None

    async def close(self) -> None:
        pass
