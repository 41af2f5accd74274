"""One named queue: admission, claiming and the job state machine."""

from typing import Any, Dict, List, Optional, Union

from autopilot.backend.abstract import AbstractJobStore, JobNotFoundError
from autopilot.backend.models import Job, JobState, JobView, QueueCounts
from autopilot.lib.logger import configure_logger
from autopilot.lib.utils import Clock, now_ms

from .backoff import compute_retry_delay, from_settings
from .dispatcher import Dispatcher, JobOptions
from .events import EventBus, QueueEvent, QueueEventType
from .queues import QueueName, resolve_queue

logger = configure_logger(__name__)


class JobQueue:
    """State transitions for the jobs of a single queue.

    waiting/delayed -> active -> completed, or back to waiting/delayed while
    retries remain, or failed once ``attempts`` reaches ``max_attempts``.
    """

    def __init__(
        self,
        name: Union[QueueName, str],
        store: AbstractJobStore,
        dispatcher: Dispatcher,
        events: EventBus,
        clock: Clock = now_ms,
    ):
        self.name = resolve_queue(name)
        self.store = store
        self.dispatcher = dispatcher
        self.events = events
        self._clock = clock

    def __repr__(self) -> str:
        return f"JobQueue({self.name.value})"

    def now(self) -> int:
        return self._clock()

    async def emit(
        self, event_type: QueueEventType, job: Optional[Job] = None, **kw
    ) -> None:
        await self.events.publish(
            QueueEvent(
                type=event_type,
                queue=self.name.value,
                job_id=job.id if job else None,
                job_type=job.type if job else None,
                attempts=job.attempts if job else 0,
                timestamp=self._clock(),
                **kw,
            )
        )

    async def enqueue(
        self,
        job_type: str,
        payload: Dict[str, Any],
        options: Optional[JobOptions] = None,
    ) -> Job:
        now = self._clock()
        sequence = await self.store.next_sequence()
        job = self.dispatcher.admit(self.name, job_type, payload, options, sequence, now)
        stored = await self.store.add(job)
        logger.debug(
            f"Job added: {job_type}",
            extra={
                "queue": self.name.value,
                "job_id": stored.id,
                "priority": stored.priority,
                "event_type": "job_added",
            },
        )
        await self.emit(
            QueueEventType.WAITING,
            stored,
            delay_ms=options.delay_ms if options else None,
        )
        return stored

    async def claim_next(self) -> Optional[Job]:
        job = await self.store.claim_next(self.name.value, self._clock())
        if job is not None:
            await self.emit(QueueEventType.ACTIVE, job)
        return job

    async def update_progress(self, job_id: str, progress: int) -> Job:
        progress = max(0, min(100, int(progress)))
        job = await self.store.update_progress(job_id, progress, self._clock())
        await self.emit(QueueEventType.PROGRESS, job, progress=progress)
        return job

    async def touch(self, job_id: str) -> None:
        await self.store.touch(job_id, self._clock())

    async def complete(self, job_id: str, result: Any) -> Job:
        job = await self.store.complete(job_id, result, self._clock())
        duration = (
            job.finished_at - job.processed_at
            if job.finished_at is not None and job.processed_at is not None
            else None
        )
        await self.emit(QueueEventType.COMPLETED, job, duration_ms=duration)
        return job

    async def fail(self, job_id: str, error: str) -> Job:
        """Record a failed attempt and either schedule a retry or fail the job."""
        current = await self.store.get(job_id)
        if current is None:
            raise JobNotFoundError(job_id)

        attempts = current.attempts + 1
        now = self._clock()
        duration = now - current.processed_at if current.processed_at else None

        if attempts < current.max_attempts:
            delay = compute_retry_delay(from_settings(current.backoff), attempts)
            job = await self.store.retry(job_id, error, attempts, now + delay, now)
            await self.emit(
                QueueEventType.RETRYING,
                job,
                error=error,
                delay_ms=delay,
                duration_ms=duration,
            )
            return job

        job = await self.store.fail(job_id, error, attempts, now)
        await self.emit(QueueEventType.FAILED, job, error=error, duration_ms=duration)
        return job

    async def get_job(self, job_id: str) -> Optional[Job]:
        job = await self.store.get(job_id)
        if job is None or job.queue_name != self.name.value:
            return None
        return job

    async def get_status(self, job_id: str) -> Optional[JobView]:
        job = await self.get_job(job_id)
        return job.to_view() if job else None

    async def stats(self) -> QueueCounts:
        return await self.store.counts(self.name.value)

    async def list_jobs(self, state: JobState, limit: int = 50) -> List[Job]:
        return await self.store.list_jobs(self.name.value, state, limit)

    async def list_active(self) -> List[Job]:
        return await self.store.list_active(self.name.value)

    async def is_paused(self) -> bool:
        return await self.store.is_paused(self.name.value)

    async def pause(self) -> None:
        await self.store.pause(self.name.value)
        await self.emit(QueueEventType.PAUSED)

    async def resume(self) -> None:
        await self.store.resume(self.name.value)
        await self.emit(QueueEventType.RESUMED)

    async def clean(self, state: JobState, grace_ms: int = 0) -> List[str]:
        removed = await self.store.clean(self.name.value, state, grace_ms, self._clock())
        if removed:
            logger.info(
                f"Cleaned {len(removed)} {state} jobs",
                extra={"queue": self.name.value, "event_type": "queue_cleaned"},
            )
        return removed
