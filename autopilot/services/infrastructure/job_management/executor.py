"""Per-queue worker pools and the executor that owns them."""

import asyncio
from typing import Any, Dict, List, Optional, Set, Tuple

from autopilot.backend.models import Job
from autopilot.config import QueueConfig
from autopilot.lib.logger import configure_logger
from autopilot.lib.utils import ensure_json_serializable

from .base import Enqueuer, JobContext
from .decorators import HandlerRegistry
from .events import QueueEventType
from .queue import JobQueue
from .queues import QueueName, concurrency_for

logger = configure_logger(__name__)


class WorkerPool:
    """Up to ``concurrency`` workers looping claim -> handle -> complete/fail."""

    def __init__(
        self,
        queue: JobQueue,
        registry: HandlerRegistry,
        enqueue: Enqueuer,
        concurrency: int,
        poll_interval: float = 0.5,
        max_idle_interval: float = 5.0,
        heartbeat_interval: Optional[float] = None,
    ):
        self.queue = queue
        self.registry = registry
        self.enqueue = enqueue
        self.concurrency = max(1, concurrency)
        self.poll_interval = poll_interval
        self.max_idle_interval = max(poll_interval, max_idle_interval)
        self.heartbeat_interval = heartbeat_interval
        self._running = False
        self._worker_tasks: List[asyncio.Task] = []
        self._busy = 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def busy_workers(self) -> int:
        return self._busy

    def start(self) -> None:
        if self._running:
            logger.warning(
                "Worker pool already running",
                extra={"queue": self.queue.name.value, "event_type": "pool_running"},
            )
            return
        self._running = True
        for i in range(self.concurrency):
            name = f"{self.queue.name.value}-worker-{i}"
            self._worker_tasks.append(asyncio.create_task(self._worker(name)))
        logger.debug(
            "Worker pool started",
            extra={
                "queue": self.queue.name.value,
                "worker_count": self.concurrency,
                "event_type": "pool_started",
            },
        )

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        for task in self._worker_tasks:
            task.cancel()
        if self._worker_tasks:
            await asyncio.gather(*self._worker_tasks, return_exceptions=True)
        self._worker_tasks.clear()
        logger.debug(
            "Worker pool stopped",
            extra={"queue": self.queue.name.value, "event_type": "pool_stopped"},
        )

    async def _worker(self, worker_name: str) -> None:
        idle_delay = self.poll_interval
        while self._running:
            try:
                job = await self.queue.claim_next()
                if job is None:
                    # Back off while the queue is empty or paused
                    await asyncio.sleep(idle_delay)
                    idle_delay = min(idle_delay * 2, self.max_idle_interval)
                    continue
                idle_delay = self.poll_interval
                self._busy += 1
                try:
                    await self.process(job, worker_name)
                finally:
                    self._busy -= 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    f"Worker encountered error: {worker_name}",
                    extra={
                        "queue": self.queue.name.value,
                        "error": str(e),
                        "event_type": "worker_error",
                    },
                    exc_info=True,
                )
                await asyncio.sleep(self.poll_interval)

    async def _heartbeat(self, job_id: str) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            try:
                await self.queue.touch(job_id)
            except Exception as e:
                logger.warning(
                    "Heartbeat failed",
                    extra={
                        "queue": self.queue.name.value,
                        "job_id": job_id,
                        "error": str(e),
                        "event_type": "heartbeat_error",
                    },
                )

    async def process(self, job: Job, worker_name: str = "worker") -> Job:
        """Run one claimed job through its handler and record the outcome."""
        handler = self.registry.require(self.queue.name, job.type)
        context = JobContext(
            job=job,
            report_progress=lambda progress: self.queue.update_progress(
                job.id, progress
            ),
            enqueue=self.enqueue,
            worker_name=worker_name,
        )

        heartbeat = (
            asyncio.create_task(self._heartbeat(job.id))
            if self.heartbeat_interval
            else None
        )
        try:
            result = await handler.execute(context)
            ensure_json_serializable(result)
        except Exception as e:
            error = str(e) or e.__class__.__name__
            logger.debug(
                f"Handler raised: {handler.task_name}",
                extra={
                    "queue": self.queue.name.value,
                    "job_id": job.id,
                    "error": error,
                    "event_type": "handler_error",
                },
                exc_info=True,
            )
            return await self.queue.fail(job.id, error)
        finally:
            if heartbeat is not None:
                heartbeat.cancel()
                await asyncio.gather(heartbeat, return_exceptions=True)

        return await self.queue.complete(job.id, result)


class JobExecutor:
    """Owns one worker pool per queue plus the stalled-job monitor."""

    def __init__(
        self,
        queues: Dict[QueueName, JobQueue],
        registry: HandlerRegistry,
        queue_config: QueueConfig,
        enqueue: Enqueuer,
    ):
        self.queues = queues
        self.registry = registry
        self.config = queue_config
        self.stall_interval_ms = int(queue_config.stall_interval_seconds * 1000)
        self.pools: Dict[QueueName, WorkerPool] = {
            name: WorkerPool(
                queue,
                registry,
                enqueue,
                concurrency=concurrency_for(name, queue_config.concurrency_overrides),
                poll_interval=queue_config.poll_interval_seconds,
                max_idle_interval=queue_config.max_idle_interval_seconds,
                heartbeat_interval=queue_config.stall_interval_seconds / 2,
            )
            for name, queue in queues.items()
        }
        self._running = False
        self._monitor_task: Optional[asyncio.Task] = None
        # (job id, processed_at) pairs already reported as stalled
        self._reported_stalls: Set[Tuple[str, Optional[int]]] = set()

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            logger.warning(
                "JobExecutor is already running",
                extra={"event_type": "executor_already_running"},
            )
            return

        # Fatal when any declared job type has no handler
        self.registry.ensure_complete()

        self._running = True
        for name, pool in self.pools.items():
            pool.start()
            await self.queues[name].emit(QueueEventType.READY)
        self._monitor_task = asyncio.create_task(self._stall_monitor())

        logger.info(
            "JobExecutor started",
            extra={
                "worker_count": sum(pool.concurrency for pool in self.pools.values()),
                "event_type": "executor_started",
            },
        )

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        if self._monitor_task:
            self._monitor_task.cancel()
            await asyncio.gather(self._monitor_task, return_exceptions=True)
            self._monitor_task = None
        await asyncio.gather(*(pool.stop() for pool in self.pools.values()))
        logger.info("JobExecutor stopped", extra={"event_type": "executor_stopped"})

    async def _stall_monitor(self) -> None:
        while self._running:
            await asyncio.sleep(self.config.stall_check_interval_seconds)
            try:
                await self.check_stalled()
            except Exception as e:
                logger.error(
                    "Stalled job check failed",
                    extra={"error": str(e), "event_type": "stall_check_error"},
                    exc_info=True,
                )

    async def check_stalled(self) -> List[Job]:
        """Report active jobs whose heartbeat lapsed; they are not requeued."""
        stalled: List[Job] = []
        active_keys: Set[Tuple[str, Optional[int]]] = set()
        for queue in self.queues.values():
            now = queue.now()
            for job in await queue.list_active():
                key = (job.id, job.processed_at)
                active_keys.add(key)
                heartbeat = job.heartbeat_at or job.processed_at or job.created_at
                if now - heartbeat <= self.stall_interval_ms:
                    continue
                if key in self._reported_stalls:
                    continue
                self._reported_stalls.add(key)
                stalled.append(job)
                await queue.emit(
                    QueueEventType.STALLED,
                    job,
                    data={"heartbeat_age_ms": now - heartbeat},
                )
        # Forget jobs that are no longer active
        self._reported_stalls &= active_keys
        return stalled

    def get_stats(self) -> Dict[str, Any]:
        return {
            "running": self._running,
            "worker_count": sum(pool.concurrency for pool in self.pools.values()),
            "pools": {
                name.value: {
                    "concurrency": pool.concurrency,
                    "busy": pool.busy_workers,
                    "running": pool.is_running,
                }
                for name, pool in self.pools.items()
            },
        }
