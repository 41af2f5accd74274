"""Facade over the queues, the executor and the job metrics."""

from typing import Any, Dict, List, Optional, Union

from autopilot.backend.abstract import AbstractJobStore
from autopilot.backend.models import JobState, JobView, QueueCounts
from autopilot.config import QueueConfig
from autopilot.lib.logger import configure_logger
from autopilot.lib.utils import Clock, now_ms

from .decorators import HandlerRegistry
from .dispatcher import Dispatcher, JobOptions
from .events import EventBus, log_queue_event
from .executor import JobExecutor
from .monitoring import MetricsCollector
from .queue import JobQueue
from .queues import QUEUE_DEFINITIONS, QueueName, resolve_queue

logger = configure_logger(__name__)


class JobManager:
    """Entry point used by the HTTP layer, job handlers and the worker process."""

    def __init__(
        self,
        store: AbstractJobStore,
        registry: HandlerRegistry,
        queue_config: QueueConfig,
        events: Optional[EventBus] = None,
        metrics: Optional[MetricsCollector] = None,
        clock: Clock = now_ms,
    ):
        self.store = store
        self.registry = registry
        self.config = queue_config
        self.events = events or EventBus()
        self.metrics = metrics or MetricsCollector()
        self.events.subscribe(self.metrics)
        self.events.subscribe(log_queue_event)

        self.dispatcher = Dispatcher(queue_config)
        self.queues: Dict[QueueName, JobQueue] = {
            name: JobQueue(name, store, self.dispatcher, self.events, clock)
            for name in QueueName
        }
        self.executor = JobExecutor(self.queues, registry, queue_config, self.enqueue)

    @property
    def is_running(self) -> bool:
        return self.executor.is_running

    def queue(self, name: Union[QueueName, str]) -> JobQueue:
        return self.queues[resolve_queue(name)]

    async def enqueue(
        self,
        queue: Union[QueueName, str],
        job_type: str,
        payload: Dict[str, Any],
        options: Optional[JobOptions] = None,
    ) -> str:
        """Admit a job and return its id.

        Raises ConfigurationError for an unknown queue or job type and
        StoreUnavailableError when the store cannot be reached.
        """
        job = await self.queue(queue).enqueue(job_type, payload, options)
        return job.id

    async def get_job(
        self, queue: Union[QueueName, str], job_id: str
    ) -> Optional[JobView]:
        return await self.queue(queue).get_status(job_id)

    async def list_jobs(
        self, queue: Union[QueueName, str], state: JobState, limit: int = 50
    ) -> List[JobView]:
        jobs = await self.queue(queue).list_jobs(state, limit)
        return [job.to_view() for job in jobs]

    async def get_stats(self, queue: Union[QueueName, str]) -> QueueCounts:
        return await self.queue(queue).stats()

    async def get_all_stats(self) -> Dict[str, QueueCounts]:
        return {name.value: await queue.stats() for name, queue in self.queues.items()}

    async def pause_queue(self, queue: Union[QueueName, str]) -> None:
        await self.queue(queue).pause()

    async def resume_queue(self, queue: Union[QueueName, str]) -> None:
        await self.queue(queue).resume()

    async def clean_queue(
        self,
        queue: Union[QueueName, str],
        state: JobState = JobState.COMPLETED,
        grace_ms: int = 0,
    ) -> int:
        return len(await self.queue(queue).clean(state, grace_ms))

    async def start(self) -> None:
        await self.executor.start()

    async def stop(self) -> None:
        await self.executor.stop()

    def get_queue_definitions(self) -> Dict[str, Dict[str, Any]]:
        return {
            name.value: {
                "concurrency": self.executor.pools[name].concurrency,
                "job_types": sorted(definition.job_types),
                "description": definition.description,
            }
            for name, definition in QUEUE_DEFINITIONS.items()
        }

    def get_system_health(self) -> Dict[str, Any]:
        health = self.metrics.get_health_status()
        if not self.is_running and health["status"] == "healthy":
            health["status"] = "stopped"
        return {
            "status": health["status"],
            "issues": health["issues"],
            "executor": self.executor.get_stats(),
            "metrics": self.metrics.get_system_metrics(),
            "handlers": {
                "total_registered": len(self.registry.list_jobs()),
                "missing": self.registry.validate(),
            },
        }

    def get_comprehensive_metrics(self) -> Dict[str, Any]:
        return {
            "system": self.metrics.get_system_metrics(),
            "queues": {
                queue: metrics.to_dict()
                for queue, metrics in self.metrics.get_metrics().items()
            },
            "recent_events": [
                {
                    "job_id": event.job_id,
                    "queue": event.queue,
                    "job_type": event.job_type,
                    "event_type": event.event_type,
                    "timestamp": event.timestamp.isoformat(),
                    "duration": event.duration,
                    "error": event.error,
                    "attempt": event.attempt,
                }
                for event in self.metrics.get_recent_events(limit=20)
            ],
        }
