import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from autopilot.backend.models import Job
from autopilot.lib.logger import configure_logger

logger = configure_logger(__name__)


class ConfigurationError(Exception):
    """Unknown queue, undeclared job type or missing/duplicate handler.

    Always fatal: raised at enqueue time or when the pipeline starts, never
    converted into a job failure.
    """


ProgressReporter = Callable[[int], Awaitable[None]]
# enqueue(queue, job_type, payload, options=None) -> job id
Enqueuer = Callable[..., Awaitable[str]]


@dataclass
class JobContext:
    """Everything a handler sees while running one attempt of a job."""

    job: Job
    report_progress: ProgressReporter
    enqueue: Enqueuer
    worker_name: Optional[str] = None

    @property
    def payload(self) -> Dict[str, Any]:
        return self.job.payload

    @property
    def job_id(self) -> str:
        return self.job.id

    @property
    def attempt(self) -> int:
        """1-based number of the attempt currently running."""
        return self.job.attempts + 1


class JobHandler(ABC):
    """Base class for the unit of work bound to one (queue, job type) pair.

    ``handle`` returns a JSON-serializable result; raising routes the job
    through its retry policy.
    """

    # Required payload keys, checked before ``handle`` runs
    required_fields: List[str] = []

    @property
    def task_name(self) -> str:
        return self.__class__.__name__

    async def validate(self, context: JobContext) -> None:
        missing = [key for key in self.required_fields if key not in context.payload]
        if missing:
            raise ValueError(
                f"{self.task_name}: payload missing required fields {missing}"
            )

    @abstractmethod
    async def handle(self, context: JobContext) -> Dict[str, Any]:
        pass

    async def execute(self, context: JobContext) -> Dict[str, Any]:
        start = time.time()
        logger.debug(
            f"Starting task: {self.task_name}",
            extra={"job_id": context.job_id, "attempt": context.attempt},
        )
        await self.validate(context)
        result = await self.handle(context)
        logger.info(
            f"Completed task: {self.task_name} in {time.time() - start:.2f}s",
            extra={"job_id": context.job_id, "event_type": "task_completed"},
        )
        return result
