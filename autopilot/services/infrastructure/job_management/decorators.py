"""Handler registration: the ``@job`` decorator and the typed handler registry."""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple, Type, TypeVar, Union

from autopilot.lib.logger import configure_logger

from .base import ConfigurationError, JobHandler
from .queues import QUEUE_DEFINITIONS, QueueName, declared_job_types, resolve_queue

logger = configure_logger(__name__)

T = TypeVar("T", bound=JobHandler)

HandlerKey = Tuple[QueueName, str]


@dataclass(frozen=True)
class JobMetadata:
    """Static description of a handler class."""

    queue: QueueName
    job_type: str
    name: str
    description: str = ""


def job(
    queue: Union[QueueName, str],
    job_type: str,
    name: Optional[str] = None,
    description: Optional[str] = None,
) -> Callable[[Type[T]], Type[T]]:
    """Declare a handler class for one (queue, job type) pair.

    Example:
        @job(QueueName.GENERATION, "generate-workflow")
        class GenerateWorkflowHandler(JobHandler):
            ...

    The class is only bound to a running pipeline once a HandlerRegistry
    instantiates it (see ``HandlerRegistry.register_class``).
    """
    queue_name = resolve_queue(queue)
    if job_type not in QUEUE_DEFINITIONS[queue_name].job_types:
        raise ConfigurationError(
            f"Job type {job_type} is not declared on queue {queue_name}"
        )

    def decorator(handler_class: Type[T]) -> Type[T]:
        handler_class.job_metadata = JobMetadata(
            queue=queue_name,
            job_type=job_type,
            name=name or handler_class.__name__,
            description=description or (handler_class.__doc__ or "").strip(),
        )
        return handler_class

    return decorator


class HandlerRegistry:
    """Maps each (queue, job type) pair to exactly one handler instance."""

    def __init__(self) -> None:
        self._handlers: Dict[HandlerKey, JobHandler] = {}
        self._metadata: Dict[HandlerKey, JobMetadata] = {}

    def register(
        self,
        queue: Union[QueueName, str],
        job_type: str,
        handler: JobHandler,
        name: Optional[str] = None,
        description: str = "",
    ) -> None:
        queue_name = resolve_queue(queue)
        if job_type not in QUEUE_DEFINITIONS[queue_name].job_types:
            raise ConfigurationError(
                f"Job type {job_type} is not declared on queue {queue_name}"
            )
        key = (queue_name, job_type)
        if key in self._handlers:
            raise ConfigurationError(
                f"Handler already registered for {queue_name}/{job_type}: "
                f"{self._handlers[key].task_name}"
            )
        self._handlers[key] = handler
        self._metadata[key] = JobMetadata(
            queue=queue_name,
            job_type=job_type,
            name=name or handler.task_name,
            description=description,
        )
        logger.info(
            f"Registered job: {queue_name}/{job_type} -> {handler.task_name}",
            extra={"queue": queue_name.value, "event_type": "handler_registered"},
        )

    def register_class(
        self, handler_class: Type[JobHandler], *args: Any, **kwargs: Any
    ) -> JobHandler:
        """Instantiate a class declared with ``@job`` and register it."""
        metadata: Optional[JobMetadata] = getattr(handler_class, "job_metadata", None)
        if metadata is None:
            raise ConfigurationError(
                f"{handler_class.__name__} is not decorated with @job"
            )
        handler = handler_class(*args, **kwargs)
        self.register(
            metadata.queue,
            metadata.job_type,
            handler,
            name=metadata.name,
            description=metadata.description,
        )
        return handler

    def get(self, queue: Union[QueueName, str], job_type: str) -> Optional[JobHandler]:
        return self._handlers.get((resolve_queue(queue), job_type))

    def require(self, queue: Union[QueueName, str], job_type: str) -> JobHandler:
        handler = self.get(queue, job_type)
        if handler is None:
            raise ConfigurationError(f"No handler registered for {queue}/{job_type}")
        return handler

    def validate(self) -> List[str]:
        """Describe every declared job type that lacks a handler."""
        return [
            f"No handler registered for {queue}/{job_type}"
            for queue, job_type in declared_job_types()
            if (queue, job_type) not in self._handlers
        ]

    def ensure_complete(self) -> None:
        issues = self.validate()
        if issues:
            raise ConfigurationError("; ".join(issues))

    def list_jobs(self) -> Dict[HandlerKey, JobMetadata]:
        return dict(self._metadata)
