"""Job management: queues, handlers, workers and metrics for the pipeline."""

from .backoff import BackoffPolicy, ExponentialBackoff, FixedBackoff
from .base import ConfigurationError, JobContext, JobHandler
from .decorators import HandlerRegistry, JobMetadata, job
from .dispatcher import JobOptions, JobPriority
from .events import EventBus, QueueEvent, QueueEventType
from .executor import JobExecutor
from .job_manager import JobManager
from .monitoring import MetricsCollector
from .queues import QUEUE_DEFINITIONS, JobTypes, QueueName

__all__ = [
    "BackoffPolicy",
    "ConfigurationError",
    "EventBus",
    "ExponentialBackoff",
    "FixedBackoff",
    "HandlerRegistry",
    "JobContext",
    "JobExecutor",
    "JobHandler",
    "JobManager",
    "JobMetadata",
    "JobOptions",
    "JobPriority",
    "JobTypes",
    "MetricsCollector",
    "QUEUE_DEFINITIONS",
    "QueueEvent",
    "QueueEventType",
    "QueueName",
    "job",
]
