"""Admission: turn enqueue-time options into a job record ready for the store."""

import uuid
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Optional, Union

from autopilot.backend.models import Job, JobState
from autopilot.config import QueueConfig
from autopilot.lib.utils import ensure_json_serializable

from .backoff import BackoffPolicy, ExponentialBackoff, FixedBackoff, to_settings
from .base import ConfigurationError
from .queues import QUEUE_DEFINITIONS, QueueName, resolve_queue

MIN_PRIORITY = 0
MAX_PRIORITY = 1000


class JobPriority(IntEnum):
    """Lower value is claimed first."""

    HIGH = 1
    NORMAL = 2
    LOW = 3

    def __str__(self):
        return self.name.lower()

    @classmethod
    def from_label(cls, label: Optional[str]) -> "JobPriority":
        """Map the public labels (high/medium/low) to a priority."""
        mapping = {
            "high": cls.HIGH,
            "medium": cls.NORMAL,
            "normal": cls.NORMAL,
            "low": cls.LOW,
        }
        return mapping.get((label or "medium").lower(), cls.NORMAL)


@dataclass
class JobOptions:
    """Per-enqueue overrides; unset fields fall back to the queue defaults."""

    priority: Optional[int] = None
    attempts: Optional[int] = None
    backoff: Optional[BackoffPolicy] = None
    delay_ms: int = 0
    job_id: Optional[str] = None

    @classmethod
    def for_request(cls, paid: bool = False, label: Optional[str] = None, **kwargs):
        """Options for customer requests; paid or approved requests jump the line."""
        priority = JobPriority.HIGH if paid else JobPriority.from_label(label)
        return cls(priority=int(priority), **kwargs)


class Dispatcher:
    """Validates admissions and applies defaults, priority and delay."""

    def __init__(self, queue_config: QueueConfig):
        self.config = queue_config

    def default_backoff(self) -> BackoffPolicy:
        if self.config.default_backoff_type == "fixed":
            return FixedBackoff(self.config.default_backoff_delay_ms)
        return ExponentialBackoff(
            self.config.default_backoff_delay_ms, self.config.max_backoff_delay_ms
        )

    def admit(
        self,
        queue: Union[QueueName, str],
        job_type: str,
        payload: Dict[str, Any],
        options: Optional[JobOptions],
        sequence: int,
        now: int,
    ) -> Job:
        queue_name = resolve_queue(queue)
        if job_type not in QUEUE_DEFINITIONS[queue_name].job_types:
            raise ConfigurationError(
                f"Job type {job_type} is not declared on queue {queue_name}"
            )
        if not isinstance(payload, dict):
            raise TypeError("Job payload must be a mapping")
        ensure_json_serializable(payload)

        options = options or JobOptions()
        priority = (
            self.config.default_priority if options.priority is None else options.priority
        )
        priority = max(MIN_PRIORITY, min(MAX_PRIORITY, int(priority)))
        attempts = (
            self.config.default_attempts
            if options.attempts is None
            else options.attempts
        )
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        delay_ms = max(0, int(options.delay_ms or 0))

        return Job(
            id=options.job_id or str(uuid.uuid4()),
            queue_name=queue_name.value,
            type=job_type,
            payload=payload,
            priority=priority,
            sequence=sequence,
            max_attempts=attempts,
            backoff=to_settings(options.backoff or self.default_backoff()),
            delay_until=now + delay_ms if delay_ms > 0 else None,
            state=JobState.DELAYED if delay_ms > 0 else JobState.WAITING,
            created_at=now,
        )
