"""The closed set of pipeline queues and the job types each one accepts."""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Iterator, Tuple, Union


class QueueName(str, Enum):
    GENERATION = "workflow-generation"
    TESTING = "workflow-testing"
    CONTENT_CREATION = "content-creation"
    PUBLISHING = "video-publishing"
    NOTIFICATIONS = "email-notifications"
    ANALYTICS = "analytics"

    def __str__(self):
        return self.value


class JobTypes:
    GENERATE_WORKFLOW = "generate-workflow"
    TEST_WORKFLOW = "test-workflow"
    CREATE_CONTENT = "create-content"
    PUBLISH_VIDEO = "publish-video"
    SEND_EMAIL = "send-email"
    SEND_SCHEDULED_EMAIL = "send-scheduled-email"
    TRACK_EVENT = "track-event"


@dataclass(frozen=True)
class QueueDefinition:
    name: QueueName
    concurrency: int
    job_types: FrozenSet[str]
    description: str = ""


QUEUE_DEFINITIONS: Dict[QueueName, QueueDefinition] = {
    QueueName.GENERATION: QueueDefinition(
        QueueName.GENERATION,
        concurrency=5,
        job_types=frozenset({JobTypes.GENERATE_WORKFLOW}),
        description="LLM workflow generation",
    ),
    QueueName.TESTING: QueueDefinition(
        QueueName.TESTING,
        concurrency=3,
        job_types=frozenset({JobTypes.TEST_WORKFLOW}),
        description="Validation of generated workflows",
    ),
    QueueName.CONTENT_CREATION: QueueDefinition(
        QueueName.CONTENT_CREATION,
        concurrency=2,
        job_types=frozenset({JobTypes.CREATE_CONTENT}),
        description="Tutorial script, audio and video assembly",
    ),
    QueueName.PUBLISHING: QueueDefinition(
        QueueName.PUBLISHING,
        # Quota-limited video platform
        concurrency=1,
        job_types=frozenset({JobTypes.PUBLISH_VIDEO}),
        description="Video upload",
    ),
    QueueName.NOTIFICATIONS: QueueDefinition(
        QueueName.NOTIFICATIONS,
        concurrency=10,
        job_types=frozenset({JobTypes.SEND_EMAIL, JobTypes.SEND_SCHEDULED_EMAIL}),
        description="Transactional and sequenced email",
    ),
    QueueName.ANALYTICS: QueueDefinition(
        QueueName.ANALYTICS,
        concurrency=20,
        job_types=frozenset({JobTypes.TRACK_EVENT}),
        description="Analytics event tracking",
    ),
}


def resolve_queue(name: Union[QueueName, str]) -> QueueName:
    """Map a wire name (or member) to its QueueName.

    Raises ConfigurationError for names outside the closed set.
    """
    from .base import ConfigurationError

    if isinstance(name, QueueName):
        return name
    try:
        return QueueName(name)
    except ValueError:
        raise ConfigurationError(f"Unknown queue: {name}") from None


def declared_job_types() -> Iterator[Tuple[QueueName, str]]:
    for definition in QUEUE_DEFINITIONS.values():
        for job_type in sorted(definition.job_types):
            yield definition.name, job_type


def concurrency_for(queue: QueueName, overrides: Dict[str, int]) -> int:
    return overrides.get(queue.value, QUEUE_DEFINITIONS[queue].concurrency)
