"""Typed queue lifecycle events and the bus that fans them out."""

import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

from autopilot.lib.logger import configure_logger
from autopilot.lib.utils import now_ms

logger = configure_logger(__name__)


class QueueEventType(str, Enum):
    READY = "ready"
    WAITING = "waiting"
    ACTIVE = "active"
    PROGRESS = "progress"
    COMPLETED = "completed"
    RETRYING = "retrying"
    FAILED = "failed"
    STALLED = "stalled"
    PAUSED = "paused"
    RESUMED = "resumed"

    def __str__(self):
        return self.value


@dataclass(frozen=True)
class QueueEvent:
    type: QueueEventType
    queue: str
    job_id: Optional[str] = None
    job_type: Optional[str] = None
    attempts: int = 0
    progress: Optional[int] = None
    error: Optional[str] = None
    duration_ms: Optional[int] = None
    delay_ms: Optional[int] = None
    timestamp: int = field(default_factory=now_ms)
    data: Dict[str, Any] = field(default_factory=dict)


class QueueEventListener(Protocol):
    def __call__(self, event: QueueEvent) -> Any: ...


class EventBus:
    """Synchronous observer list; listeners may be plain or async callables."""

    def __init__(self) -> None:
        self._listeners: List[QueueEventListener] = []

    def subscribe(self, listener: QueueEventListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: QueueEventListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def publish(self, event: QueueEvent) -> None:
        for listener in list(self._listeners):
            try:
                outcome = listener(event)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.error(
                    f"Queue event listener failed: {event.type}",
                    extra={
                        "queue": event.queue,
                        "job_id": event.job_id,
                        "error": str(e),
                        "event_type": "listener_error",
                    },
                    exc_info=True,
                )


def log_queue_event(event: QueueEvent) -> None:
    """Listener that writes every lifecycle event to the pipeline log."""
    extra = {
        "queue": event.queue,
        "job_id": event.job_id,
        "job_type": event.job_type,
        "event_type": f"job_{event.type.value}",
    }
    if event.type == QueueEventType.FAILED:
        logger.error(
            f"Job {event.job_id} failed in queue {event.queue}",
            extra={**extra, "attempts": event.attempts, "error": event.error},
        )
    elif event.type == QueueEventType.RETRYING:
        logger.warning(
            f"Job {event.job_id} will retry in {event.delay_ms}ms",
            extra={**extra, "attempts": event.attempts, "error": event.error},
        )
    elif event.type == QueueEventType.STALLED:
        logger.warning(f"Job {event.job_id} stalled in queue {event.queue}", extra=extra)
    elif event.type in (QueueEventType.ACTIVE, QueueEventType.COMPLETED):
        logger.info(f"Job {event.type.value}: {event.job_type}", extra=extra)
    elif event.type in (
        QueueEventType.READY,
        QueueEventType.PAUSED,
        QueueEventType.RESUMED,
    ):
        logger.info(f"Queue {event.queue} {event.type.value}", extra=extra)
    else:
        logger.debug(f"Job {event.job_id} {event.type.value}", extra=extra)
