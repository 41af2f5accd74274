"""Job execution metrics built from queue lifecycle events."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from autopilot.lib.logger import configure_logger

from .events import QueueEvent, QueueEventType

logger = configure_logger(__name__)


@dataclass
class QueueMetrics:
    """Metrics for one queue."""

    queue: str
    total_executions: int = 0
    successful_executions: int = 0
    failed_executions: int = 0
    retried_executions: int = 0
    stalled_executions: int = 0

    # Timing metrics (seconds)
    total_execution_time: float = 0.0
    min_execution_time: Optional[float] = None
    max_execution_time: Optional[float] = None
    avg_execution_time: float = 0.0

    # Concurrency metrics
    current_running: int = 0
    max_concurrent_reached: int = 0

    last_execution: Optional[datetime] = None
    last_success: Optional[datetime] = None
    last_failure: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "queue": self.queue,
            "total_executions": self.total_executions,
            "successful_executions": self.successful_executions,
            "failed_executions": self.failed_executions,
            "retried_executions": self.retried_executions,
            "stalled_executions": self.stalled_executions,
            "success_rate": (
                self.successful_executions / self.total_executions
                if self.total_executions > 0
                else 0.0
            ),
            "current_running": self.current_running,
            "max_concurrent_reached": self.max_concurrent_reached,
            "average_duration_seconds": self.avg_execution_time,
            "min_duration_seconds": self.min_execution_time or 0.0,
            "max_duration_seconds": self.max_execution_time or 0.0,
            "last_execution": (
                self.last_execution.isoformat() if self.last_execution else None
            ),
            "last_success": self.last_success.isoformat() if self.last_success else None,
            "last_failure": self.last_failure.isoformat() if self.last_failure else None,
        }


@dataclass
class ExecutionEvent:
    """Individual execution event for detailed tracking."""

    job_id: Optional[str]
    queue: str
    event_type: str  # started, completed, retried, failed, stalled
    timestamp: datetime
    job_type: Optional[str] = None
    duration: Optional[float] = None
    error: Optional[str] = None
    attempt: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)


class MetricsCollector:
    """Event-bus listener aggregating per-queue execution metrics."""

    def __init__(self, max_events: int = 10000):
        self._metrics: Dict[str, QueueMetrics] = {}
        self._events: List[ExecutionEvent] = []
        self._max_events = max_events
        self._start_time = datetime.now()

    def __call__(self, event: QueueEvent) -> None:
        handlers = {
            QueueEventType.ACTIVE: self._record_start,
            QueueEventType.COMPLETED: self._record_completion,
            QueueEventType.RETRYING: self._record_retry,
            QueueEventType.FAILED: self._record_failure,
            QueueEventType.STALLED: self._record_stall,
        }
        handler = handlers.get(event.type)
        if handler is not None:
            handler(event)

    def _get(self, queue: str) -> QueueMetrics:
        if queue not in self._metrics:
            self._metrics[queue] = QueueMetrics(queue=queue)
        return self._metrics[queue]

    def _record_start(self, event: QueueEvent) -> None:
        metrics = self._get(event.queue)
        metrics.total_executions += 1
        metrics.current_running += 1
        metrics.max_concurrent_reached = max(
            metrics.max_concurrent_reached, metrics.current_running
        )
        metrics.last_execution = datetime.now()
        self._add_event(event, "started")

    def _finish_attempt(self, metrics: QueueMetrics, event: QueueEvent) -> None:
        metrics.current_running = max(0, metrics.current_running - 1)
        if event.duration_ms is not None:
            self._update_timing_metrics(metrics, event.duration_ms / 1000)

    def _record_completion(self, event: QueueEvent) -> None:
        metrics = self._get(event.queue)
        metrics.successful_executions += 1
        metrics.last_success = datetime.now()
        self._finish_attempt(metrics, event)
        self._add_event(event, "completed")

    def _record_retry(self, event: QueueEvent) -> None:
        metrics = self._get(event.queue)
        metrics.retried_executions += 1
        metrics.last_failure = datetime.now()
        self._finish_attempt(metrics, event)
        self._add_event(event, "retried")

    def _record_failure(self, event: QueueEvent) -> None:
        metrics = self._get(event.queue)
        metrics.failed_executions += 1
        metrics.last_failure = datetime.now()
        self._finish_attempt(metrics, event)
        self._add_event(event, "failed")

    def _record_stall(self, event: QueueEvent) -> None:
        self._get(event.queue).stalled_executions += 1
        self._add_event(event, "stalled")

    def _update_timing_metrics(self, metrics: QueueMetrics, duration: float) -> None:
        if metrics.min_execution_time is None or duration < metrics.min_execution_time:
            metrics.min_execution_time = duration
        if metrics.max_execution_time is None or duration > metrics.max_execution_time:
            metrics.max_execution_time = duration

        total_time = metrics.total_execution_time + duration
        total_count = (
            metrics.successful_executions
            + metrics.failed_executions
            + metrics.retried_executions
        )
        metrics.total_execution_time = total_time
        if total_count > 0:
            metrics.avg_execution_time = total_time / total_count

    def _add_event(self, event: QueueEvent, label: str) -> None:
        self._events.append(
            ExecutionEvent(
                job_id=event.job_id,
                queue=event.queue,
                event_type=label,
                timestamp=datetime.now(),
                job_type=event.job_type,
                duration=(
                    event.duration_ms / 1000 if event.duration_ms is not None else None
                ),
                error=event.error,
                attempt=event.attempts,
                metadata=dict(event.data),
            )
        )
        if len(self._events) > self._max_events:
            # Remove oldest 20% to avoid frequent trimming
            trim_count = int(self._max_events * 0.2)
            self._events = self._events[trim_count:]

    def get_metrics(self, queue: Optional[str] = None) -> Dict[str, QueueMetrics]:
        if queue:
            return {queue: self._metrics.get(queue, QueueMetrics(queue=queue))}
        return self._metrics.copy()

    def get_recent_events(
        self, queue: Optional[str] = None, limit: int = 100
    ) -> List[ExecutionEvent]:
        events = self._events
        if queue:
            events = [e for e in events if e.queue == queue]
        return sorted(events, key=lambda e: e.timestamp, reverse=True)[:limit]

    def get_system_metrics(self) -> Dict[str, Any]:
        total_executions = sum(m.total_executions for m in self._metrics.values())
        total_successful = sum(m.successful_executions for m in self._metrics.values())
        total_failed = sum(m.failed_executions for m in self._metrics.values())
        total_retried = sum(m.retried_executions for m in self._metrics.values())
        total_stalled = sum(m.stalled_executions for m in self._metrics.values())

        return {
            "uptime_seconds": (datetime.now() - self._start_time).total_seconds(),
            "total_executions": total_executions,
            "total_successful": total_successful,
            "total_failed": total_failed,
            "total_retried": total_retried,
            "total_stalled": total_stalled,
            "success_rate": (
                (total_successful / total_executions) if total_executions > 0 else 0
            ),
            "active_queues": len(self._metrics),
            "total_events": len(self._events),
        }

    def get_health_status(self) -> Dict[str, Any]:
        """Coarse pipeline health from failure rates and stalls."""
        now = datetime.now()
        health = {"status": "healthy", "issues": []}

        for queue, metrics in self._metrics.items():
            if metrics.total_executions > 10:
                failure_rate = metrics.failed_executions / metrics.total_executions
                if failure_rate > 0.5:
                    health["issues"].append(
                        f"{queue}: High failure rate ({failure_rate:.1%})"
                    )
            if metrics.stalled_executions:
                health["issues"].append(
                    f"{queue}: {metrics.stalled_executions} stalled jobs"
                )
            if metrics.current_running and metrics.last_execution:
                if now - metrics.last_execution > timedelta(hours=2):
                    health["issues"].append(
                        f"{queue}: No new executions in {now - metrics.last_execution}"
                    )

        if health["issues"]:
            health["status"] = "degraded" if len(health["issues"]) < 3 else "unhealthy"

        return health

    def reset_metrics(self, queue: Optional[str] = None) -> None:
        if queue:
            if queue in self._metrics:
                self._metrics[queue] = QueueMetrics(queue=queue)
        else:
            self._metrics.clear()
            self._events.clear()

        logger.info(f"Reset metrics for {queue or 'all queues'}")
