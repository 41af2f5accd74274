"""Tests for the event bus and the job metrics collector."""

import pytest

from autopilot.services.infrastructure.job_management.events import (
    EventBus,
    QueueEvent,
    QueueEventType,
    log_queue_event,
)
from autopilot.services.infrastructure.job_management.monitoring import (
    MetricsCollector,
)


def event(event_type, **kw):
    return QueueEvent(type=event_type, queue=kw.pop("queue", "analytics"), **kw)


class TestEventBus:
    @pytest.mark.asyncio
    async def test_sync_and_async_listeners(self):
        bus = EventBus()
        seen = []

        async def async_listener(e):
            seen.append(("async", e.type))

        bus.subscribe(lambda e: seen.append(("sync", e.type)))
        bus.subscribe(async_listener)

        await bus.publish(event(QueueEventType.WAITING, job_id="1"))

        assert seen == [
            ("sync", QueueEventType.WAITING),
            ("async", QueueEventType.WAITING),
        ]

    @pytest.mark.asyncio
    async def test_listener_errors_do_not_propagate(self):
        bus = EventBus()
        seen = []

        def broken(e):
            raise RuntimeError("listener bug")

        bus.subscribe(broken)
        bus.subscribe(seen.append)

        await bus.publish(event(QueueEventType.FAILED, error="x"))

        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        bus = EventBus()
        seen = []
        bus.subscribe(seen.append)
        bus.subscribe(seen.append)
        bus.unsubscribe(seen.append)

        await bus.publish(event(QueueEventType.READY))

        assert seen == []

    def test_log_listener_handles_every_type(self):
        for event_type in QueueEventType:
            log_queue_event(event(event_type, job_id="j", error="e", delay_ms=5))


class TestMetricsCollector:
    def test_execution_lifecycle(self):
        collector = MetricsCollector()

        collector(event(QueueEventType.ACTIVE, job_id="1"))
        collector(event(QueueEventType.RETRYING, job_id="1", duration_ms=1000))
        collector(event(QueueEventType.ACTIVE, job_id="1"))
        collector(event(QueueEventType.COMPLETED, job_id="1", duration_ms=3000))

        metrics = collector.get_metrics("analytics")["analytics"]
        assert metrics.total_executions == 2
        assert metrics.successful_executions == 1
        assert metrics.retried_executions == 1
        assert metrics.current_running == 0
        assert metrics.max_concurrent_reached == 1
        assert metrics.min_execution_time == 1.0
        assert metrics.max_execution_time == 3.0
        assert metrics.avg_execution_time == 2.0

    def test_ignores_non_execution_events(self):
        collector = MetricsCollector()

        collector(event(QueueEventType.WAITING, job_id="1"))
        collector(event(QueueEventType.PROGRESS, job_id="1", progress=10))

        assert collector.get_metrics() == {}
        assert collector.get_recent_events() == []

    def test_event_log_is_trimmed(self):
        collector = MetricsCollector(max_events=10)

        for i in range(11):
            collector(event(QueueEventType.ACTIVE, job_id=str(i)))

        assert len(collector.get_recent_events(limit=100)) == 9

    def test_health_reports_stalls(self):
        collector = MetricsCollector()

        collector(event(QueueEventType.STALLED, job_id="1", queue="content-creation"))

        health = collector.get_health_status()
        assert health["status"] == "degraded"
        assert "content-creation: 1 stalled jobs" in health["issues"]

    def test_high_failure_rate_reported(self):
        collector = MetricsCollector()
        for i in range(12):
            collector(event(QueueEventType.ACTIVE, job_id=str(i)))
            collector(event(QueueEventType.FAILED, job_id=str(i)))

        health = collector.get_health_status()

        assert any("High failure rate" in issue for issue in health["issues"])

    def test_system_metrics_and_reset(self):
        collector = MetricsCollector()
        collector(event(QueueEventType.ACTIVE, job_id="1"))
        collector(event(QueueEventType.COMPLETED, job_id="1"))

        system = collector.get_system_metrics()
        assert system["total_executions"] == 1
        assert system["success_rate"] == 1.0

        collector.reset_metrics()
        assert collector.get_system_metrics()["total_executions"] == 0
