"""Tests for alert rules, rolling probe metrics and health derivation."""

from unittest.mock import AsyncMock

import pytest

from autopilot.backend.abstract import StoreUnavailableError
from autopilot.backend.memory import MemoryMonitoringStore
from autopilot.backend.models import (
    Alert,
    AlertSeverity,
    AlertType,
    EndpointResult,
    ProbeMetrics,
    TestResult,
    TestSummary,
    TestType,
)
from autopilot.services.infrastructure.health_probing import (
    AlertThresholds,
    HealthStatus,
    RollingMetrics,
    derive_health_status,
    evaluate_sweep,
)

NOW = 1_700_000_000_000
HOUR_MS = 60 * 60 * 1000


def sweep(total, failed, avg=100.0, critical_failures=0):
    results = [
        EndpointResult(
            endpoint=f"/e{i}",
            success=i >= critical_failures,
            status_code=500 if i < critical_failures else 200,
            critical=True,
            timestamp=NOW,
        )
        for i in range(total)
    ]
    return TestResult(
        test_id=f"endpoints_{NOW}",
        type=TestType.ENDPOINT_TEST,
        timestamp=NOW,
        results=results,
        summary=TestSummary(
            total=total, passed=total - failed, failed=failed, avg_response_time=avg
        ),
    )


def alert(alert_type=AlertType.HIGH_ERROR_RATE, age_ms=0):
    return Alert(
        id=f"alert_{NOW - age_ms}",
        type=alert_type,
        message="m",
        timestamp=NOW - age_ms,
    )


class TestEvaluateSweep:
    def test_error_rate_above_threshold(self):
        alerts = evaluate_sweep(sweep(20, 2), AlertThresholds(), NOW)

        assert [a.type for a in alerts] == [AlertType.HIGH_ERROR_RATE]
        assert alerts[0].message == "High error rate detected: 10.0% (2/20 failed)"
        assert alerts[0].severity == AlertSeverity.MEDIUM
        assert alerts[0].id.startswith(f"alert_{NOW}_")

    def test_error_rate_at_threshold_is_quiet(self):
        assert evaluate_sweep(sweep(20, 1), AlertThresholds(), NOW) == []

    def test_slow_response(self):
        alerts = evaluate_sweep(sweep(4, 0, avg=6200.4), AlertThresholds(), NOW)

        assert [a.type for a in alerts] == [AlertType.SLOW_RESPONSE]
        assert alerts[0].message == "Slow response time detected: 6200ms average"

    def test_critical_failures(self):
        alerts = evaluate_sweep(
            sweep(7, 1, critical_failures=1), AlertThresholds(error_rate=0.5), NOW
        )

        assert len(alerts) == 1
        assert alerts[0].type == AlertType.CRITICAL_FAILURE
        assert alerts[0].severity == AlertSeverity.HIGH
        assert alerts[0].message == "CRITICAL: Critical endpoint failures"
        assert alerts[0].details["failures"][0]["endpoint"] == "/e0"

    def test_results_without_summary(self):
        result = TestResult(
            test_id="health_1", type=TestType.HEALTH_CHECK, timestamp=NOW
        )

        assert evaluate_sweep(result, AlertThresholds(), NOW) == []


class TestRollingMetrics:
    @pytest.mark.asyncio
    async def test_probe_weighted_mean(self):
        metrics = RollingMetrics(MemoryMonitoringStore())

        await metrics.ingest(sweep(2, 0, avg=100.0))
        current = await metrics.ingest(sweep(6, 0, avg=300.0))

        assert current.total_tests == 2
        assert current.total_probes == 8
        assert current.avg_response_time == pytest.approx(250.0)

    @pytest.mark.asyncio
    async def test_uptime_counts_failures_against_tests(self):
        metrics = RollingMetrics(MemoryMonitoringStore())

        for _ in range(3):
            await metrics.ingest(sweep(7, 0))
        current = await metrics.ingest(sweep(7, 1))

        assert current.total_failures == 1
        assert current.uptime == pytest.approx(0.75)

    @pytest.mark.asyncio
    async def test_uptime_never_negative(self):
        metrics = RollingMetrics(MemoryMonitoringStore())

        current = await metrics.ingest(sweep(7, 7))

        assert current.uptime == 0.0

    @pytest.mark.asyncio
    async def test_non_sweeps_only_count_tests(self):
        metrics = RollingMetrics(MemoryMonitoringStore())
        health = TestResult(
            test_id="health_1",
            type=TestType.HEALTH_CHECK,
            timestamp=NOW,
            results=[
                EndpointResult(endpoint="/health", success=False, timestamp=NOW)
            ],
        )

        current = await metrics.ingest(health)

        assert current.total_tests == 1
        assert current.total_failures == 0
        assert current.uptime == 1.0
        assert current.last_test_time == NOW

    @pytest.mark.asyncio
    async def test_persisted_and_reloaded(self):
        store = MemoryMonitoringStore()
        await RollingMetrics(store).ingest(sweep(4, 0, avg=50.0))

        reloaded = await RollingMetrics(store).snapshot()

        assert reloaded.total_tests == 1
        assert reloaded.avg_response_time == 50.0

    @pytest.mark.asyncio
    async def test_instances_sharing_a_store_accumulate(self):
        store = MemoryMonitoringStore()
        first, second = RollingMetrics(store), RollingMetrics(store)
        await first.ingest(sweep(4, 0))
        await first.ingest(sweep(4, 0))

        assert (await second.snapshot()).total_tests == 2

        await second.ingest(sweep(4, 1))

        assert (await store.load_metrics()).total_tests == 3
        assert (await first.snapshot()).total_failures == 1

    @pytest.mark.asyncio
    async def test_last_known_copy_served_while_store_down(self):
        store = MemoryMonitoringStore()
        metrics = RollingMetrics(store)
        await metrics.ingest(sweep(4, 1))
        store.load_metrics = AsyncMock(side_effect=StoreUnavailableError("down"))

        current = await metrics.snapshot()

        assert current.total_tests == 1
        assert current.total_failures == 1

    @pytest.mark.asyncio
    async def test_empty_metrics_when_store_down_from_the_start(self):
        store = MemoryMonitoringStore()
        store.load_metrics = AsyncMock(side_effect=StoreUnavailableError("down"))

        assert (await RollingMetrics(store).snapshot()).total_tests == 0

    @pytest.mark.asyncio
    async def test_reset(self):
        metrics = RollingMetrics(MemoryMonitoringStore())
        await metrics.ingest(sweep(4, 1))

        await metrics.reset()

        assert (await metrics.snapshot()).total_tests == 0


class TestDeriveHealthStatus:
    def test_healthy(self):
        assert derive_health_status(ProbeMetrics(), [], NOW) == HealthStatus.HEALTHY

    def test_degraded_by_uptime(self):
        metrics = ProbeMetrics(uptime=0.93)

        assert derive_health_status(metrics, [], NOW) == HealthStatus.DEGRADED

    def test_degraded_by_active_critical_alert(self):
        alerts = [alert(AlertType.CRITICAL_FAILURE, age_ms=HOUR_MS)]

        assert derive_health_status(ProbeMetrics(), alerts, NOW) == (
            HealthStatus.DEGRADED
        )

    def test_old_critical_alert_ignored(self):
        alerts = [alert(AlertType.CRITICAL_FAILURE, age_ms=25 * HOUR_MS)]

        assert derive_health_status(ProbeMetrics(), alerts, NOW) == (
            HealthStatus.HEALTHY
        )

    def test_unhealthy_by_uptime(self):
        metrics = ProbeMetrics(uptime=0.89)

        assert derive_health_status(metrics, [], NOW) == HealthStatus.UNHEALTHY

    def test_unhealthy_by_alert_volume(self):
        alerts = [alert(age_ms=i * 1000) for i in range(6)]

        assert derive_health_status(ProbeMetrics(), alerts, NOW) == (
            HealthStatus.UNHEALTHY
        )

    def test_five_alerts_is_not_unhealthy(self):
        alerts = [alert(age_ms=i * 1000) for i in range(5)]

        assert derive_health_status(ProbeMetrics(), alerts, NOW) == (
            HealthStatus.HEALTHY
        )
