"""Tests for the periodic prober against a mocked HTTP surface."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from autopilot.backend.abstract import StoreUnavailableError
from autopilot.backend.memory import MemoryMonitoringStore
from autopilot.backend.models import AlertType, ProbeEndpoint, TestType
from autopilot.services.infrastructure.health_probing import (
    DEFAULT_ENDPOINTS,
    PeriodicProber,
)
from autopilot.services.infrastructure.health_probing.prober import (
    SCHEDULED_JOB_IDS,
    USER_AGENT,
)


def transport(statuses=None, timeouts=(), seen=None):
    """Answer 200 unless a path is mapped to another status or times out."""
    statuses = statuses or {}

    def handler(request):
        if seen is not None:
            seen.append(request)
        if request.url.path in timeouts:
            raise httpx.ConnectTimeout("timed out", request=request)
        return httpx.Response(statuses.get(request.url.path, 200), json={})

    return httpx.MockTransport(handler)


@pytest.fixture
def scheduler():
    mock = MagicMock(spec=AsyncIOScheduler)
    mock.get_job.return_value = object()
    return mock


@pytest.fixture
def make_prober(prober_config, scheduler, clock):
    def build(store=None, **transport_kw):
        return PeriodicProber(
            prober_config,
            store or MemoryMonitoringStore(clock=clock),
            httpx.AsyncClient(transport=transport(**transport_kw)),
            scheduler,
            clock=clock,
        )

    return build


class TestProbeEndpoint:
    @pytest.mark.asyncio
    async def test_client_errors_count_as_success(self, make_prober):
        seen = []
        prober = make_prober(statuses={"/missing": 404}, seen=seen)

        result = await prober.probe_endpoint(ProbeEndpoint(path="/missing"))

        assert result.success is True
        assert result.status_code == 404
        assert str(seen[0].url) == "http://service.test/missing"
        assert seen[0].headers["User-Agent"] == USER_AGENT

    @pytest.mark.asyncio
    async def test_server_error_fails(self, make_prober):
        prober = make_prober(statuses={"/api/workflows": 503})

        result = await prober.probe_endpoint(
            ProbeEndpoint(path="/api/workflows", critical=True)
        )

        assert result.success is False
        assert result.error == "HTTP 503"
        assert result.critical is True

    @pytest.mark.asyncio
    async def test_transport_error_has_status_zero(self, make_prober):
        prober = make_prober(timeouts={"/health"})

        result = await prober.probe_endpoint(ProbeEndpoint(path="/health"))

        assert result.success is False
        assert result.status_code == 0
        assert result.error


class TestScheduledRuns:
    @pytest.mark.asyncio
    async def test_health_check_timeout_raises_critical_alert(self, make_prober, clock):
        prober = make_prober(timeouts={"/health"})

        result = await prober.run_health_check()

        assert result.test_id == f"health_{clock()}"
        assert result.type == TestType.HEALTH_CHECK
        alerts = await prober.get_recent_alerts()
        assert [a.type for a in alerts] == [AlertType.CRITICAL_FAILURE]
        assert alerts[0].message == "CRITICAL: Health check failed"
        health = await prober.get_health()
        assert health["status"] in ("degraded", "unhealthy")
        assert health["active_alerts"] == 1

    @pytest.mark.asyncio
    async def test_full_sweep_all_passing(self, make_prober):
        prober = make_prober()

        result = await prober.run_full_sweep()

        assert [r.endpoint for r in result.results] == [
            e.path for e in DEFAULT_ENDPOINTS
        ]
        assert result.summary.passed == 7
        assert await prober.get_recent_alerts() == []
        metrics = await prober.get_metrics()
        assert metrics.total_tests == 1
        assert metrics.uptime == 1.0
        assert (await prober.get_health())["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_sweep_with_critical_failure(self, make_prober):
        prober = make_prober(statuses={"/api/content": 500})

        result = await prober.run_full_sweep()

        assert result.summary.failed == 1
        types = {a.type for a in await prober.get_recent_alerts()}
        assert types == {AlertType.HIGH_ERROR_RATE, AlertType.CRITICAL_FAILURE}

    @pytest.mark.asyncio
    async def test_performance_burst(self, make_prober, prober_config):
        seen = []
        prober = make_prober(seen=seen)

        result = await prober.run_performance_test()

        assert len(seen) == prober_config.performance_concurrency
        assert result.metrics.concurrent_requests == 5
        assert result.metrics.successful_requests == 5
        assert result.metrics.min_response_time <= result.metrics.max_response_time
        assert (await prober.get_test_results())[0].test_id == result.test_id

    @pytest.mark.asyncio
    async def test_health_summary(self, make_prober):
        prober = make_prober()
        await prober.run_full_sweep()

        summary = await prober.generate_health_summary()

        assert summary.uptime == "100.00%"
        assert summary.total_tests == 1
        assert summary.avg_response_time.endswith("ms")

    @pytest.mark.asyncio
    async def test_store_outage_does_not_raise(self, make_prober, clock):
        store = MemoryMonitoringStore(clock=clock)
        store.save_test_result = AsyncMock(side_effect=StoreUnavailableError("down"))
        prober = make_prober(store=store)

        result = await prober.run_health_check()

        assert result.results[0].success is True

    @pytest.mark.asyncio
    async def test_health_reports_unhealthy_when_store_down(self, make_prober, clock):
        store = MemoryMonitoringStore(clock=clock)
        prober = make_prober(store=store)
        await prober.run_full_sweep()
        store.recent_test_results = AsyncMock(side_effect=StoreUnavailableError("down"))

        health = await prober.get_health()

        assert health["status"] == "unhealthy"
        assert health["store_available"] is False
        assert health["total_tests"] == 1
        assert health["recent_results"] == []


class TestManualRuns:
    @pytest.mark.asyncio
    async def test_run_test_dispatches(self, make_prober):
        prober = make_prober()

        assert (await prober.run_test("health")).type == TestType.HEALTH_CHECK
        assert (await prober.run_test("endpoints")).type == TestType.ENDPOINT_TEST
        assert (await prober.run_test("performance")).type == (
            TestType.PERFORMANCE_TEST
        )

    @pytest.mark.asyncio
    async def test_invalid_kind(self, make_prober):
        with pytest.raises(ValueError, match="Invalid test type"):
            await make_prober().run_test("load")


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_schedules_and_runs_initial_tests(self, make_prober, scheduler):
        prober = make_prober()

        await prober.start()

        job_ids = [call.kwargs["id"] for call in scheduler.add_job.call_args_list]
        assert job_ids == list(SCHEDULED_JOB_IDS)
        for call in scheduler.add_job.call_args_list:
            assert call.kwargs["max_instances"] == 1
            assert call.kwargs["coalesce"] is True
            assert call.kwargs["replace_existing"] is True
        results = await prober.get_test_results()
        assert {r.type for r in results} == {
            TestType.HEALTH_CHECK,
            TestType.ENDPOINT_TEST,
        }

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, make_prober, scheduler):
        prober = make_prober()

        await prober.start(run_initial=False)
        await prober.start(run_initial=False)

        assert scheduler.add_job.call_count == 4

    @pytest.mark.asyncio
    async def test_stop_removes_jobs(self, make_prober, scheduler):
        prober = make_prober()
        await prober.start(run_initial=False)

        await prober.stop()

        assert prober.is_running is False
        removed = [call.args[0] for call in scheduler.remove_job.call_args_list]
        assert removed == list(SCHEDULED_JOB_IDS)
