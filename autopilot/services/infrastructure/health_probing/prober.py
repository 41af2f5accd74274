"""Periodic self-testing of the deployed HTTP surface."""

import asyncio
import time
from typing import Any, Dict, List, Optional

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from autopilot.backend.abstract import AbstractMonitoringStore, StoreUnavailableError
from autopilot.backend.models import (
    Alert,
    AlertSeverity,
    EndpointResult,
    HealthSummary,
    PerformanceMetrics,
    ProbeEndpoint,
    ProbeMetrics,
    TestResult,
    TestSummary,
    TestType,
)
from autopilot.config import ProberConfig
from autopilot.lib.logger import configure_logger
from autopilot.lib.utils import Clock, ms_to_iso, now_ms

from .alerting import AlertThresholds, critical_failure_alert, evaluate_sweep
from .health import (
    ACTIVE_ALERT_WINDOW_MS,
    HealthStatus,
    HealthThresholds,
    active_alerts,
    derive_health_status,
)
from .metrics import RollingMetrics

logger = configure_logger(__name__)

USER_AGENT = "autopilot-prober"

DEFAULT_ENDPOINTS: List[ProbeEndpoint] = [
    ProbeEndpoint(path="/health", critical=True),
    ProbeEndpoint(path="/api/customers/requests", critical=True),
    ProbeEndpoint(path="/api/workflows", critical=True),
    ProbeEndpoint(path="/api/content", critical=True),
    ProbeEndpoint(path="/api/analytics/dashboard", critical=False),
    ProbeEndpoint(path="/api/v1/customers/requests", critical=True),
    ProbeEndpoint(path="/api/v1/workflows", critical=True),
]

# Manual run aliases accepted by run_test
TEST_KINDS = {
    "health": TestType.HEALTH_CHECK,
    "endpoints": TestType.ENDPOINT_TEST,
    "performance": TestType.PERFORMANCE_TEST,
}

SCHEDULED_JOB_IDS = (
    "prober_health_check",
    "prober_endpoint_sweep",
    "prober_performance_test",
    "prober_health_summary",
)


class PeriodicProber:
    """Probes the service on fixed intervals and keeps results, alerts and metrics.

    Store failures while recording results are logged and dropped so a
    degraded store never stops the probing schedule.
    """

    def __init__(
        self,
        config: ProberConfig,
        store: AbstractMonitoringStore,
        http_client: httpx.AsyncClient,
        scheduler: AsyncIOScheduler,
        endpoints: Optional[List[ProbeEndpoint]] = None,
        clock: Clock = now_ms,
    ):
        self.config = config
        self.store = store
        self.http_client = http_client
        self.scheduler = scheduler
        self.endpoints = list(endpoints or DEFAULT_ENDPOINTS)
        self.clock = clock
        self.metrics = RollingMetrics(store)
        self.alert_thresholds = AlertThresholds.from_config(config)
        self.health_thresholds = HealthThresholds.from_config(config)
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self, run_initial: bool = True) -> None:
        if self._running:
            logger.warning("Periodic prober already running")
            return

        self._running = True
        intervals = (
            self.config.health_check_interval_seconds,
            self.config.endpoint_test_interval_seconds,
            self.config.performance_test_interval_seconds,
            self.config.summary_interval_seconds,
        )
        funcs = (
            self.run_health_check,
            self.run_full_sweep,
            self.run_performance_test,
            self.generate_health_summary,
        )
        for job_id, func, seconds in zip(SCHEDULED_JOB_IDS, funcs, intervals):
            self.scheduler.add_job(
                func,
                IntervalTrigger(seconds=seconds),
                id=job_id,
                max_instances=1,
                coalesce=True,
                replace_existing=True,
                misfire_grace_time=60,
            )
        logger.info(
            "Periodic prober scheduled",
            extra={"base_url": self.config.base_url, "event_type": "prober_started"},
        )

        if run_initial:
            await self.run_health_check()
            await self.run_full_sweep()

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        for job_id in SCHEDULED_JOB_IDS:
            if self.scheduler.get_job(job_id):
                self.scheduler.remove_job(job_id)
        logger.info("Periodic prober stopped", extra={"event_type": "prober_stopped"})

    async def probe_endpoint(self, endpoint: ProbeEndpoint) -> EndpointResult:
        """Request one endpoint; any status below 500 counts as success."""
        url = f"{self.config.base_url.rstrip('/')}{endpoint.path}"
        started = time.perf_counter()
        try:
            response = await self.http_client.request(
                endpoint.method,
                url,
                headers={"User-Agent": USER_AGENT},
                timeout=self.config.request_timeout_seconds,
            )
        except httpx.HTTPError as e:
            return EndpointResult(
                endpoint=endpoint.path,
                method=endpoint.method,
                success=False,
                status_code=0,
                response_time_ms=(time.perf_counter() - started) * 1000,
                critical=endpoint.critical,
                error=str(e) or e.__class__.__name__,
                timestamp=self.clock(),
            )

        elapsed = (time.perf_counter() - started) * 1000
        success = response.status_code < 500
        return EndpointResult(
            endpoint=endpoint.path,
            method=endpoint.method,
            success=success,
            status_code=response.status_code,
            response_time_ms=elapsed,
            critical=endpoint.critical,
            error=None if success else f"HTTP {response.status_code}",
            timestamp=self.clock(),
        )

    async def run_health_check(self) -> TestResult:
        started = self.clock()
        logger.debug("Running health check")
        probe = await self.probe_endpoint(
            ProbeEndpoint(path=self.config.health_path, critical=True)
        )
        result = TestResult(
            test_id=f"health_{started}",
            type=TestType.HEALTH_CHECK,
            timestamp=started,
            results=[probe],
            duration_ms=self.clock() - started,
        )
        await self._record_result(result)
        if not probe.success:
            await self._raise_alert(
                critical_failure_alert("Health check failed", [probe], self.clock())
            )
        return result

    async def run_full_sweep(self) -> TestResult:
        started = self.clock()
        logger.debug("Running endpoint sweep")
        results: List[EndpointResult] = []
        for index, endpoint in enumerate(self.endpoints):
            if index:
                await asyncio.sleep(self.config.inter_request_delay_seconds)
            results.append(await self.probe_endpoint(endpoint))

        result = TestResult(
            test_id=f"endpoints_{started}",
            type=TestType.ENDPOINT_TEST,
            timestamp=started,
            results=results,
            summary=_summarize(results),
            duration_ms=self.clock() - started,
        )
        await self._record_result(result)
        for alert in evaluate_sweep(result, self.alert_thresholds, self.clock()):
            await self._raise_alert(alert)

        logger.info(
            f"Endpoint sweep completed: {result.summary.passed}/{result.summary.total} passed",
            extra={"test_id": result.test_id, "event_type": "endpoint_sweep"},
        )
        return result

    async def run_performance_test(self) -> TestResult:
        started = self.clock()
        began = time.perf_counter()
        target = ProbeEndpoint(path=self.config.performance_path)
        results = list(
            await asyncio.gather(
                *(
                    self.probe_endpoint(target)
                    for _ in range(self.config.performance_concurrency)
                )
            )
        )
        times = [r.response_time_ms for r in results]
        result = TestResult(
            test_id=f"performance_{started}",
            type=TestType.PERFORMANCE_TEST,
            timestamp=started,
            results=results,
            metrics=PerformanceMetrics(
                concurrent_requests=len(results),
                successful_requests=sum(1 for r in results if r.success),
                avg_response_time=sum(times) / len(times) if times else 0.0,
                min_response_time=min(times, default=0.0),
                max_response_time=max(times, default=0.0),
                total_duration_ms=(time.perf_counter() - began) * 1000,
            ),
            duration_ms=self.clock() - started,
        )
        await self._record_result(result)
        logger.info(
            f"Performance test completed: {result.metrics.avg_response_time:.0f}ms avg response time",
            extra={"test_id": result.test_id, "event_type": "performance_test"},
        )
        return result

    async def generate_health_summary(self) -> HealthSummary:
        metrics = await self.metrics.snapshot()
        summary = HealthSummary(
            timestamp=self.clock(),
            uptime=f"{metrics.uptime * 100:.2f}%",
            total_tests=metrics.total_tests,
            total_failures=metrics.total_failures,
            avg_response_time=f"{metrics.avg_response_time:.0f}ms",
            last_test_time=metrics.last_test_time,
        )
        logger.info(
            "Health summary",
            extra={**summary.model_dump(), "event_type": "health_summary"},
        )
        try:
            await self.store.save_health_summary(summary)
        except StoreUnavailableError as e:
            logger.error(f"Failed to store health summary: {e}")
        return summary

    async def run_test(self, kind: str) -> TestResult:
        """Run one test on demand; ``kind`` is health, endpoints or performance."""
        test_type = TEST_KINDS.get(kind)
        if test_type is None:
            raise ValueError(f"Invalid test type: {kind}")
        logger.info(f"Manual test triggered: {kind}")
        if test_type == TestType.HEALTH_CHECK:
            return await self.run_health_check()
        if test_type == TestType.ENDPOINT_TEST:
            return await self.run_full_sweep()
        return await self.run_performance_test()

    async def get_test_results(self, limit: int = 10) -> List[TestResult]:
        return await self.store.recent_test_results(limit)

    async def get_recent_alerts(self, limit: int = 10) -> List[Alert]:
        return await self.store.recent_alerts(limit)

    async def get_metrics(self) -> ProbeMetrics:
        return await self.metrics.snapshot()

    async def get_health(self) -> Dict[str, Any]:
        """Current health; an unreachable store reports unhealthy instead of raising."""
        now = self.clock()
        metrics = await self.metrics.snapshot()
        try:
            alerts = await self.store.recent_alerts(self.config.max_recent_alerts)
            recent = await self.store.recent_test_results(5)
        except StoreUnavailableError as e:
            return self._store_down_health(now, metrics, e)

        status: HealthStatus = derive_health_status(
            metrics, alerts, now, self.health_thresholds
        )
        return {
            "status": status.value,
            "timestamp": now,
            "uptime": metrics.uptime,
            "avg_response_time": metrics.avg_response_time,
            "total_tests": metrics.total_tests,
            "total_failures": metrics.total_failures,
            "recent_results": [
                {
                    "type": r.type.value,
                    "timestamp": r.timestamp,
                    "success": _passed(r),
                    "duration_ms": r.duration_ms,
                }
                for r in recent
            ],
            "active_alerts": len(active_alerts(alerts, now)),
            "store_available": True,
        }

    async def get_dashboard(self) -> Dict[str, Any]:
        now = self.clock()
        metrics = await self.metrics.snapshot()
        try:
            results = await self.store.recent_test_results(10)
            alerts = await self.store.recent_alerts(self.config.max_recent_alerts)
            latest_summary = await self.store.latest_health_summary()
        except StoreUnavailableError as e:
            return {
                "timestamp": ms_to_iso(now),
                "overview": self._store_down_health(now, metrics, e),
                "trends": {},
                "recent_tests": [],
                "recent_alerts": [],
                "latest_summary": None,
            }

        last_day = [r for r in results if r.timestamp > now - ACTIVE_ALERT_WINDOW_MS]
        return {
            "timestamp": ms_to_iso(now),
            "overview": {
                "status": derive_health_status(
                    metrics, alerts, now, self.health_thresholds
                ).value,
                "uptime": metrics.uptime,
                "total_tests": metrics.total_tests,
                "avg_response_time": metrics.avg_response_time,
                "active_alerts": len(active_alerts(alerts, now)),
                "store_available": True,
            },
            "trends": {
                "last_24_hours": {
                    "total_tests": len(last_day),
                    "success_rate": (
                        sum(1 for r in last_day if _passed(r)) / len(last_day)
                        if last_day
                        else 1.0
                    ),
                }
            },
            "recent_tests": [
                {
                    "type": r.type.value,
                    "timestamp": r.timestamp,
                    "duration_ms": r.duration_ms,
                    "success": _passed(r),
                    "summary": r.summary.model_dump() if r.summary else None,
                }
                for r in results[:5]
            ],
            "recent_alerts": [a.model_dump(mode="json") for a in alerts[:5]],
            "latest_summary": latest_summary.model_dump() if latest_summary else None,
        }

    def _store_down_health(
        self, now: int, metrics: ProbeMetrics, error: StoreUnavailableError
    ) -> Dict[str, Any]:
        logger.error(
            f"Monitoring store unavailable, reporting unhealthy: {error}",
            extra={"event_type": "store_error"},
        )
        return {
            "status": HealthStatus.UNHEALTHY.value,
            "timestamp": now,
            "uptime": metrics.uptime,
            "avg_response_time": metrics.avg_response_time,
            "total_tests": metrics.total_tests,
            "total_failures": metrics.total_failures,
            "recent_results": [],
            "active_alerts": 0,
            "store_available": False,
            "error": "Monitoring store unavailable",
        }

    async def _record_result(self, result: TestResult) -> None:
        try:
            await self.store.save_test_result(result)
            await self.metrics.ingest(result)
        except StoreUnavailableError as e:
            logger.error(
                f"Failed to store test result: {e}",
                extra={"test_id": result.test_id, "event_type": "store_error"},
            )

    async def _raise_alert(self, alert: Alert) -> None:
        log = logger.error if alert.severity == AlertSeverity.HIGH else logger.warning
        log(
            f"ALERT [{alert.type}]: {alert.message}",
            extra={"alert_id": alert.id, "event_type": "alert"},
        )
        try:
            await self.store.save_alert(alert)
        except StoreUnavailableError as e:
            logger.error(f"Failed to store alert: {e}", extra={"alert_id": alert.id})


def _summarize(results: List[EndpointResult]) -> TestSummary:
    passed = sum(1 for r in results if r.success)
    return TestSummary(
        total=len(results),
        passed=passed,
        failed=len(results) - passed,
        avg_response_time=(
            sum(r.response_time_ms for r in results) / len(results) if results else 0.0
        ),
    )


def _passed(result: TestResult) -> bool:
    if result.summary:
        return result.summary.failed == 0
    return all(r.success for r in result.results)
