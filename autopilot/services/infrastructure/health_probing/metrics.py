import asyncio
from typing import Optional

from autopilot.backend.abstract import AbstractMonitoringStore, StoreUnavailableError
from autopilot.backend.models import ProbeMetrics, TestResult, TestType
from autopilot.lib.logger import configure_logger

logger = configure_logger(__name__)


class RollingMetrics:
    """Aggregate probe metrics, persisted through the monitoring store.

    Every ingested result counts as a test. Only endpoint sweeps move
    failures, the response time mean and uptime.

    The store holds the authoritative copy and is re-read on every call, so
    several instances sharing one store accumulate into the same totals. The
    last copy seen locally is only served while the store is unreachable.
    """

    def __init__(self, store: AbstractMonitoringStore):
        self.store = store
        self._lock = asyncio.Lock()
        self._current: Optional[ProbeMetrics] = None

    async def _load(self) -> ProbeMetrics:
        try:
            loaded = await self.store.load_metrics()
        except StoreUnavailableError as e:
            logger.warning(
                f"Serving last known probe metrics: {e}",
                extra={"event_type": "metrics_fallback"},
            )
            return (self._current or ProbeMetrics()).model_copy()
        self._current = loaded or ProbeMetrics()
        return self._current.model_copy()

    async def ingest(self, result: TestResult) -> ProbeMetrics:
        async with self._lock:
            metrics = await self._load()
            metrics.total_tests += 1
            metrics.last_test_time = result.timestamp

            if result.type == TestType.ENDPOINT_TEST and result.summary:
                summary = result.summary
                metrics.total_failures += summary.failed
                metrics.total_probes += summary.total
                metrics.total_response_time_ms += summary.avg_response_time * summary.total
                if metrics.total_probes:
                    metrics.avg_response_time = (
                        metrics.total_response_time_ms / metrics.total_probes
                    )
                metrics.uptime = max(
                    0.0,
                    (metrics.total_tests - metrics.total_failures) / metrics.total_tests,
                )

            self._current = metrics
            await self.store.save_metrics(metrics)
            return metrics.model_copy()

    async def snapshot(self) -> ProbeMetrics:
        async with self._lock:
            return await self._load()

    async def reset(self) -> ProbeMetrics:
        async with self._lock:
            self._current = ProbeMetrics()
            await self.store.save_metrics(self._current)
            logger.info("Probe metrics reset", extra={"event_type": "metrics_reset"})
            return self._current.model_copy()
