import pytest

from autopilot.config import ProberConfig, QueueConfig
from autopilot.services.infrastructure.job_management.base import JobHandler
from autopilot.services.infrastructure.job_management.decorators import HandlerRegistry
from autopilot.services.infrastructure.job_management.queues import declared_job_types


class FakeClock:
    """Manually advanced epoch-millisecond clock."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def queue_config() -> QueueConfig:
    return QueueConfig(
        default_attempts=3,
        default_backoff_type="exponential",
        default_backoff_delay_ms=2000,
        max_backoff_delay_ms=3_600_000,
        default_priority=2,
        keep_completed=50,
        keep_failed=20,
        poll_interval_seconds=0.01,
        max_idle_interval_seconds=0.02,
        stall_interval_seconds=30,
        stall_check_interval_seconds=30,
        concurrency_overrides={},
    )


@pytest.fixture
def prober_config() -> ProberConfig:
    return ProberConfig(
        enabled=True,
        base_url="http://service.test",
        request_timeout_seconds=10,
        inter_request_delay_seconds=0,
        performance_concurrency=5,
        error_rate_threshold=0.05,
        response_time_threshold_ms=5000,
    )


class RecordingHandler(JobHandler):
    """Returns a fixed result and remembers every context it ran with."""

    def __init__(self, result=None, error: Exception = None):
        self.result = {"ok": True} if result is None else result
        self.error = error
        self.calls = []

    async def handle(self, context):
        self.calls.append(context)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def full_registry():
    """Build a registry with a handler for every declared job type.

    Keyword arguments override the handler for a given job type.
    """

    def build(**overrides) -> HandlerRegistry:
        registry = HandlerRegistry()
        for queue, job_type in declared_job_types():
            key = job_type.replace("-", "_")
            registry.register(queue, job_type, overrides.get(key) or RecordingHandler())
        return registry

    return build


@pytest.fixture
def recording_handler():
    return RecordingHandler
