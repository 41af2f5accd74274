"""Tests for building, starting and stopping the component graph."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from autopilot.config import CollaboratorConfig, Config, StoreConfig
from autopilot.services.infrastructure.startup_service import StartupService


@pytest.fixture
def app_config(queue_config, prober_config):
    return Config(
        store=StoreConfig(backend="memory"),
        queues=queue_config,
        prober=prober_config,
        collaborators=CollaboratorConfig(),
    )


@pytest.fixture
def scheduler():
    mock = MagicMock(spec=AsyncIOScheduler)
    mock.running = False
    return mock


class TestStartupService:
    @pytest.mark.asyncio
    async def test_initialize_builds_graph(self, app_config, scheduler):
        service = StartupService(app_config, scheduler)

        await service.initialize()
        manager = service.job_manager
        await service.initialize()

        assert service.job_manager is manager
        assert manager.registry.validate() == []
        assert service.email_automation.job_manager is manager
        assert service.prober.scheduler is scheduler
        assert service.get_health_status()["services"] == {
            "job_manager": False,
            "prober": False,
        }
        await service.stop()

    @pytest.mark.asyncio
    async def test_start_and_stop(self, app_config, scheduler):
        service = StartupService(app_config, scheduler)
        await service.initialize()
        service.prober.start = AsyncMock()

        await service.start()

        assert service.job_manager.is_running
        scheduler.start.assert_called_once()
        service.prober.start.assert_awaited_once()
        assert service.get_health_status()["message"] == "Job system running"

        scheduler.running = True
        await service.stop()

        assert not service.job_manager.is_running
        scheduler.shutdown.assert_called_once_with(wait=False)
        assert service.http_client.is_closed

    @pytest.mark.asyncio
    async def test_disabled_prober_is_not_started(self, app_config, scheduler):
        app_config.prober.enabled = False
        service = StartupService(app_config, scheduler)

        await service.start(run_workers=False)

        scheduler.start.assert_not_called()
        assert service.prober.is_running is False
        assert service.job_manager.is_running is False
        await service.stop()

    def test_health_before_initialize(self, app_config, scheduler):
        health = StartupService(app_config, scheduler).get_health_status()

        assert health["status"] == "unhealthy"
        assert health["message"] == "Job manager not initialized"

    def test_signal_sets_shutdown_event(self, app_config, scheduler):
        service = StartupService(app_config, scheduler)

        service.handle_signal(15, None)

        assert service.shutdown_event.is_set()
