"""Composition root: builds and runs the pipeline, the prober and their stores."""

import asyncio
import signal
import sys
from typing import Any, Dict, Optional

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from autopilot.backend.abstract import AbstractJobStore, AbstractMonitoringStore
from autopilot.backend.factory import create_stores
from autopilot.config import Config
from autopilot.lib.logger import configure_logger
from autopilot.services.collaborators import Collaborators
from autopilot.services.email_automation import EmailAutomationService
from autopilot.services.infrastructure.health_probing import PeriodicProber
from autopilot.services.infrastructure.job_management import (
    HandlerRegistry,
    JobManager,
)
from autopilot.services.infrastructure.job_management.tasks import (
    register_default_handlers,
)

logger = configure_logger(__name__)


class StartupService:
    """Owns every long-lived component and their start/stop order."""

    def __init__(self, config: Config, scheduler: Optional[AsyncIOScheduler] = None):
        self.config = config
        self.scheduler = scheduler or AsyncIOScheduler()
        self.shutdown_event = asyncio.Event()
        self.job_store: Optional[AbstractJobStore] = None
        self.monitoring_store: Optional[AbstractMonitoringStore] = None
        self.http_client: Optional[httpx.AsyncClient] = None
        self.job_manager: Optional[JobManager] = None
        self.prober: Optional[PeriodicProber] = None
        self.email_automation: Optional[EmailAutomationService] = None

    async def initialize(self) -> None:
        """Build the component graph without starting any background work."""
        if self.job_manager is not None:
            return

        self.job_store, self.monitoring_store = await create_stores(self.config)
        self.http_client = httpx.AsyncClient()

        registry = HandlerRegistry()
        register_default_handlers(
            registry,
            Collaborators.from_config(self.config.collaborators, self.http_client),
        )
        self.job_manager = JobManager(self.job_store, registry, self.config.queues)
        self.email_automation = EmailAutomationService(self.job_manager)
        self.prober = PeriodicProber(
            self.config.prober,
            self.monitoring_store,
            self.http_client,
            self.scheduler,
        )
        logger.info(
            "Job system initialized",
            extra={
                "registered_jobs": len(registry.list_jobs()),
                "event_type": "job_system_init",
            },
        )

    async def start(self, run_workers: bool = True, run_prober: bool = True) -> None:
        await self.initialize()

        if run_workers:
            await self.job_manager.start()
            logger.info(
                "Job executor started",
                extra={
                    "workers": self.job_manager.executor.get_stats()["worker_count"],
                    "event_type": "executor_started",
                },
            )

        if run_prober and self.config.prober.enabled:
            if not self.scheduler.running:
                self.scheduler.start()
            await self.prober.start()
        else:
            logger.info("Periodic prober disabled", extra={"event_type": "prober_disabled"})

    async def stop(self) -> None:
        logger.info("Initiating shutdown sequence", extra={"event_type": "shutdown_start"})

        if self.prober:
            await self.prober.stop()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped", extra={"event_type": "scheduler_stopped"})
        if self.job_manager:
            await self.job_manager.stop()
        if self.http_client:
            await self.http_client.aclose()
        for store in (self.job_store, self.monitoring_store):
            if store:
                await store.close()

        logger.info("Shutdown complete", extra={"event_type": "shutdown_complete"})

    def get_health_status(self) -> Dict[str, Any]:
        if not self.job_manager:
            return {
                "status": "unhealthy",
                "message": "Job manager not initialized",
                "services": {"job_manager": False, "prober": False},
            }

        health = self.job_manager.get_system_health()
        return {
            "status": health["status"],
            "message": "Job system running"
            if self.job_manager.is_running
            else "Job system idle",
            "jobs": health["executor"],
            "issues": health["issues"],
            "services": {
                "job_manager": self.job_manager.is_running,
                "prober": bool(self.prober and self.prober.is_running),
            },
        }

    def handle_signal(self, signum, frame) -> None:
        logger.info(
            "Shutdown signal received - initiating graceful shutdown",
            extra={"signal": signum, "event_type": "shutdown_signal"},
        )
        self.shutdown_event.set()

    async def run_standalone(self) -> None:
        """Run workers and prober until SIGINT or SIGTERM."""
        signal.signal(signal.SIGINT, self.handle_signal)
        signal.signal(signal.SIGTERM, self.handle_signal)

        try:
            await self.start()
            logger.info(
                "Autopilot workers running - Press Ctrl+C to stop",
                extra={"event_type": "services_running"},
            )
            await self.shutdown_event.wait()
        except Exception as e:
            logger.error(
                "Critical error in standalone mode",
                extra={"error": str(e), "event_type": "critical_error"},
                exc_info=True,
            )
            await self.stop()
            sys.exit(1)

        await self.stop()
