from fastapi import HTTPException, Request

from autopilot.lib.logger import configure_logger
from autopilot.services.email_automation import EmailAutomationService
from autopilot.services.infrastructure.health_probing import PeriodicProber
from autopilot.services.infrastructure.job_management import JobManager

# Configure logger
logger = configure_logger(__name__)


def _service(request: Request, name: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        logger.error(f"Service not initialized: {name}")
        raise HTTPException(status_code=503, detail=f"{name} is not available")
    return service


def get_job_manager(request: Request) -> JobManager:
    """Job manager built by the application lifespan."""
    return _service(request, "job_manager")


def get_prober(request: Request) -> PeriodicProber:
    return _service(request, "prober")


def get_email_automation(request: Request) -> EmailAutomationService:
    return _service(request, "email_automation")
