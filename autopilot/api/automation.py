from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from starlette.responses import JSONResponse

from autopilot.api.dependencies import get_email_automation
from autopilot.lib.logger import configure_logger
from autopilot.services.email_automation import EmailAutomationService

# Configure logger
logger = configure_logger(__name__)

# Create the router
router = APIRouter(prefix="/api/automation")


class AutomationEvent(BaseModel):
    event_type: str
    event_data: Dict[str, Any] = Field(default_factory=dict)


@router.post("/events", status_code=202)
async def trigger_event(
    body: AutomationEvent,
    automation: EmailAutomationService = Depends(get_email_automation),
) -> JSONResponse:
    """Schedule the email sequences listening for a business event."""
    job_ids = await automation.trigger(body.event_type, body.event_data)
    return JSONResponse(
        status_code=202,
        content={
            "success": True,
            "event_type": body.event_type,
            "scheduled": len(job_ids),
            "job_ids": job_ids,
        },
    )
