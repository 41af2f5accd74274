from typing import Any, Dict, Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from starlette.responses import JSONResponse

from autopilot.api.dependencies import get_job_manager
from autopilot.backend.models import JobView
from autopilot.lib.logger import configure_logger
from autopilot.lib.utils import ms_to_iso, now_ms
from autopilot.services.infrastructure.job_management import (
    ExponentialBackoff,
    FixedBackoff,
    JobManager,
    JobOptions,
    JobTypes,
    QueueName,
)

# Configure logger
logger = configure_logger(__name__)

# Create the router
router = APIRouter(prefix="/api/workflows")

GENERATION_ATTEMPTS = 3
GENERATION_BACKOFF_MS = 5000
TEST_ATTEMPTS = 2
TEST_BACKOFF_MS = 10_000


class WorkflowOptions(BaseModel):
    include_testing: bool = True
    auto_deploy: bool = False


class GenerateWorkflowRequest(BaseModel):
    customer_request_id: int = Field(..., gt=0)
    customer_request: Dict[str, Any] = Field(default_factory=dict)
    priority: Literal["low", "medium", "high"] = "medium"
    paid: bool = False
    options: WorkflowOptions = Field(default_factory=WorkflowOptions)


class TestWorkflowRequest(BaseModel):
    __test__ = False

    workflow_id: int = Field(..., gt=0)
    workflow_json: Dict[str, Any]
    test_data: Dict[str, Any] = Field(default_factory=dict)


def _status_body(job: JobView) -> Dict[str, Any]:
    return {
        "success": True,
        "job_id": job.id,
        "status": job.state.value,
        "progress": job.progress,
        "result": job.result,
        "error": job.error,
        "attempts": job.attempts,
        "created_at": ms_to_iso(job.created_at),
        "processed_at": ms_to_iso(job.processed_at),
        "finished_at": ms_to_iso(job.finished_at),
    }


async def _job_status(
    job_manager: JobManager, queue: QueueName, job_id: str
) -> Dict[str, Any]:
    job = await job_manager.get_job(queue, job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return _status_body(job)


@router.post("/generate", status_code=202)
async def generate_workflow(
    body: GenerateWorkflowRequest,
    job_manager: JobManager = Depends(get_job_manager),
) -> JSONResponse:
    """Queue workflow generation for a customer request.

    Paid requests are claimed ahead of everything else; otherwise the
    priority label decides (high=1, medium=2, low=3).
    """
    payload = {
        "customerRequest": {"id": body.customer_request_id, **body.customer_request},
        "priority": body.priority,
        "options": body.options.model_dump(),
        "requestId": f"req_{body.customer_request_id}_{now_ms()}",
    }
    job_id = await job_manager.enqueue(
        QueueName.GENERATION,
        JobTypes.GENERATE_WORKFLOW,
        payload,
        JobOptions.for_request(
            paid=body.paid,
            label=body.priority,
            attempts=GENERATION_ATTEMPTS,
            backoff=ExponentialBackoff(GENERATION_BACKOFF_MS),
        ),
    )
    logger.info(
        f"Workflow generation queued for customer request {body.customer_request_id}",
        extra={"job_id": job_id, "event_type": "workflow_generation_queued"},
    )
    return JSONResponse(
        status_code=202,
        content={
            "success": True,
            "message": "Workflow generation started",
            "job_id": job_id,
            "estimated_completion": "5-10 minutes",
            "status_endpoint": f"/api/workflows/status/{job_id}",
        },
    )


@router.get("/status/{job_id}")
async def workflow_status(
    job_id: str, job_manager: JobManager = Depends(get_job_manager)
) -> Dict[str, Any]:
    return await _job_status(job_manager, QueueName.GENERATION, job_id)


@router.post("/test", status_code=202)
async def test_workflow(
    body: TestWorkflowRequest,
    job_manager: JobManager = Depends(get_job_manager),
) -> JSONResponse:
    """Queue a test run of an existing workflow."""
    job_id = await job_manager.enqueue(
        QueueName.TESTING,
        JobTypes.TEST_WORKFLOW,
        {
            "workflow_id": body.workflow_id,
            "workflow_json": body.workflow_json,
            "test_data": body.test_data,
            "requestId": f"test_{body.workflow_id}_{now_ms()}",
        },
        JobOptions(attempts=TEST_ATTEMPTS, backoff=FixedBackoff(TEST_BACKOFF_MS)),
    )
    logger.info(
        f"Workflow test queued for workflow {body.workflow_id}",
        extra={"job_id": job_id, "event_type": "workflow_test_queued"},
    )
    return JSONResponse(
        status_code=202,
        content={
            "success": True,
            "message": "Workflow testing started",
            "job_id": job_id,
            "estimated_completion": "2-5 minutes",
            "status_endpoint": f"/api/workflows/test-status/{job_id}",
        },
    )


@router.get("/test-status/{job_id}")
async def test_status(
    job_id: str, job_manager: JobManager = Depends(get_job_manager)
) -> Dict[str, Any]:
    return await _job_status(job_manager, QueueName.TESTING, job_id)
