import time
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Query
from starlette.responses import JSONResponse

from autopilot.api.dependencies import get_job_manager
from autopilot.backend.models import JobState
from autopilot.lib.logger import configure_logger
from autopilot.lib.utils import ms_to_iso, now_ms
from autopilot.services.infrastructure.job_management import (
    JobManager,
    QueueName,
)

# Configure logger
logger = configure_logger(__name__)

# Create the router
router = APIRouter(prefix="/health")

_started_at = time.time()


def _queue_or_404(queue: str) -> QueueName:
    try:
        return QueueName(queue)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown queue: {queue}") from None


@router.get("")
async def health() -> Dict[str, Any]:
    """Liveness only; never touches the store."""
    return {
        "status": "healthy",
        "timestamp": ms_to_iso(now_ms()),
        "uptime": round(time.time() - _started_at, 3),
    }


@router.get("/detailed")
async def detailed_health(
    job_manager: JobManager = Depends(get_job_manager),
) -> JSONResponse:
    started = time.perf_counter()
    checks: Dict[str, Any] = {}
    status = "healthy"

    if await job_manager.store.ping():
        checks["store"] = {"status": "healthy"}
    else:
        checks["store"] = {"status": "unhealthy", "error": "store did not answer"}
        status = "degraded"

    if checks["store"]["status"] == "healthy":
        all_stats = await job_manager.get_all_stats()
        checks["queues"] = {
            "status": "healthy",
            "details": {name: c.model_dump() for name, c in all_stats.items()},
        }

    system = job_manager.get_system_health()
    checks["executor"] = {"status": system["status"], "issues": system["issues"]}

    return JSONResponse(
        status_code=200 if status == "healthy" else 503,
        content={
            "status": status,
            "timestamp": ms_to_iso(now_ms()),
            "checks": checks,
            "response_time_ms": round((time.perf_counter() - started) * 1000, 2),
        },
    )


@router.get("/queues")
async def all_queue_stats(
    job_manager: JobManager = Depends(get_job_manager),
) -> Dict[str, Any]:
    stats = await job_manager.get_all_stats()
    return {
        "timestamp": ms_to_iso(now_ms()),
        "queues": {name: counts.model_dump() for name, counts in stats.items()},
        "definitions": job_manager.get_queue_definitions(),
    }


@router.get("/queues/{queue}")
async def queue_stats(
    queue: str, job_manager: JobManager = Depends(get_job_manager)
) -> Dict[str, Any]:
    queue_name = _queue_or_404(queue)
    counts = await job_manager.get_stats(queue_name)
    return {"queue": queue_name.value, **counts.model_dump()}


@router.get("/queues/{queue}/jobs")
async def queue_jobs(
    queue: str,
    state: JobState = Query(JobState.WAITING),
    limit: int = Query(50, ge=1, le=200),
    job_manager: JobManager = Depends(get_job_manager),
) -> Dict[str, Any]:
    """Jobs of one queue in one state; waiting and delayed come in claim order."""
    queue_name = _queue_or_404(queue)
    jobs = await job_manager.list_jobs(queue_name, state, limit)
    return {
        "queue": queue_name.value,
        "state": state.value,
        "jobs": [job.model_dump(mode="json") for job in jobs],
        "count": len(jobs),
    }


@router.post("/queues/{queue}/pause")
async def pause_queue(
    queue: str, job_manager: JobManager = Depends(get_job_manager)
) -> Dict[str, Any]:
    queue_name = _queue_or_404(queue)
    await job_manager.pause_queue(queue_name)
    logger.info(f"Queue paused: {queue_name}", extra={"event_type": "queue_paused"})
    return {"success": True, "queue": queue_name.value, "paused": True}


@router.post("/queues/{queue}/resume")
async def resume_queue(
    queue: str, job_manager: JobManager = Depends(get_job_manager)
) -> Dict[str, Any]:
    queue_name = _queue_or_404(queue)
    await job_manager.resume_queue(queue_name)
    logger.info(f"Queue resumed: {queue_name}", extra={"event_type": "queue_resumed"})
    return {"success": True, "queue": queue_name.value, "paused": False}


@router.get("/jobs/metrics")
async def job_metrics(
    job_manager: JobManager = Depends(get_job_manager),
) -> Dict[str, Any]:
    return job_manager.get_comprehensive_metrics()


@router.get("/jobs/health")
async def job_system_health(
    job_manager: JobManager = Depends(get_job_manager),
) -> Dict[str, Any]:
    return job_manager.get_system_health()
