from typing import Any, Dict, Literal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from autopilot.api.dependencies import get_prober
from autopilot.lib.logger import configure_logger
from autopilot.lib.utils import ms_to_iso, now_ms
from autopilot.services.infrastructure.health_probing import PeriodicProber

# Configure logger
logger = configure_logger(__name__)

# Create the router
router = APIRouter(prefix="/monitoring")

MANUAL_TEST_MESSAGES = {
    "health": "Health check completed",
    "endpoints": "Full endpoint test completed",
    "performance": "Performance test completed",
}


class RunTestRequest(BaseModel):
    type: Literal["health", "endpoints", "performance"] = "health"


@router.get("/health")
async def monitoring_health(
    prober: PeriodicProber = Depends(get_prober),
) -> Dict[str, Any]:
    """Health derived from probe uptime and the alerts of the last 24 hours."""
    return await prober.get_health()


@router.get("/test-results")
async def test_results(
    limit: int = Query(20, ge=1, le=100),
    prober: PeriodicProber = Depends(get_prober),
) -> Dict[str, Any]:
    results = await prober.get_test_results(limit)
    return {
        "results": [r.model_dump(mode="json") for r in results],
        "count": len(results),
        "timestamp": ms_to_iso(now_ms()),
    }


@router.get("/metrics")
async def probe_metrics(
    prober: PeriodicProber = Depends(get_prober),
) -> Dict[str, Any]:
    metrics = await prober.get_metrics()
    if metrics.total_tests == 0:
        return {"message": "No metrics available yet", "timestamp": ms_to_iso(now_ms())}

    return {
        **metrics.model_dump(),
        "uptime_percentage": f"{metrics.uptime * 100:.2f}%",
        "error_rate": f"{metrics.total_failures / metrics.total_tests * 100:.2f}%",
        "avg_response_time_formatted": f"{metrics.avg_response_time:.0f}ms",
        "last_test_time_formatted": ms_to_iso(metrics.last_test_time),
    }


@router.get("/alerts")
async def recent_alerts(
    limit: int = Query(20, ge=1, le=50),
    prober: PeriodicProber = Depends(get_prober),
) -> Dict[str, Any]:
    alerts = await prober.get_recent_alerts(limit)
    return {
        "alerts": [a.model_dump(mode="json") for a in alerts],
        "count": len(alerts),
        "timestamp": ms_to_iso(now_ms()),
    }


@router.get("/dashboard")
async def dashboard(
    prober: PeriodicProber = Depends(get_prober),
) -> Dict[str, Any]:
    return await prober.get_dashboard()


@router.post("/test/run")
async def run_test(
    body: RunTestRequest,
    prober: PeriodicProber = Depends(get_prober),
) -> Dict[str, Any]:
    result = await prober.run_test(body.type)
    return {
        "message": MANUAL_TEST_MESSAGES[body.type],
        "test_type": body.type,
        "test_id": result.test_id,
        "timestamp": ms_to_iso(now_ms()),
    }


@router.get("/status")
async def monitoring_status(
    prober: PeriodicProber = Depends(get_prober),
) -> Dict[str, Any]:
    return {
        "service": "Periodic Testing Service",
        "running": prober.is_running,
        "base_url": prober.config.base_url,
        "timestamp": ms_to_iso(now_ms()),
        "endpoints": [
            "/monitoring/health - Current system health",
            "/monitoring/test-results - Detailed test results",
            "/monitoring/metrics - Test metrics and statistics",
            "/monitoring/alerts - Recent alerts",
            "/monitoring/dashboard - Complete dashboard data",
            "POST /monitoring/test/run - Trigger manual test",
        ],
    }
