import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from autopilot.lib.logger import configure_logger

logger = configure_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
PROBER_AGENT = "autopilot-prober"


class LoggingMiddleware(BaseHTTPMiddleware):
    """Access log with a request id echoed back to the caller.

    Prober traffic is logged at debug and server errors at warning.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        started = time.perf_counter()

        response: Response = await call_next(request)

        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        response.headers[REQUEST_ID_HEADER] = request_id

        if response.status_code >= 500:
            log = logger.warning
        elif request.headers.get("user-agent", "").startswith(PROBER_AGENT):
            log = logger.debug
        else:
            log = logger.info

        log(
            f"{request.method} {request.url.path} -> {response.status_code}",
            extra={
                "request_id": request_id,
                "client": request.client.host if request.client else "unknown",
                "query": str(request.query_params) or None,
                "status_code": response.status_code,
                "process_time_ms": elapsed_ms,
                "event_type": "http_request",
            },
        )
        return response
