from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse

from autopilot.api import automation, health, monitoring, workflows
from autopilot.backend.abstract import StoreUnavailableError
from autopilot.config import Config, config
from autopilot.lib.logger import configure_logger, setup_uvicorn_logging
from autopilot.middleware.logging import LoggingMiddleware
from autopilot.services.infrastructure.job_management import ConfigurationError
from autopilot.services.infrastructure.startup_service import StartupService

# Configure module logger
logger = configure_logger(__name__)


def _lifespan_for(app_config: Config, startup: Optional[StartupService]):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Configure JSON logging after uvicorn is fully initialized
        setup_uvicorn_logging()
        service = startup or StartupService(app_config)
        await service.start(run_workers=app_config.api.run_workers)
        app.state.startup_service = service
        app.state.job_manager = service.job_manager
        app.state.prober = service.prober
        app.state.email_automation = service.email_automation
        logger.info("Web server startup complete")
        try:
            yield
        finally:
            await service.stop()
            logger.info("Web server shutdown complete")

    return lifespan


def create_app(
    app_config: Config = config, startup: Optional[StartupService] = None
) -> FastAPI:
    app = FastAPI(
        title="Autopilot Pipeline",
        description="Workflow generation job pipeline and service health prober",
        version="0.1.0",
        lifespan=_lifespan_for(app_config, startup),
    )

    # Add logging middleware first
    app.add_middleware(LoggingMiddleware)

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_config.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": "Validation failed",
                "details": [error["msg"] for error in exc.errors()],
            },
        )

    @app.exception_handler(HTTPException)
    async def http_error(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.detail},
        )

    @app.exception_handler(StoreUnavailableError)
    async def store_unavailable(request: Request, exc: StoreUnavailableError):
        logger.error(
            "Store unavailable while serving request",
            extra={"path": request.url.path, "error": str(exc)},
        )
        return JSONResponse(
            status_code=503,
            content={"success": False, "error": "Store unavailable"},
        )

    @app.exception_handler(ConfigurationError)
    async def configuration_error(request: Request, exc: ConfigurationError):
        logger.error(
            "Pipeline configuration error",
            extra={"path": request.url.path, "error": str(exc)},
        )
        return JSONResponse(
            status_code=500, content={"success": False, "error": str(exc)}
        )

    @app.get("/")
    async def root():
        """Simple health check endpoint."""
        return {"status": "healthy"}

    # Load API routes
    app.include_router(health.router)
    app.include_router(workflows.router)
    app.include_router(automation.router)
    app.include_router(monitoring.router)
    return app


app = create_app()
