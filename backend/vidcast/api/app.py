"""FastAPI application setup with lifespan and exception handlers."""

from contextlib import asynccontextmanager
import logging
from typing import Optional, Sequence

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from vidcast import __version__, validate_dependencies
from vidcast.api.routes import router
from vidcast.config import Settings
from vidcast.orchestrator.ledger import RunLedger
from vidcast.orchestrator.pipeline import PipelineOrchestrator
from vidcast.steps import PipelineStep, build_default_steps

logger = logging.getLogger(__name__)


def create_app(
    app_settings: Optional[Settings] = None,
    steps: Optional[Sequence[PipelineStep]] = None,
) -> FastAPI:
    """Create the API application.

    One RunLedger and one PipelineOrchestrator are built per application
    (i.e. per process) and shared by every request through app.state.

    Args:
        app_settings: Settings to use (defaults to the module singleton).
        steps: Pipeline steps (defaults to script -> render -> upload, which
            also validates ffmpeg at startup).
    """
    if app_settings is None:
        from vidcast.config import settings as app_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager.

        Startup:
            - Validate system dependencies (ffmpeg) for the default pipeline
            - Build the run ledger and orchestrator

        Shutdown:
            - Log in-flight run, if any
        """
        logger.info("Starting vidcast API...")
        pipeline_steps = steps
        if pipeline_steps is None:
            validate_dependencies(app_settings.render.ffmpeg_binary)
            pipeline_steps = build_default_steps(app_settings)

        ledger = RunLedger(max_runs=app_settings.ledger.max_runs)
        app.state.settings = app_settings
        app.state.ledger = ledger
        app.state.orchestrator = PipelineOrchestrator(
            ledger,
            pipeline_steps,
            step_timeout=app_settings.pipeline.step_timeout_seconds,
        )
        logger.info("API startup complete")

        yield

        logger.info("Shutting down vidcast API...")
        active = ledger.active_run()
        if active is not None:
            logger.warning(f"Shutting down with run {active.id} still {active.status.value}")
        logger.info("API shutdown complete")

    app = FastAPI(
        title="vidcast API",
        version=__version__,
        lifespan=lifespan,
    )
    app.include_router(router)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Catch-all exception handler to prevent stack traces in API responses."""
        logger.error(f"Unhandled exception in {request.method} {request.url.path}: {type(exc).__name__}: {str(exc)}")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "detail": str(exc),
            }
        )

    return app


app = create_app()
