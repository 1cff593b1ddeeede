"""
NumSphere call-flow API.

Serves the Twilio webhooks that execute call flows for rented numbers and
the editor endpoints that validate and preview flows.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .. import __version__
from ..config import Settings, get_settings
from ..errors import InvalidSignatureError
from ..flows import FlowCompiler, FlowResponseBuilder, FlowValidator, GatherRouter
from ..storage import InMemoryNumberRepository, NumberRepository
from ..telephony import error_response
from ..telephony.twiml import TECHNICAL_DIFFICULTIES_MESSAGE
from ..usage import MinuteLimitPolicy, UsageRecorder
from .flows import router as flows_router
from .webhooks import TwiMLResponse
from .webhooks import router as webhooks_router

logger = structlog.get_logger()


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str


def create_app(
    settings: Optional[Settings] = None,
    repository: Optional[NumberRepository] = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        settings: Settings (defaults to the cached environment settings)
        repository: Number storage (defaults to an in-memory repository,
            seeded from ``flows_seed_file`` when configured)

    Returns:
        FastAPI application
    """
    settings = settings or get_settings()
    repository = repository or InMemoryNumberRepository()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        logger.info(
            "Starting call-flow service",
            host=settings.host,
            port=settings.port,
            webhook_prefix=settings.webhook_prefix,
        )

        if settings.flows_seed_file and isinstance(repository, InMemoryNumberRepository):
            await repository.load_seed_file(settings.flows_seed_file)

        yield

        logger.info("Shutting down call-flow service")

    app = FastAPI(
        title="NumSphere Call Flows",
        description="Compiles call flows into TwiML for inbound calls to rented numbers.",
        version=__version__,
        lifespan=lifespan,
    )

    compiler = FlowCompiler()
    app.state.settings = settings
    app.state.repository = repository
    app.state.response_builder = FlowResponseBuilder(compiler, default_voice=settings.default_voice)
    app.state.gather_router = GatherRouter(compiler, default_voice=settings.default_voice)
    app.state.flow_validator = FlowValidator(max_blocks=settings.max_blocks_per_flow)
    app.state.limit_policy = MinuteLimitPolicy(settings)
    app.state.usage_recorder = UsageRecorder(repository, settings)

    @app.exception_handler(InvalidSignatureError)
    async def invalid_signature_handler(request: Request, exc: InvalidSignatureError):
        return JSONResponse(
            status_code=status.HTTP_403_FORBIDDEN,
            content=exc.to_dict(),
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.error(
            "Unhandled exception",
            error=str(exc),
            path=request.url.path,
            method=request.method,
        )

        # Voice callers get a spoken apology instead of a dead line
        if request.url.path.startswith(settings.webhook_prefix + "/"):
            return TwiMLResponse(
                error_response(TECHNICAL_DIFFICULTIES_MESSAGE, settings.default_voice),
                status_code=status.HTTP_200_OK,
            )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health_check():
        """Health check endpoint."""
        return HealthResponse(
            status="healthy",
            service=settings.service_name,
            version=__version__,
        )

    app.include_router(webhooks_router, prefix=settings.webhook_prefix)
    app.include_router(flows_router, prefix="/api/v1")

    return app


__all__ = ["create_app"]
