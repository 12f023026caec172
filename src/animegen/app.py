"""FastAPI application factory."""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.exceptions import HTTPException as StarletteHTTPException

from animegen.api.routes import generate, images, social
from animegen.core import timezone  # noqa: F401  (sets TZ=UTC on import)
from animegen.core.config import Settings, configure_logging
from animegen.core.database import setup_db_session
from animegen.services.cache.kv_store import create_kv_store
from animegen.services.image_generation.replicate_client import ReplicateInferenceGateway
from animegen.services.image_generation.tagging import TagGenerator
from animegen.services.rate_limiter import FixedWindowRateLimiter
from animegen.services.storage.s3_client import S3BlobStore
from animegen.uow import create_uow_factory
from animegen.workers.generation_job_worker import GenerationContext, sweep_stale_jobs

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager.

    Handles startup and shutdown tasks:
    - Startup: configure logging, build the session factory, KV store, blob
      store, inference gateway and tag generator, then fail stale jobs left
      behind by a previous process
    - Shutdown: close the KV store connection
    """
    settings: Settings = app.state.settings

    configure_logging(settings)

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    uow_factory = create_uow_factory(session_factory)

    kv_store = create_kv_store(settings)
    blob_store = S3BlobStore.from_settings(settings)
    gateway = ReplicateInferenceGateway(settings.replicate_api_token)
    tag_generator = TagGenerator(
        completion=gateway if settings.replicate_api_token else None,
        model=settings.tag_model,
        enabled=settings.tag_generation_enabled,
    )

    # Store in app.state for access in routes
    app.state.session_factory = session_factory
    app.state.uow_factory = uow_factory
    app.state.kv_store = kv_store
    app.state.blob_store = blob_store
    app.state.rate_limiter = FixedWindowRateLimiter.from_settings(kv_store, settings)
    app.state.generation_context = GenerationContext(
        uow_factory=uow_factory,
        gateway=gateway,
        blob_store=blob_store,
        tag_generator=tag_generator,
        settings=settings,
    )

    try:
        failed = await sweep_stale_jobs(uow_factory, settings.job_stale_after_seconds)
        if failed:
            logger.info("startup.stale_jobs_failed", count=failed)
    except Exception as e:
        # Log error but don't prevent startup - stale jobs are also failed on read
        logger.error(
            "startup.stale_sweep_failed",
            error=str(e),
            error_type=type(e).__name__,
        )

    logger.info("application.startup", db_url=settings.database_url.split("@")[-1])

    yield

    logger.info("application.shutdown")
    await kv_store.close()


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render HTTP errors as {"error": detail}."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render request validation failures as 400 with field details."""
    details = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ())[1:]),
            "message": error.get("msg", ""),
        }
        for error in exc.errors()
    ]
    logger.info("request.validation_failed", path=request.url.path, errors=len(details))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Validation failed", "details": details},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Convert unexpected errors to a generic 500; details go to the log only."""
    logger.error(
        "request.unhandled_error",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=exc,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal Server Error", "message": "An unexpected error occurred"},
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        settings: Settings to use (loaded from the environment when omitted)

    Returns:
        Configured FastAPI application instance
    """
    settings = settings or Settings()  # type: ignore[call-arg]

    app = FastAPI(
        title="animegen API",
        description="AI anime avatar generation service",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset"],
    )

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(generate.router)
    app.include_router(images.router)
    app.include_router(social.router)

    # Health check endpoint with database validation
    @app.get("/health")
    async def health_check(response: Response):
        """Health check endpoint with database connectivity test.

        Returns:
            200: {"status": "healthy"} if database connection succeeds
            503: {"status": "unhealthy", "error": {...}} if database connection fails
        """
        try:
            async with app.state.session_factory() as session:
                result = await session.execute(text("SELECT 1"))
                result.scalar()

            logger.debug("health_check.success")
            return {"status": "healthy"}

        except Exception as e:
            logger.error(
                "health_check.failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            return {
                "status": "unhealthy",
                "error": {
                    "type": type(e).__name__,
                    "message": str(e),
                },
            }

    return app


# Create app instance for uvicorn
app = create_app()
