from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from storyjobs.config.logging import get_logger, setup_logging
from storyjobs.config.settings import settings
from storyjobs.infra.database import get_database
from storyjobs.v1.core.exceptions import (
    RequestContextMiddleware,
    StoryJobsException,
    general_exception_handler,
    http_exception_handler,
    story_jobs_exception_handler,
)
from storyjobs.v1.core.registries import generator_registry, job_kind_registry
from storyjobs.v1.healthz import router as health_router
from storyjobs.v1.jobs import registry_init  # noqa: F401
from storyjobs.v1.jobs.routes import router as jobs_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    database = get_database(settings)
    if settings.is_sqlite:
        # Local SQLite stores are created in place; servers use migrations
        await database.create_all()
    logger.info(
        "Story jobs service started",
        environment=settings.environment,
        job_kinds=job_kind_registry.list(),
    )
    yield
    await database.close()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    # Initialize structured logging
    setup_logging()

    app = FastAPI(
        title=settings.app_name,
        description="Background jobs for story, image and scene generation",
        version=settings.version,
        debug=settings.debug,
        lifespan=lifespan,
        openapi_url="/v1/openapi.json" if settings.debug else None,
        docs_url="/v1/docs" if settings.debug else None,
        redoc_url="/v1/redoc" if settings.debug else None,
    )

    # Add middleware
    app.add_middleware(RequestContextMiddleware)

    # Add CORS middleware for development
    if settings.debug:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Add exception handlers
    app.add_exception_handler(StoryJobsException, story_jobs_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # Include routers with /v1 prefix
    app.include_router(health_router, prefix="/v1", tags=["health"])
    app.include_router(jobs_router, prefix="/v1")

    # Freeze registries in non-development environments to prevent runtime modifications
    if settings.environment != "development":
        job_kind_registry.freeze()
        generator_registry.freeze()

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "storyjobs.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.workers,
    )
