"""Application factory for the casevia FastAPI app."""
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from casevia.core.errors import AppError, app_error_handler, validation_error_handler
from casevia.core.logging import setup_logging
from casevia.core.redis_client import close_redis_connection
from casevia.core.settings import get_settings
from casevia.routers import case_studies as case_studies_router
from casevia.routers import health as health_router
from casevia.routers import projects as projects_router
from casevia.routers import public as public_router
from casevia.routers import webhooks as webhooks_router


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    yield
    await close_redis_connection()


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.log_level)
    app = FastAPI(
        title="Casevia API",
        version="0.1.0",
        description="Turns customer interview recordings into publishable case studies",
        lifespan=lifespan,
    )

    # Include routers
    app.include_router(health_router.router, prefix=settings.api_prefix)
    app.include_router(projects_router.router, prefix=settings.api_prefix)
    app.include_router(webhooks_router.router, prefix=settings.api_prefix)
    app.include_router(case_studies_router.router, prefix=settings.api_prefix)
    app.include_router(public_router.router, prefix=settings.api_prefix)

    # Error handlers
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    return app


app = create_app()
