"""vidstore Backend - FastAPI Application Factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from vidstore.api import api_router
from vidstore.api.health import router as health_router
from vidstore.core import settings, setup_logging
from vidstore.core.logging import get_logger
from vidstore.services.appwrite import close_appwrite_client

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    setup_logging(settings.log_level, settings.log_format)
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")

    yield

    logger.info("Shutting down...")
    await close_appwrite_client()


def _describe_validation_error(exc: RequestValidationError) -> str:
    """First validation error as ``"<field>: <reason>"``."""
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    error = errors[0]
    # Skip the location prefix ('body', 'query', 'header')
    field = ".".join(str(loc) for loc in error["loc"][1:]) or str(error["loc"][0])
    return f"{field}: {error['msg']}"


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    message = _describe_validation_error(exc)
    logger.warning(f"Rejected {request.method} {request.url.path}: {message}")
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"message": message})


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description="Video storefront backend: sessions, setup wizard and checkout",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Accept", "X-Session-Token"],
    )

    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    # Include routers
    app.include_router(health_router)  # Health at root level
    app.include_router(api_router)  # API at /api

    # Root endpoint
    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint with API information."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "docs": "/docs",
        }

    return app


# Application instance
app = create_app()
