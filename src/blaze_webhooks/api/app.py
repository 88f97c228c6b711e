"""FastAPI application for the webhook service."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from blaze_webhooks import __version__
from blaze_webhooks.config import Settings
from blaze_webhooks.exceptions import (
    AuthenticationError,
    NotFoundError,
    ValidationError,
    WebhookServiceError,
)
from blaze_webhooks.logging import configure_logging, get_logger
from blaze_webhooks.service import WebhookService

from .router import router, set_service

logger = get_logger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    """Map service exceptions to HTTP responses."""

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        """Handle validation errors with 400 status."""
        logger.warning(
            "Validation error", field=exc.field, error=exc.message, path=str(request.url)
        )
        return JSONResponse(status_code=400, content=exc.to_dict())

    @app.exception_handler(NotFoundError)
    async def not_found_error_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        """Handle not found errors with 404 status."""
        logger.info(
            "Resource not found",
            resource_type=exc.resource_type,
            resource_id=exc.resource_id,
            path=str(request.url),
        )
        return JSONResponse(status_code=404, content=exc.to_dict())

    @app.exception_handler(AuthenticationError)
    async def authentication_error_handler(
        request: Request, exc: AuthenticationError
    ) -> JSONResponse:
        """Handle authentication errors with 401 status."""
        logger.warning("Authentication failed", error=exc.message, path=str(request.url))
        return JSONResponse(
            status_code=401,
            content=exc.to_dict(),
            headers={"WWW-Authenticate": "Bearer"},
        )

    @app.exception_handler(WebhookServiceError)
    async def service_error_handler(request: Request, exc: WebhookServiceError) -> JSONResponse:
        """Handle all other service errors with 500 status."""
        logger.error("Webhook service error", error=exc.message, code=exc.code, path=str(request.url))
        return JSONResponse(status_code=500, content=exc.to_dict())


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create a FastAPI application.

    The lifespan builds the service from ``settings`` and, when
    ``worker_enabled`` is set, runs the delivery worker as a background task.

    Example:
        ```python
        from blaze_webhooks.api import create_app

        app = create_app()
        # Run with: uvicorn blaze_webhooks.api:app --reload
        ```
    """
    if settings is None:
        settings = Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging(level=settings.log_level, format=settings.log_format)
        logger.info(
            "Starting webhook API",
            env=settings.env,
            log_level=settings.log_level,
            worker_enabled=settings.worker_enabled,
        )

        service = WebhookService.create(settings)
        await service.initialize()
        set_service(service)

        worker_task: asyncio.Task[None] | None = None
        if settings.worker_enabled:
            worker_task = asyncio.create_task(service.worker.run())

        try:
            yield
        finally:
            if worker_task is not None:
                service.worker.stop()
                await worker_task
            await service.close()
            set_service(None)
            logger.info("Webhook API stopped")

    app = FastAPI(
        title="Blaze Webhooks",
        description="Signed webhook delivery with retries and auto-disable.",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    if settings.cors_enabled:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allow_origins,
            allow_credentials=settings.cors_allow_credentials,
            allow_methods=settings.cors_allow_methods,
            allow_headers=settings.cors_allow_headers,
            max_age=settings.cors_max_age,
        )

    register_exception_handlers(app)
    app.include_router(router, prefix="/api/v1")

    return app
