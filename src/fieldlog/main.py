"""FastAPI application factory.

Run with ``uvicorn fieldlog.main:create_app --factory``.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends

from fieldlog.api.docs import create_docs_router
from fieldlog.core.config import AppSettings, LoggerConfig
from fieldlog.core.deps import get_logger
from fieldlog.core.handlers import register_exception_handlers
from fieldlog.core.logging_config import ServiceLogger, create_logger
from fieldlog.core.middleware import ErrorLoggingMiddleware, LoggedFastAPI
from fieldlog.schemas.health import HealthResponse

# --- OpenAPI tag metadata ---
TAG_METADATA = [
    {
        "name": "health",
        "description": "Service health checks and logger status.",
    },
]


def create_app(
    config: LoggerConfig | None = None,
    settings: AppSettings | None = None,
    *,
    logger: ServiceLogger | None = None,
) -> LoggedFastAPI:
    """Build the application around a single service logger.

    The logger is created here once (unless one is passed in), stored on
    ``app.state.logger`` and handed to both middleware hooks.
    """
    settings = settings or AppSettings()
    if logger is None:
        logger = create_logger(settings.service_name, config)

    @asynccontextmanager
    async def lifespan(_app: LoggedFastAPI) -> AsyncIterator[None]:
        """Flush and close the log sinks on shutdown."""
        yield
        logger.close()

    app = LoggedFastAPI(
        response_logger=logger,
        title=settings.service_name,
        description="Service instrumented with structured request logging.",
        version=settings.version,
        lifespan=lifespan,
        openapi_tags=TAG_METADATA,
        docs_url=None,
        redoc_url=None,
    )
    app.state.logger = logger

    # --- Exception handlers (consistent JSON error envelope) ---
    register_exception_handlers(app)

    # --- Middleware ---
    # Stack execution order:
    # ResponseLogging -> ServerError -> ErrorLogging -> route handler
    app.add_middleware(ErrorLoggingMiddleware, logger=logger)

    if settings.docs_mounted(logger.config.env):
        app.include_router(
            create_docs_router(title=settings.docs_title), prefix="/docs"
        )

    @app.get(
        "/health",
        response_model=HealthResponse,
        tags=["health"],
        summary="Service health check",
    )
    async def health(
        service_logger: Annotated[ServiceLogger, Depends(get_logger)],
    ) -> HealthResponse:
        """Report the service identity and the active log sinks."""
        service_logger.debug("Health check")
        return HealthResponse(
            status="ok",
            version=settings.version,
            service=service_logger.config.service,
            env=service_logger.config.env,
            sinks=service_logger.sink_names,
        )

    return app
