"""FastAPI dependencies shared by routers."""

from __future__ import annotations

from fastapi import Request

from fieldlog.core.logging_config import ServiceLogger


def get_logger(request: Request) -> ServiceLogger:
    """Return the process-wide service logger built by ``create_app``."""
    logger: ServiceLogger = request.app.state.logger
    return logger
