"""Pydantic request/response schemas."""

from fieldlog.schemas.health import HealthResponse

__all__ = [
    "HealthResponse",
]
