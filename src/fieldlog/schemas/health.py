"""Pydantic schemas for health check endpoint."""

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response body for the health check endpoint."""

    status: str = Field(description="Overall service status")
    version: str = Field(description="API version string")
    service: str = Field(description="Service name attached to every log record")
    env: str = Field(description="Deployment environment of the logger")
    sinks: list[str] = Field(description="Names of the active log sinks")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "status": "ok",
                    "version": "0.1.0",
                    "service": "fieldlog",
                    "env": "dev",
                    "sinks": ["console", "file"],
                },
                {
                    "status": "ok",
                    "version": "0.1.0",
                    "service": "fieldlog",
                    "env": "production",
                    "sinks": ["console", "file", "remote"],
                },
            ]
        }
    }
