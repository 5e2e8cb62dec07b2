"""Exception hierarchy for logger construction and the host API."""

from __future__ import annotations


class LoggingSetupError(Exception):
    """Base exception for logger and sink problems."""


class ConfigurationError(LoggingSetupError):
    """Raised when a logger is requested with missing or invalid settings."""


class SinkInitializationError(LoggingSetupError):
    """Raised when a sink cannot be built (e.g. an unwritable log folder)."""


class SinkEmitFailure(LoggingSetupError):
    """Raised inside a sink when a single record could not be delivered.

    Never escapes the sink: ``logging.Handler.handleError`` absorbs it.
    """


class APIError(Exception):
    """Base exception for all API errors.

    Subclasses set ``status_code`` and ``error_type`` so the global handler
    can build a consistent JSON response.
    """

    status_code: int = 500
    error_type: str = "api_error"

    def __init__(self, message: str = "An unexpected error occurred") -> None:
        self.message = message
        super().__init__(message)
