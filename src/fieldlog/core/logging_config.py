"""Structured service logger factory.

``create_logger`` builds one logger per service with a console sink, a
daily-rotating file sink and, when an API key is configured, a remote
log-intake sink.  Every record carries the default metadata
``{env, host, service}``.
"""

from __future__ import annotations

import logging
import socket
import sys
from collections.abc import MutableMapping
from typing import Any, Protocol, TextIO

import httpx
from pydantic import ValidationError

from fieldlog.core.config import LoggerConfig
from fieldlog.core.exceptions import ConfigurationError, SinkInitializationError
from fieldlog.core.sinks import (
    BackgroundHandler,
    ConsoleFormatter,
    DailyRotatingFileHandler,
    FileFormatter,
    JsonRecordFormatter,
    RemoteHttpHandler,
)

_LOGGER_NAMESPACE = "fieldlog.service"


class LogWriter(Protocol):
    """Anything access-log producers can ``write`` a line to."""

    def write(self, line: str) -> None: ...


class ServiceLogger(logging.LoggerAdapter):  # type: ignore[type-arg]
    """A service-scoped logger that merges default metadata into every record.

    Wraps a dedicated, non-propagating stdlib logger whose handlers are the
    configured sinks.  Also satisfies ``LogWriter`` so it can be handed to
    components that expect a stream with a ``write`` method.
    """

    def __init__(
        self,
        logger: logging.Logger,
        config: LoggerConfig,
        default_meta: dict[str, str],
    ) -> None:
        super().__init__(logger, default_meta)
        self.config = config

    @property
    def default_meta(self) -> dict[str, str]:
        return dict(self.extra or {})

    @property
    def sinks(self) -> tuple[logging.Handler, ...]:
        return tuple(self.logger.handlers)

    @property
    def sink_names(self) -> list[str]:
        return [handler.get_name() for handler in self.logger.handlers]

    @property
    def stream(self) -> LogWriter:
        return self

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**(kwargs.get("extra") or {}), **(self.extra or {})}
        return msg, kwargs

    def write(self, line: str) -> None:
        """Log one line from an access-log producer at info level."""
        self.info(line.rstrip("\n"))

    def close(self) -> None:
        """Detach and close every sink (drains the remote queue first)."""
        _close_handlers(self.logger)


def _close_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def _console_sink(config: LoggerConfig, stream: TextIO | None) -> logging.Handler:
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.set_name("console")
    handler.setFormatter(ConsoleFormatter())
    handler.setLevel(config.console_level)
    return handler


def _file_sink(config: LoggerConfig) -> logging.Handler:
    try:
        handler = DailyRotatingFileHandler(
            config.logs_folder,
            config.service,
            max_bytes=config.file_max_bytes,
            retention_days=config.file_retention_days,
        )
    except OSError as exc:
        raise SinkInitializationError(
            f"Cannot open log folder {config.logs_folder!r}: {exc}"
        ) from exc
    handler.set_name("file")
    handler.setFormatter(FileFormatter())
    handler.setLevel(config.file_level)
    return handler


def _remote_sink(
    config: LoggerConfig, client: httpx.Client | None
) -> logging.Handler:
    target = RemoteHttpHandler(
        host=config.remote_host,
        api_key=config.remote_api_key or "",
        service=config.service,
        source=config.remote_source,
        timeout=config.remote_timeout,
        client=client,
    )
    target.setFormatter(JsonRecordFormatter())
    handler = BackgroundHandler(target)
    handler.set_name("remote")
    handler.setLevel(config.remote_level)
    return handler


def _build_sinks(
    config: LoggerConfig,
    console_stream: TextIO | None,
    http_client: httpx.Client | None,
) -> list[logging.Handler]:
    sinks = [_console_sink(config, console_stream)]
    try:
        sinks.append(_file_sink(config))
        if config.remote_enabled:
            sinks.append(_remote_sink(config, http_client))
    except Exception:
        for handler in sinks:
            handler.close()
        raise
    return sinks


def create_logger(
    service: str | None,
    config: LoggerConfig | None = None,
    *,
    console_stream: TextIO | None = None,
    http_client: httpx.Client | None = None,
) -> ServiceLogger:
    """Build the logger for *service*.

    Args:
        service: Service name; attached to every record and used for the
            log file name and the remote intake path.
        config: Pre-resolved configuration.  When omitted it is read from
            the environment (``NODE_ENV``, ``LOGS_FOLDER``, ``DD_API_KEY``)
            with defaults ``dev`` / ``logs`` / no remote sink.
        console_stream: Stream for the console sink (default stdout).
        http_client: ``httpx.Client`` used by the remote sink.

    Raises:
        ConfigurationError: *service* is empty or the configuration is invalid.
        SinkInitializationError: a sink could not be created.
    """
    if not service:
        raise ConfigurationError("Missing mandatory parameter: service")

    try:
        if config is None:
            resolved = LoggerConfig(service=service)
        else:
            resolved = config.model_copy(update={"service": service})
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid logger configuration: {exc}") from exc

    default_meta = {
        "env": resolved.env,
        "host": socket.gethostname(),
        "service": service,
    }

    sinks = _build_sinks(resolved, console_stream, http_client)

    base = logging.getLogger(f"{_LOGGER_NAMESPACE}.{service}")
    # Re-creating a service logger replaces its sinks rather than stacking them;
    # the old sinks stay attached if the new ones cannot be built
    _close_handlers(base)
    base.setLevel(logging.DEBUG)
    base.propagate = False
    for handler in sinks:
        base.addHandler(handler)

    service_logger = ServiceLogger(base, resolved, default_meta)
    service_logger.debug("Environment: %s", resolved.env)
    return service_logger
