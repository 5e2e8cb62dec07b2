"""Shared test fixtures for the fieldlog test suite."""

from __future__ import annotations

import io
import json
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import httpx
import pytest

from fieldlog.core.config import LoggerConfig
from fieldlog.core.logging_config import ServiceLogger, create_logger

_ENV_VARS = (
    "SERVICE_NAME",
    "NODE_ENV",
    "LOGS_FOLDER",
    "DD_API_KEY",
    "LOG_CONSOLE_LEVEL",
    "LOG_FILE_LEVEL",
    "LOG_REMOTE_LEVEL",
    "DOCS_ENABLED",
    "DOCS_TITLE",
)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Run every test without inherited logger env vars or a stray ``.env``."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def logs_dir(tmp_path: Path) -> Path:
    return tmp_path / "logs"


@pytest.fixture()
def console() -> io.StringIO:
    return io.StringIO()


class Intake:
    """Collects requests sent to the fake remote log-intake endpoint."""

    def __init__(self, status_code: int = 202) -> None:
        self.status_code = status_code
        self.requests: list[httpx.Request] = []
        self.client = httpx.Client(transport=httpx.MockTransport(self._handle))

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code)

    @property
    def payloads(self) -> list[dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests]


@pytest.fixture()
def intake() -> Generator[Intake, None, None]:
    fake = Intake()
    yield fake
    fake.client.close()


@pytest.fixture()
def make_logger(
    logs_dir: Path, console: io.StringIO, intake: Intake
) -> Generator[Callable[..., ServiceLogger], None, None]:
    """Factory building loggers wired to in-memory console/intake sinks."""
    built: list[ServiceLogger] = []

    def _make(service: str = "billing", **overrides: Any) -> ServiceLogger:
        overrides.setdefault("logs_folder", str(logs_dir))
        config = LoggerConfig(service=service, **overrides)
        logger = create_logger(
            service, config, console_stream=console, http_client=intake.client
        )
        built.append(logger)
        return logger

    yield _make
    for logger in built:
        logger.close()


@pytest.fixture()
def mock_logger() -> MagicMock:
    """Stand-in ServiceLogger recording info/error calls."""
    return MagicMock(spec=ServiceLogger)
