"""Tests for create_logger and ServiceLogger."""

from __future__ import annotations

import io
import logging
import socket
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

import httpx
import pytest

from fieldlog.core.config import LoggerConfig
from fieldlog.core.exceptions import ConfigurationError, SinkInitializationError
from fieldlog.core.logging_config import ServiceLogger, create_logger

MakeLogger = Callable[..., ServiceLogger]


def _log_file(logs_dir: Path, service: str = "billing") -> Path:
    return logs_dir / f"{service}-{datetime.now():%Y-%m-%d}.log"


class TestServiceValidation:
    @pytest.mark.parametrize("service", ["", None])
    def test_missing_service_raises(self, service: str | None) -> None:
        with pytest.raises(ConfigurationError, match="service"):
            create_logger(service)

    def test_invalid_environment_config_raises_configuration_error(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("LOG_FILE_LEVEL", "loud")
        with pytest.raises(ConfigurationError, match="Invalid logger configuration"):
            create_logger("billing")

    def test_whitespace_service_accepted_from_environment(
        self, monkeypatch: pytest.MonkeyPatch, logs_dir: Path
    ) -> None:
        monkeypatch.setenv("LOGS_FOLDER", str(logs_dir))
        logger = create_logger("  ", console_stream=io.StringIO())
        try:
            assert logger.default_meta["service"] == "  "
            assert logger.sink_names == ["console", "file"]
        finally:
            logger.close()

    def test_whitespace_service_accepted_with_config(
        self, make_logger: MakeLogger
    ) -> None:
        logger = make_logger("  ")
        assert logger.config.service == "  "


class TestDefaultMetadata:
    @pytest.mark.parametrize("service", ["billing", "a", "payments-eu-2"])
    def test_metadata_carries_service(
        self, make_logger: MakeLogger, service: str
    ) -> None:
        logger = make_logger(service)
        assert logger.default_meta["service"] == service

    def test_metadata_fields(self, make_logger: MakeLogger) -> None:
        logger = make_logger(env="staging")
        assert logger.default_meta == {
            "env": "staging",
            "host": socket.gethostname(),
            "service": "billing",
        }

    def test_metadata_merged_into_records(
        self, make_logger: MakeLogger, logs_dir: Path
    ) -> None:
        logger = make_logger()
        logger.info("hello", extra={"service": "spoofed", "request_id": "r-1"})
        logger.close()

        line = _log_file(logs_dir).read_text().splitlines()[-1]
        assert f" - {socket.gethostname()} - " in line
        assert line.endswith('"hello"')

    def test_environment_resolution_without_config(
        self,
        monkeypatch: pytest.MonkeyPatch,
        logs_dir: Path,
        console: io.StringIO,
    ) -> None:
        monkeypatch.setenv("NODE_ENV", "qa")
        monkeypatch.setenv("LOGS_FOLDER", str(logs_dir))

        logger = create_logger("billing", console_stream=console)
        try:
            assert logger.default_meta["env"] == "qa"
            assert _log_file(logs_dir).exists()
        finally:
            logger.close()

    def test_argument_service_overrides_config(self, logs_dir: Path) -> None:
        config = LoggerConfig(service="other", logs_folder=str(logs_dir))
        logger = create_logger("billing", config, console_stream=io.StringIO())
        try:
            assert logger.config.service == "billing"
            assert _log_file(logs_dir, "billing").exists()
        finally:
            logger.close()


class TestSinkSelection:
    def test_two_sinks_without_api_key(self, make_logger: MakeLogger) -> None:
        logger = make_logger()
        assert len(logger.sinks) == 2
        assert logger.sink_names == ["console", "file"]

    def test_three_sinks_with_api_key(self, make_logger: MakeLogger) -> None:
        logger = make_logger(remote_api_key="k3y")
        assert len(logger.sinks) == 3
        assert logger.sink_names == ["console", "file", "remote"]

    def test_thresholds_per_sink(self, make_logger: MakeLogger) -> None:
        logger = make_logger(remote_api_key="k3y")
        levels = {h.get_name(): h.level for h in logger.sinks}
        assert levels == {
            "console": logging.DEBUG,
            "file": logging.DEBUG,
            "remote": logging.INFO,
        }

    def test_recreating_logger_replaces_sinks(self, make_logger: MakeLogger) -> None:
        make_logger()
        logger = make_logger()
        assert len(logger.logger.handlers) == 2

    def test_unwritable_folder_raises_sink_error(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocked"
        blocker.write_text("file, not folder")
        config = LoggerConfig(service="billing", logs_folder=str(blocker))

        with pytest.raises(SinkInitializationError, match="blocked"):
            create_logger("billing", config, console_stream=io.StringIO())

    def test_failed_rebuild_keeps_existing_sinks(
        self, make_logger: MakeLogger, tmp_path: Path, console: io.StringIO
    ) -> None:
        first = make_logger()
        blocker = tmp_path / "blocked"
        blocker.write_text("file, not folder")
        config = LoggerConfig(service="billing", logs_folder=str(blocker))

        with pytest.raises(SinkInitializationError):
            create_logger("billing", config, console_stream=io.StringIO())

        assert first.sink_names == ["console", "file"]
        first.info("still here")
        assert "still here" in console.getvalue()


class TestRecordRouting:
    def test_announces_environment_at_debug(
        self, make_logger: MakeLogger, console: io.StringIO
    ) -> None:
        make_logger(env="staging")
        first = console.getvalue().splitlines()[0]
        assert "debug" in first
        assert first.endswith('"Environment: staging"')

    def test_debug_reaches_console_and_file_only(
        self,
        make_logger: MakeLogger,
        console: io.StringIO,
        logs_dir: Path,
        intake: Any,
    ) -> None:
        logger = make_logger(remote_api_key="k3y")
        logger.debug({"marker": "debug-only"})
        logger.close()

        assert "debug-only" in console.getvalue()
        assert "debug-only" in _log_file(logs_dir).read_text()
        assert all("debug-only" not in r.content.decode() for r in intake.requests)

    def test_error_reaches_all_three_sinks(
        self,
        make_logger: MakeLogger,
        console: io.StringIO,
        logs_dir: Path,
        intake: Any,
    ) -> None:
        logger = make_logger(remote_api_key="k3y")
        logger.error({"marker": "boom"})
        logger.close()

        assert "boom" in console.getvalue()
        assert "boom" in _log_file(logs_dir).read_text()
        (payload,) = intake.payloads
        assert payload["level"] == "error"
        assert payload["message"] == {"marker": "boom"}
        assert payload["service"] == "billing"
        assert payload["env"] == "dev"
        assert payload["host"] == socket.gethostname()

    def test_remote_path_uses_key_and_service(
        self, make_logger: MakeLogger, intake: Any
    ) -> None:
        logger = make_logger(remote_api_key="k3y")
        logger.info("hi")
        logger.close()

        (request,) = intake.requests
        assert str(request.url).startswith(
            "https://http-intake.logs.datadoghq.com/v1/input/k3y?"
        )
        assert request.url.params["service"] == "billing"

    def test_remote_failure_does_not_reach_caller(
        self,
        monkeypatch: pytest.MonkeyPatch,
        logs_dir: Path,
        console: io.StringIO,
    ) -> None:
        monkeypatch.setattr(logging, "raiseExceptions", False)

        def _down(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = httpx.Client(transport=httpx.MockTransport(_down))
        config = LoggerConfig(
            service="billing", logs_folder=str(logs_dir), remote_api_key="k3y"
        )
        logger = create_logger(
            "billing", config, console_stream=console, http_client=client
        )
        logger.error("still fine")
        logger.close()
        client.close()

        assert "still fine" in _log_file(logs_dir).read_text()


class TestWriteAdapter:
    def test_write_logs_at_info(
        self, make_logger: MakeLogger, console: io.StringIO
    ) -> None:
        logger = make_logger()
        logger.write('GET /health 200 "curl/8.0"\n')

        last = console.getvalue().splitlines()[-1]
        assert "info" in last
        assert last.endswith('"GET /health 200 \\"curl/8.0\\""')

    def test_stream_is_the_logger(self, make_logger: MakeLogger) -> None:
        logger = make_logger()
        assert logger.stream is logger
