"""Log sinks and their line formats.

Every sink is a plain ``logging.Handler`` with its own formatter and level:

- console: colorized ``level - timestamp - json`` lines on stdout;
- file: ``level - timestamp - host - json`` lines in one file per day,
  size-capped and pruned after a retention window;
- remote: one JSON document per record POSTed to a log-intake endpoint
  from a background thread.
"""

from __future__ import annotations

import copy
import json
import logging
import logging.handlers
import os
import queue
import re
from collections.abc import Callable, Iterable
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any

import httpx

from fieldlog.core.exceptions import SinkEmitFailure

TIMESTAMP_FORMAT = "%m-%d-%Y %H:%M:%S"
DATE_PATTERN = "%Y-%m-%d"

_RESET = "\x1b[0m"
_LEVEL_COLORS = {
    "debug": "\x1b[34m",
    "info": "\x1b[32m",
    "warning": "\x1b[33m",
    "error": "\x1b[31m",
    "critical": "\x1b[1;31m",
}


def record_message(record: logging.LogRecord) -> Any:
    """Return the record's message, keeping mappings and lists structured."""
    if isinstance(record.msg, (dict, list)):
        return record.msg
    return record.getMessage()


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------


class _LineFormatter(logging.Formatter):
    """Shared ``level - timestamp - ... - json`` rendering."""

    indent: int = 2

    def __init__(self) -> None:
        super().__init__(datefmt=TIMESTAMP_FORMAT)

    def _level(self, record: logging.LogRecord) -> str:
        return record.levelname.lower()

    def _columns(self, record: logging.LogRecord) -> list[str]:
        return [self._level(record), self.formatTime(record, self.datefmt)]

    def format(self, record: logging.LogRecord) -> str:
        body = json.dumps(record_message(record), indent=self.indent, default=str)
        line = " - ".join([*self._columns(record), body])
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class ConsoleFormatter(_LineFormatter):
    """Human-readable console line with an ANSI-colored level."""

    def __init__(self, *, use_color: bool = True) -> None:
        super().__init__()
        self.use_color = use_color

    def _level(self, record: logging.LogRecord) -> str:
        level = super()._level(record)
        color = _LEVEL_COLORS.get(level)
        if not self.use_color or color is None:
            return level
        return f"{color}{level}{_RESET}"


class FileFormatter(_LineFormatter):
    """Plain-text file line that also names the emitting host."""

    indent = 4

    def _columns(self, record: logging.LogRecord) -> list[str]:
        level, timestamp = super()._columns(record)
        return [level, timestamp, str(getattr(record, "host", "-"))]


class JsonRecordFormatter(logging.Formatter):
    """Serialize a record as a single JSON document (no colors).

    The document always carries ``level``, ``timestamp`` and ``message``,
    plus whichever of *fields* are present on the record (the logger's
    default metadata).
    """

    def __init__(self, fields: Iterable[str] = ("env", "host", "service")) -> None:
        super().__init__(datefmt=TIMESTAMP_FORMAT)
        self.fields = tuple(fields)

    def to_dict(self, record: logging.LogRecord) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "level": record.levelname.lower(),
            "timestamp": self.formatTime(record, self.datefmt),
            "message": record_message(record),
        }
        for field in self.fields:
            if hasattr(record, field):
                payload[field] = getattr(record, field)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return payload

    def format(self, record: logging.LogRecord) -> str:
        return json.dumps(self.to_dict(record), default=str)


# ---------------------------------------------------------------------------
# File sink
# ---------------------------------------------------------------------------


class DailyRotatingFileHandler(logging.handlers.BaseRotatingHandler):
    """Write ``<dirname>/<prefix>-<YYYY-MM-DD>.log``, one file per day.

    When a day's file reaches *max_bytes* writing continues in
    ``<prefix>-<date>.log.1``, ``.log.2`` and so on.  Files dated
    *retention_days* or more before the current day are deleted on startup
    and at every day change.  Rotated files are never compressed.
    """

    def __init__(
        self,
        dirname: str | os.PathLike[str],
        prefix: str,
        *,
        max_bytes: int = 100 * 1024 * 1024,
        retention_days: int = 15,
        encoding: str = "utf-8",
        delay: bool = False,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.dirname = Path(dirname)
        self.prefix = prefix
        self.max_bytes = max_bytes
        self.retention_days = retention_days
        self._clock = clock
        self._pattern = re.compile(
            rf"^{re.escape(prefix)}-(\d{{4}}-\d{{2}}-\d{{2}})\.log(?:\.(\d+))?$"
        )

        self.dirname.mkdir(parents=True, exist_ok=True)
        self._day = clock().date()
        self._index = self._latest_index(self._day)
        super().__init__(
            os.fspath(self.path_for(self._day, self._index)),
            "a",
            encoding=encoding,
            delay=delay,
        )
        self.prune()

    def path_for(self, day: date, index: int = 0) -> Path:
        name = f"{self.prefix}-{day.strftime(DATE_PATTERN)}.log"
        if index:
            name = f"{name}.{index}"
        return self.dirname / name

    def _dated_files(self) -> list[tuple[Path, date, int]]:
        found = []
        for path in sorted(self.dirname.iterdir()):
            match = self._pattern.match(path.name)
            if match is None or not path.is_file():
                continue
            try:
                day = datetime.strptime(match.group(1), DATE_PATTERN).date()
            except ValueError:
                continue
            found.append((path, day, int(match.group(2) or 0)))
        return found

    def _latest_index(self, day: date) -> int:
        indexes = [index for _, d, index in self._dated_files() if d == day]
        return max(indexes, default=0)

    def prune(self) -> list[Path]:
        """Delete files dated outside the retention window; return them."""
        cutoff = self._day - timedelta(days=self.retention_days)
        removed = []
        for path, day, _ in self._dated_files():
            if day <= cutoff:
                path.unlink(missing_ok=True)
                removed.append(path)
        return removed

    def shouldRollover(self, record: logging.LogRecord) -> bool:
        if self._clock().date() != self._day:
            return True
        if self.max_bytes <= 0:
            return False
        if self.stream is None:
            self.stream = self._open()
        self.stream.seek(0, 2)
        position = self.stream.tell()
        # A lone oversized record still goes into an empty file
        if position == 0:
            return False
        msg = f"{self.format(record)}{self.terminator}"
        return position + len(msg.encode(self.encoding or "utf-8")) > self.max_bytes

    def doRollover(self) -> None:
        if self.stream:
            self.stream.close()
            self.stream = None  # type: ignore[assignment]

        today = self._clock().date()
        if today != self._day:
            self._day = today
            self._index = self._latest_index(today)
            self.prune()
        else:
            self._index += 1

        self.baseFilename = os.path.abspath(self.path_for(self._day, self._index))
        if not self.delay:
            self.stream = self._open()


# ---------------------------------------------------------------------------
# Remote sink
# ---------------------------------------------------------------------------


class RemoteHttpHandler(logging.Handler):
    """POST each record as JSON to a log-intake endpoint over TLS.

    Delivery failures raise ``SinkEmitFailure`` internally and are absorbed
    by ``handleError``; they never reach the code that logged the record.
    """

    def __init__(
        self,
        *,
        host: str,
        api_key: str,
        service: str,
        source: str = "python",
        timeout: float = 5.0,
        client: httpx.Client | None = None,
    ) -> None:
        super().__init__()
        self.url = f"https://{host}/v1/input/{api_key}"
        self.params = {"ddsource": source, "service": service}
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)

    def send(self, payload: str) -> None:
        try:
            response = self._client.post(
                self.url,
                params=self.params,
                content=payload,
                headers={"Content-Type": "application/json"},
            )
        except httpx.HTTPError as exc:
            raise SinkEmitFailure(
                f"Log intake unreachable: {type(exc).__name__}"
            ) from exc
        if response.is_error:
            raise SinkEmitFailure(
                f"Log intake rejected record: HTTP {response.status_code}"
            )

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.send(self.format(record))
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        try:
            if self._owns_client:
                self._client.close()
        finally:
            super().close()


class BackgroundHandler(logging.handlers.QueueHandler):
    """Hand records to a listener thread that drives *target*.

    Keeps slow sinks (network) off the caller's thread.  ``close()`` drains
    the queue before closing the target.
    """

    def __init__(self, target: logging.Handler) -> None:
        super().__init__(queue.SimpleQueue())
        self.target = target
        self.listener = logging.handlers.QueueListener(
            self.queue, target, respect_handler_level=True
        )
        self.listener.start()
        self._stopped = False

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        # Structured messages reach the target unrendered and detached from
        # the caller's copy
        record = copy.copy(record)
        if isinstance(record.msg, (dict, list)):
            record.msg = copy.deepcopy(record.msg)
        return record

    def setLevel(self, level: int | str) -> None:
        super().setLevel(level)
        self.target.setLevel(level)

    def close(self) -> None:
        try:
            if not self._stopped:
                self._stopped = True
                self.listener.stop()
            self.target.close()
        finally:
            super().close()
