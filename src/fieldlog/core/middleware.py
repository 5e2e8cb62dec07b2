"""Request middleware: response summaries and uncaught-error logging."""

from __future__ import annotations

import ipaddress
import json
import time
import traceback
from collections.abc import Callable
from http import HTTPStatus
from typing import Any

from fastapi import FastAPI
from starlette.datastructures import Headers
from starlette.requests import HTTPConnection
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from fieldlog.core.logging_config import ServiceLogger

Clock = Callable[[], float]


def _now_ms() -> float:
    return time.perf_counter() * 1000


def _full_path(scope: Scope) -> str:
    path = scope.get("path", "")
    query = scope.get("query_string", b"")
    return f"{path}?{query.decode('latin-1')}" if query else path


def _client_host(scope: Scope) -> str | None:
    client = scope.get("client")
    return client[0] if client else None


def _address_family(host: str | None) -> str | None:
    if not host:
        return None
    try:
        return f"IPv{ipaddress.ip_address(host).version}"
    except ValueError:
        return None


def _raw_headers(raw: list[tuple[bytes, bytes]]) -> list[str]:
    flat: list[str] = []
    for name, value in raw:
        flat.extend((name.decode("latin-1"), value.decode("latin-1")))
    return flat


def _decode_body(body: bytes, content_type: str) -> Any:
    if not body:
        return None
    text = body.decode("utf-8", errors="replace")
    if "json" in content_type:
        try:
            return json.loads(text)
        except ValueError:
            return text
    return text


def _status_phrase(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return ""


def request_summary(scope: Scope) -> dict[str, Any]:
    """Connection-level fields shared by response and error records."""
    conn = HTTPConnection(scope)
    return {
        "url": _full_path(scope),
        "method": scope.get("method"),
        "hostname": conn.url.hostname,
        "ip": _client_host(scope),
        "protocol": scope.get("scheme", "http"),
    }


def resolve_status(exc: BaseException) -> int:
    """Return ``exc.status``, else ``exc.status_code``, else 500."""
    return getattr(exc, "status", None) or getattr(exc, "status_code", None) or 500


def log_error(
    logger: ServiceLogger,
    exc: BaseException,
    scope: Scope,
    *,
    status: int | None = None,
) -> None:
    """Emit one error record describing *exc* raised while serving *scope*.

    *status* overrides the code read from the exception.
    """
    summary = request_summary(scope)
    logger.error(
        {
            "url": summary["url"],
            "method": summary["method"],
            "ip": summary["ip"],
            "hostname": summary["hostname"],
            "protocol": summary["protocol"],
            "status": status or resolve_status(exc),
            "text": str(exc),
            "stack": "".join(
                traceback.format_exception(type(exc), exc, exc.__traceback__)
            ),
        }
    )


class ResponseLoggingMiddleware:
    """Log a structured summary of every completed HTTP exchange.

    The downstream app runs untouched; ``receive`` and ``send`` are only
    observed.  The record is written once, when the final response body
    chunk has been sent, or on the way out if the app fails after the
    response headers went out.  A response that never starts is never
    logged here.
    """

    def __init__(
        self, app: ASGIApp, logger: ServiceLogger, clock: Clock | None = None
    ) -> None:
        self.app = app
        self.logger = logger
        self.clock = clock or _now_ms

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_start = self.clock()
        body_chunks: list[bytes] = []
        response_start: Message | None = None
        logged = False

        async def receive_wrapper() -> Message:
            message = await receive()
            if message["type"] == "http.request":
                body_chunks.append(message.get("body", b""))
            return message

        def complete() -> None:
            nonlocal logged
            if logged or response_start is None:
                return
            logged = True
            self._log_exchange(
                scope,
                b"".join(body_chunks),
                response_start,
                self.clock() - request_start,
            )

        async def send_wrapper(message: Message) -> None:
            nonlocal response_start
            if message["type"] == "http.response.start":
                response_start = message
            await send(message)
            if message["type"] == "http.response.body" and not message.get(
                "more_body", False
            ):
                complete()

        try:
            await self.app(scope, receive_wrapper, send_wrapper)
        finally:
            complete()

    def _log_exchange(
        self,
        scope: Scope,
        body: bytes,
        response_start: Message,
        processing_time: float,
    ) -> None:
        summary = request_summary(scope)
        request_headers = Headers(scope=scope)
        status_code = int(response_start["status"])
        response_headers = Headers(raw=list(response_start.get("headers", [])))
        remote_address = _client_host(scope)

        self.logger.info(
            {
                "url": summary["url"],
                "method": summary["method"],
                "hostname": summary["hostname"],
                "httpVersion": scope.get("http_version"),
                "ip": summary["ip"],
                "protocol": summary["protocol"],
                "remoteAddress": remote_address,
                "remoteFamily": _address_family(remote_address),
                "req": {
                    "rawHeaders": _raw_headers(list(scope.get("headers", []))),
                    "body": _decode_body(
                        body, request_headers.get("content-type", "")
                    ),
                },
                "response": {
                    "statusCode": status_code,
                    "statusMessage": _status_phrase(status_code),
                    "processingTime": round(processing_time, 3),
                    "headers": dict(response_headers.items()),
                },
            }
        )


class ErrorLoggingMiddleware:
    """Log uncaught errors, then re-raise them unchanged.

    A pure observability tap: the same exception object continues to the
    next error handler (``ServerErrorMiddleware`` and the registered
    exception handlers).
    """

    def __init__(self, app: ASGIApp, logger: ServiceLogger) -> None:
        self.app = app
        self.logger = logger

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        try:
            await self.app(scope, receive, send)
        except Exception as exc:
            log_error(self.logger, exc, scope)
            raise


class LoggedFastAPI(FastAPI):
    """FastAPI application whose outermost layer is the response logger.

    ``add_middleware`` places user middleware inside Starlette's
    ``ServerErrorMiddleware``, which would hide the 500 sent for an
    unhandled error.  Wrapping the built stack puts the response logger
    outside it, so every completed exchange is recorded.
    """

    def __init__(
        self,
        *args: Any,
        response_logger: ServiceLogger,
        response_clock: Clock | None = None,
        **kwargs: Any,
    ) -> None:
        self.response_logger = response_logger
        self.response_clock = response_clock
        super().__init__(*args, **kwargs)

    def build_middleware_stack(self) -> ASGIApp:
        return ResponseLoggingMiddleware(
            super().build_middleware_stack(),
            self.response_logger,
            clock=self.response_clock,
        )
