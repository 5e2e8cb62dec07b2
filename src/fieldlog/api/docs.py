"""Interactive API documentation backed by a static schema document."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from fastapi import APIRouter, Request
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.responses import HTMLResponse, JSONResponse

SCHEMA_PATH = Path(__file__).with_name("openapi.json")

_HIDE_TOPBAR_CSS = "<style>.swagger-ui .topbar { display: none }</style>"


def load_schema(path: Path = SCHEMA_PATH) -> dict[str, Any]:
    """Read the static schema document shipped with the package."""
    with path.open(encoding="utf-8") as fh:
        schema: dict[str, Any] = json.load(fh)
    return schema


def create_docs_router(
    schema: dict[str, Any] | None = None,
    *,
    title: str = "API reference",
    hide_topbar: bool = True,
) -> APIRouter:
    """Build a router serving the Swagger UI and its raw schema.

    ``GET /`` renders the viewer; ``GET /configuration`` returns *schema*
    (default: :func:`load_schema`) as JSON.  Mount it under any prefix.
    """
    document = schema if schema is not None else load_schema()
    router = APIRouter(include_in_schema=False)

    @router.get("/", response_class=HTMLResponse)
    async def swagger_ui(request: Request) -> HTMLResponse:
        openapi_url = request.url.path.rstrip("/") + "/configuration"
        page = get_swagger_ui_html(openapi_url=openapi_url, title=title)
        html = bytes(page.body).decode("utf-8")
        if hide_topbar:
            html = html.replace("</head>", f"{_HIDE_TOPBAR_CSS}\n</head>", 1)
        return HTMLResponse(content=html)

    @router.get("/configuration")
    async def configuration() -> JSONResponse:
        return JSONResponse(status_code=200, content=document)

    return router
