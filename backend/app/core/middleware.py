"""Custom FastAPI middleware."""
from __future__ import annotations

from typing import Callable
from uuid import uuid4

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.context import project_id_ctx_var, request_id_ctx_var


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Populate request.state.request_id and bind the project id for log records."""

    async def dispatch(self, request: Request, call_next: Callable[[Request], Response]) -> Response:  # type: ignore[override]
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        request_token = request_id_ctx_var.set(request_id)
        project_token = project_id_ctx_var.set(_project_id_from_path(request.url.path))

        try:
            response = await call_next(request)
        finally:
            project_id_ctx_var.reset(project_token)
            request_id_ctx_var.reset(request_token)

        response.headers["X-Request-Id"] = request_id
        return response


def _project_id_from_path(path: str) -> str | None:
    segments = [segment for segment in path.split("/") if segment]
    if len(segments) >= 2 and segments[0] == "projects" and segments[1] != "stats":
        return segments[1]
    return None
