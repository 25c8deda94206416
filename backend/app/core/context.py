"""Per-request context utilities."""
from __future__ import annotations

from contextvars import ContextVar

request_id_ctx_var: ContextVar[str | None] = ContextVar("request_id", default=None)
project_id_ctx_var: ContextVar[str | None] = ContextVar("project_id", default=None)


def get_request_id() -> str | None:
    """Return the current request id if available."""
    return request_id_ctx_var.get()


def get_project_id() -> str | None:
    """Return the project currently being mutated, if any."""
    return project_id_ctx_var.get()
