"""
Correlation context for log records.

Two values travel with every log line written while they are set:

- request_id: taken from X-Request-ID or generated per HTTP request, and
  generated per run for background sweeps
- psp_reference: the provider reference of the notification being applied,
  so a single delivery can be followed through store, lock and processor
"""

import uuid
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

REQUEST_ID_HEADER = "X-Request-ID"

request_id_var: ContextVar[str] = ContextVar("request_id", default="")
psp_reference_var: ContextVar[str] = ContextVar("psp_reference", default="")


def get_request_id() -> str:
    return request_id_var.get()


@contextmanager
def correlation_scope(prefix: str) -> Generator[str, None, None]:
    """Set a fresh request id for work that does not come from a request."""
    token = request_id_var.set(f"{prefix}-{uuid.uuid4().hex[:12]}")
    try:
        yield request_id_var.get()
    finally:
        request_id_var.reset(token)


@contextmanager
def notification_scope(psp_reference: str) -> Generator[None, None, None]:
    token = psp_reference_var.set(psp_reference)
    try:
        yield
    finally:
        psp_reference_var.reset(token)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Reuse the caller's X-Request-ID (or mint one) and echo it back."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        token = request_id_var.set(request_id)
        try:
            request.state.request_id = request_id
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class CorrelationIdFilter:
    """Logging filter copying the correlation context onto each record."""

    def filter(self, record) -> bool:
        record.request_id = request_id_var.get() or "-"
        record.psp_reference = psp_reference_var.get() or None
        return True
