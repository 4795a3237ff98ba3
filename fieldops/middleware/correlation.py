"""
Request context for logs and problem responses.

Each request gets a request id (``X-Request-ID``, generated when absent) and
keeps the client's ``X-Correlation-ID`` so a device session can be followed
across calls. Requests under ``/tickets/{id}`` or ``/projects/{id}`` also
carry the ticket id, so every log line written while handling them (uploads,
cascading deletes, mirror rollbacks) names the ticket it belongs to.
"""

import logging
import re
import time
import uuid
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

TICKET_PATH = re.compile(r"/(?:tickets|projects)/(?P<ticket_id>[^/]+)")
WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


@dataclass(frozen=True)
class RequestContext:
    request_id: str
    correlation_id: Optional[str] = None
    ticket_id: Optional[str] = None


_context: ContextVar[Optional[RequestContext]] = ContextVar("fieldops_request", default=None)


def generate_id() -> str:
    return uuid.uuid4().hex[:12]


def ticket_id_from_path(path: str) -> Optional[str]:
    match = TICKET_PATH.search(path)
    return match.group("ticket_id") if match else None


def current_context() -> Optional[RequestContext]:
    return _context.get()


def get_request_id() -> Optional[str]:
    context = _context.get()
    return context.request_id if context else None


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Binds a ``RequestContext`` for the request and echoes its ids back.

    Ticket writes get one summary log line with status and duration.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        context = RequestContext(
            request_id=request.headers.get("X-Request-ID") or generate_id(),
            correlation_id=request.headers.get("X-Correlation-ID"),
            ticket_id=ticket_id_from_path(request.url.path),
        )
        request.state.context = context
        token = _context.set(context)
        start = time.perf_counter()
        try:
            response = await call_next(request)
            elapsed_ms = (time.perf_counter() - start) * 1000
            if context.ticket_id and request.method in WRITE_METHODS:
                logger.info(
                    f"{request.method} {request.url.path} -> {response.status_code} in {elapsed_ms:.1f}ms"
                )
        finally:
            _context.reset(token)

        response.headers["X-Request-ID"] = context.request_id
        if context.correlation_id:
            response.headers["X-Correlation-ID"] = context.correlation_id
        return response


class CorrelationLogFilter(logging.Filter):
    """Adds ``request_id`` and ``ticket_id`` to every record ("-" outside a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = _context.get()
        record.request_id = context.request_id if context else "-"
        record.ticket_id = (context.ticket_id if context else None) or "-"
        return True
