"""
RFC 7807 Problem Details exception handling.

Every user-initiated operation (create, update, upload, delete) is recovered
at the API boundary: service errors are translated into problem responses
here, never leaked as bare 500s. Problems raised on a ticket route name the
ticket and carry the request id from the log lines of the same request.

See: https://datatracker.ietf.org/doc/html/rfc7807
"""

from typing import Optional, Dict, Any, List
from enum import Enum
from pydantic import BaseModel
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
from datetime import datetime, timezone

from fieldops.middleware.correlation import current_context, generate_id, ticket_id_from_path

logger = logging.getLogger(__name__)

PROBLEM_BASE_URL = "https://fieldops.local/problems"

TITLES = {
    400: "Bad Request",
    403: "Permission Required",
    404: "Not Found",
    422: "Validation Error",
    428: "Confirmation Required",
    500: "Internal Server Error",
    502: "Bad Gateway",
}


def _trace_id() -> str:
    context = current_context()
    return context.request_id if context else generate_id()


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class ErrorCode(str, Enum):
    """Error codes for the field operations API."""

    # Device permissions
    FORBIDDEN = "AUTH_002"
    PERMISSION_DENIED = "AUTH_005"

    # Validation
    VALIDATION_ERROR = "VAL_001"

    # Resource
    NOT_FOUND = "RES_001"
    CONFIRMATION_REQUIRED = "RES_005"

    # Business Logic
    BUSINESS_RULE_VIOLATION = "BIZ_001"

    # External Services
    EXTERNAL_SERVICE_ERROR = "EXT_001"
    BLOB_STORE_ERROR = "EXT_007"
    QUICKBOOKS_ERROR = "EXT_008"

    # Server
    INTERNAL_ERROR = "SRV_001"


class ProblemDetail(BaseModel):
    """RFC 7807 problem body, plus ``code``, ``trace_id`` and the ticket it concerns."""

    type: str = "about:blank"
    title: str
    status: int
    detail: str
    instance: Optional[str] = None
    code: str
    timestamp: str
    trace_id: str
    ticket_id: Optional[str] = None
    errors: Optional[List[Dict[str, Any]]] = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "type": f"{PROBLEM_BASE_URL}/res-005",
                "title": "Confirmation Required",
                "status": 428,
                "detail": "Are you sure you want to delete this ticket?",
                "instance": "/api/v2/tickets/6a1f",
                "code": "RES_005",
                "timestamp": "2026-01-29T10:30:00Z",
                "trace_id": "abc123def456",
                "ticket_id": "6a1f",
            }
        }
    }


def problem_for(
    request: Request,
    status_code: int,
    code: ErrorCode,
    detail: str,
    title: Optional[str] = None,
    errors: Optional[List[Dict[str, Any]]] = None,
    trace_id: Optional[str] = None,
) -> ProblemDetail:
    return ProblemDetail(
        type=f"{PROBLEM_BASE_URL}/{code.value.lower().replace('_', '-')}",
        title=title or TITLES.get(status_code, "Error"),
        status=status_code,
        detail=detail,
        instance=str(request.url.path),
        code=code.value,
        timestamp=_utc_timestamp(),
        trace_id=trace_id or _trace_id(),
        ticket_id=ticket_id_from_path(request.url.path),
        errors=errors,
    )


class FieldOpsException(HTTPException):
    """Base API error; rendered as ``application/problem+json``."""

    def __init__(
        self,
        status_code: int,
        code: ErrorCode,
        detail: str,
        title: Optional[str] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.code = code
        self.title = title
        self.errors = errors
        super().__init__(status_code=status_code, detail=detail, headers=headers)


# Convenience exception classes

class NotFoundError(FieldOpsException):
    """Ticket, note, room or photo not found (404)."""

    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            status_code=404,
            code=ErrorCode.NOT_FOUND,
            detail=f"{resource} with ID {resource_id} was not found",
        )


class ValidationError(FieldOpsException):
    """Validation error (422)."""

    def __init__(
        self,
        detail: str,
        errors: Optional[List[Dict[str, Any]]] = None
    ):
        super().__init__(
            status_code=422,
            code=ErrorCode.VALIDATION_ERROR,
            detail=detail,
            errors=errors,
        )


class PermissionDeniedError(FieldOpsException):
    """Media/asset access was not granted on the device (403)."""

    def __init__(self, detail: str = "Camera roll permission is needed."):
        super().__init__(
            status_code=403,
            code=ErrorCode.PERMISSION_DENIED,
            detail=detail,
        )


class ConfirmationRequiredError(FieldOpsException):
    """Destructive operation attempted without explicit confirmation (428)."""

    def __init__(self, detail: str):
        super().__init__(
            status_code=428,
            code=ErrorCode.CONFIRMATION_REQUIRED,
            detail=detail,
        )


class ExternalServiceError(FieldOpsException):
    """Blob store or QuickBooks failure (502)."""

    def __init__(self, service: str, detail: str, code: ErrorCode = ErrorCode.EXTERNAL_SERVICE_ERROR):
        super().__init__(
            status_code=502,
            code=code,
            detail=f"{service} service error: {detail}",
        )


class BusinessRuleError(FieldOpsException):
    """Business rule violation (400)."""

    def __init__(self, detail: str):
        super().__init__(
            status_code=400,
            code=ErrorCode.BUSINESS_RULE_VIOLATION,
            detail=detail,
        )


# Exception handlers for FastAPI

def problem_response(problem: ProblemDetail, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    return JSONResponse(
        status_code=problem.status,
        content=problem.model_dump(exclude_none=True),
        media_type="application/problem+json",
        headers=headers,
    )


def create_exception_handlers(debug: bool = False):
    """
    Create exception handlers, keyed for registration in main.py:
    ``fieldops``, ``http``, ``validation`` and ``generic``.
    """

    async def handle_fieldops_exception(request: Request, exc: FieldOpsException) -> JSONResponse:
        problem = problem_for(request, exc.status_code, exc.code, str(exc.detail), exc.title, exc.errors)
        logger.warning(f"{problem.code} {request.method} {request.url.path}: {problem.detail}")
        return problem_response(problem, exc.headers)

    async def handle_http_exception(
        request: Request,
        exc: StarletteHTTPException
    ) -> JSONResponse:
        """Routing errors (unknown path, wrong method) as problem responses."""
        code_map = {
            400: ErrorCode.VALIDATION_ERROR,
            403: ErrorCode.FORBIDDEN,
            404: ErrorCode.NOT_FOUND,
            422: ErrorCode.VALIDATION_ERROR,
            502: ErrorCode.EXTERNAL_SERVICE_ERROR,
        }
        code = code_map.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
        problem = problem_for(request, exc.status_code, code, str(exc.detail))
        return problem_response(problem, getattr(exc, "headers", None))

    async def handle_validation_exception(
        request: Request,
        exc: RequestValidationError
    ) -> JSONResponse:
        """Pydantic validation errors with field-level details."""
        errors = []
        for error in exc.errors():
            errors.append({
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            })

        problem = problem_for(request, 422, ErrorCode.VALIDATION_ERROR, "Request validation failed", errors=errors)
        return problem_response(problem)

    async def handle_generic_exception(
        request: Request,
        exc: Exception
    ) -> JSONResponse:
        trace_id = generate_id()
        logger.error(f"Unhandled exception [{trace_id}] on {request.url.path}: {exc}", exc_info=exc)

        # Don't expose internal details in production
        detail = str(exc) if debug else "An unexpected error occurred"
        problem = problem_for(request, 500, ErrorCode.INTERNAL_ERROR, detail, trace_id=trace_id)
        return problem_response(problem)

    return {
        "fieldops": handle_fieldops_exception,
        "http": handle_http_exception,
        "validation": handle_validation_exception,
        "generic": handle_generic_exception,
    }
