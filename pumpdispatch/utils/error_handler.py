"""
Error types and JSON error responses shared by the routers and the application
"""

import uuid
import traceback
import logging
from typing import Optional
from datetime import datetime
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm.exc import StaleDataError

from pumpdispatch.services.order_workflow import InvalidTransitionError, PumpUnavailableError

logger = logging.getLogger(__name__)

# Errors route handlers re-raise untouched; everything else becomes a 500
CLIENT_ERRORS = (HTTPException, InvalidTransitionError, PumpUnavailableError, StaleDataError)

STALE_RECORD_MESSAGE = "The record was changed by someone else. Reload and try again."


def get_client_ip(request: Request) -> Optional[str]:
    """Client IP from proxy headers, falling back to the peer address"""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.headers.get("x-real-ip"):
        return request.headers["x-real-ip"]
    return request.client.host if request.client else None


class DatabaseError(Exception):
    """A storage operation failed; the session has been rolled back"""
    def __init__(self, message: str, original_error: Optional[Exception] = None):
        self.message = message
        self.original_error = original_error
        super().__init__(self.message)


class ErrorContext:
    """Identifies the failing request in logs and in the response body"""

    def __init__(self, request: Request):
        self.request_id = str(uuid.uuid4())
        self.endpoint = str(request.url.path)
        self.method = request.method
        self.client_ip = get_client_ip(request)
        self.timestamp = datetime.utcnow()

    def body(self, code: str, message: str, **extra) -> dict:
        error = {
            "code": code,
            "message": message,
            "request_id": self.request_id,
            "timestamp": self.timestamp.isoformat(),
            "endpoint": self.endpoint,
            "method": self.method,
        }
        error.update(extra)
        return {"error": error}


def _describe_conflict(exc: Exception) -> tuple[str, str, dict]:
    """Error code, message and extra fields for a 409 response"""
    if isinstance(exc, InvalidTransitionError):
        return "INVALID_TRANSITION", str(exc), {"current_status": exc.current, "target_status": exc.target}
    if isinstance(exc, PumpUnavailableError):
        return "PUMP_UNAVAILABLE", exc.message, {"pump_numbers": exc.pump_numbers}
    return "CONCURRENT_UPDATE", STALE_RECORD_MESSAGE, {}


async def conflict_handler(request: Request, exc: Exception) -> JSONResponse:
    """Workflow violations and lost optimistic-lock races all answer 409"""
    context = ErrorContext(request)
    code, message, extra = _describe_conflict(exc)
    logger.warning(
        f"Conflict {context.request_id}: {code} in {context.method} {context.endpoint}: {exc}",
        extra={"request_id": context.request_id, "client_ip": context.client_ip, "error_code": code}
    )
    return JSONResponse(status_code=409, content=context.body(code, message, **extra))


def internal_error_response(request: Request, exc: Exception) -> tuple[ErrorContext, JSONResponse]:
    """Log an unhandled error and build the generic 500 body"""
    context = ErrorContext(request)
    logger.error(
        f"Unhandled exception {context.request_id}: {type(exc).__name__} in {context.method} {context.endpoint}",
        extra={
            "request_id": context.request_id,
            "client_ip": context.client_ip,
            "error_type": type(exc).__name__,
            "error_message": str(exc),
            "stack_trace": traceback.format_exc(),
        },
        exc_info=True
    )
    code = "DATABASE_ERROR" if isinstance(exc, DatabaseError) else "INTERNAL_ERROR"
    response = JSONResponse(
        status_code=500,
        content=context.body(code, "An unexpected error occurred. Please try again later.")
    )
    return context, response


def register_conflict_handlers(app: FastAPI) -> None:
    for error_type in (InvalidTransitionError, PumpUnavailableError, StaleDataError):
        app.add_exception_handler(error_type, conflict_handler)
