"""
Error Taxonomy and Exception Handlers
=====================================

Every error the gateway returns uses one envelope:

    {"error": {"code": "<ErrorKind>", "message": "...", "details": "..."}}

``details`` is omitted when empty. The HTTP status is selected from the
error kind, never from the message text.

Handlers registered by ``register_exception_handlers``:
- AppError                 -> envelope with the kind's status
- RequestValidationError   -> VALIDATION_ERROR (400)
- Starlette HTTPException  -> kind derived from the status code
"""

import logging
from enum import Enum
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


# =============================================================================
# Error Kinds
# =============================================================================

class ErrorKind(str, Enum):
    """Closed set of client-facing error codes."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    BAD_REQUEST = "BAD_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    NOT_FOUND = "NOT_FOUND"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"

    @property
    def status_code(self) -> int:
        return _STATUS_BY_KIND[self]


_STATUS_BY_KIND = {
    ErrorKind.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorKind.BAD_REQUEST: status.HTTP_400_BAD_REQUEST,
    ErrorKind.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.INTERNAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.SERVICE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def kind_for_status(status_code: int) -> ErrorKind:
    """
    Map a framework HTTP status to the closest error kind.

    Args:
        status_code: HTTP status raised by the framework (404, 405, ...)

    Returns:
        ErrorKind used for the envelope
    """
    if status_code == status.HTTP_401_UNAUTHORIZED:
        return ErrorKind.UNAUTHORIZED
    if status_code == status.HTTP_404_NOT_FOUND:
        return ErrorKind.NOT_FOUND
    if status_code == status.HTTP_503_SERVICE_UNAVAILABLE:
        return ErrorKind.SERVICE_UNAVAILABLE
    if 400 <= status_code < 500:
        return ErrorKind.BAD_REQUEST
    return ErrorKind.INTERNAL_ERROR


# =============================================================================
# Exceptions
# =============================================================================

class AppError(Exception):
    """
    Client-facing error carrying its kind structurally.

    Attributes:
        kind: ErrorKind selecting the HTTP status
        message: Short human-readable message
        details: Optional extra detail (never credentials)
    """

    def __init__(self, kind: ErrorKind, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details = details

    @property
    def status_code(self) -> int:
        return self.kind.status_code

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"code": self.kind.value, "message": self.message}
        if self.details:
            body["details"] = self.details
        return {"error": body}

    def __repr__(self) -> str:
        return f"AppError({self.kind.value}, {self.message!r})"

    @classmethod
    def validation(cls, message: str, details: Optional[str] = None) -> "AppError":
        return cls(ErrorKind.VALIDATION_ERROR, message, details)

    @classmethod
    def bad_request(cls, message: str, details: Optional[str] = None) -> "AppError":
        return cls(ErrorKind.BAD_REQUEST, message, details)

    @classmethod
    def unauthorized(cls, message: str = "unauthorized") -> "AppError":
        return cls(ErrorKind.UNAUTHORIZED, message)

    @classmethod
    def not_found(cls, resource: str) -> "AppError":
        return cls(ErrorKind.NOT_FOUND, f"{resource} not found")

    @classmethod
    def internal(cls, message: str = "internal server error", details: Optional[str] = None) -> "AppError":
        return cls(ErrorKind.INTERNAL_ERROR, message, details)

    @classmethod
    def service_unavailable(cls, service: str, details: Optional[str] = None) -> "AppError":
        return cls(ErrorKind.SERVICE_UNAVAILABLE, f"{service} is unavailable", details)


def error_response(error: AppError, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    """Render an AppError as a JSON envelope response."""
    return JSONResponse(
        status_code=error.status_code,
        content=error.to_dict(),
        headers=headers,
    )


# =============================================================================
# Request Validation Messages
# =============================================================================

def _field_name(loc) -> str:
    # loc is ("body", "email") or ("query", "flow"); drop the source prefix
    parts = [str(part) for part in loc if part not in ("body", "query", "header")]
    return ".".join(parts) if parts else "body"


def validation_message(error: Dict[str, Any]) -> str:
    """
    Turn one pydantic error entry into a short message naming the field.

    Args:
        error: Entry from RequestValidationError.errors()

    Returns:
        Message such as "email is required" or "Invalid JSON body"
    """
    error_type = error.get("type", "")
    field = _field_name(error.get("loc", ()))

    if error_type == "json_invalid":
        return "Invalid JSON body"

    if error_type == "missing":
        if field == "body":
            return "Invalid JSON body"
        return f"{field} is required"

    if error_type == "value_error":
        ctx_error = (error.get("ctx") or {}).get("error")
        if ctx_error is not None:
            return str(ctx_error)
        msg = error.get("msg", "")
        if msg.startswith("Value error, "):
            return msg[len("Value error, "):]

    if error_type == "string_too_short":
        min_length = (error.get("ctx") or {}).get("min_length")
        return f"{field} must be at least {min_length} characters"

    if error_type in ("model_attributes_type", "dict_type", "model_type"):
        return "Invalid JSON body"

    return f"{field}: {error.get('msg', 'invalid value')}"


# =============================================================================
# Exception Handlers
# =============================================================================

def register_exception_handlers(app: FastAPI) -> None:
    """
    Attach the envelope-producing exception handlers to an application.

    Args:
        app: FastAPI application
    """

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        log = logger.error if exc.status_code >= 500 else logger.info
        log(
            f"Request failed: {exc.kind.value}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error_code": exc.kind.value,
                "error_message": exc.message,
            }
        )
        headers = None
        if exc.kind is ErrorKind.UNAUTHORIZED:
            headers = {"WWW-Authenticate": "Bearer"}
        return error_response(exc, headers=headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        message = validation_message(errors[0]) if errors else "Invalid request"
        logger.info(
            "Request validation failed",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error_message": message,
            }
        )
        return error_response(AppError.validation(message))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        kind = kind_for_status(exc.status_code)
        message = exc.detail if isinstance(exc.detail, str) else kind.value.lower()
        return JSONResponse(
            status_code=exc.status_code,
            content=AppError(kind, message).to_dict(),
            headers=getattr(exc, "headers", None),
        )


__all__ = [
    "ErrorKind",
    "AppError",
    "kind_for_status",
    "error_response",
    "validation_message",
    "register_exception_handlers",
]
