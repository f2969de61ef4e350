"""
Domain error types and their HTTP error envelope.

Stores and services raise these; the handlers registered by
`register_error_handlers` turn them into
{"error": {"code", "message"}, "status": "error"} responses.
"""

from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class AppError(Exception):
    """Base class for errors that map onto an HTTP response."""
    code = "INTERNAL_ERROR"
    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(AppError):
    """No such user, relation, note, attendance record or assignment."""
    code = "NOT_FOUND"
    http_status = 404


class DuplicateKey(AppError):
    """The record (e.g. a coach/student assignment) already exists."""
    code = "DUPLICATE_KEY"
    http_status = 409


class ValidationError(AppError):
    """Missing or invalid id, bad role reference, invalid field value."""
    code = "VALIDATION_ERROR"
    http_status = 400


class TransientStoreError(AppError):
    """Connection loss or timeout; the caller may retry the whole operation."""
    code = "STORE_UNAVAILABLE"
    http_status = 503


def error_response(
    code: str,
    message: str,
    http_status: int = 400,
    details: Optional[list] = None,
) -> JSONResponse:
    body: dict[str, Any] = {
        "error": {
            "code": code,
            "message": message,
        },
        "status": "error",
    }
    if details:
        body["error"]["details"] = details
    return JSONResponse(status_code=http_status, content=body)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        return error_response(exc.code, exc.message, exc.http_status)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        return error_response("INTERNAL_ERROR", "An unexpected error occurred.", 500)
