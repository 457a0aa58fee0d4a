"""
Error taxonomy and the FastAPI handlers that render it.

Every failure reaches the client as:
    {"success": false, "message": "..."}

Store-specific shapes (DuplicateKeyError details, connection errors) are
mapped here and never leak to the API consumer.
"""

import logging
import traceback
from typing import Optional

from fastapi import FastAPI, Request
from starlette.exceptions import HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import ConnectionFailure, DuplicateKeyError, ExecutionTimeout, PyMongoError

from placement_portal.core.config import get_settings

logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code = 500
    default_message = "Server Error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    default_message = "Invalid request"


class AuthenticationError(AppError):
    status_code = 401
    default_message = "Authentication required."


class AuthorizationError(AppError):
    status_code = 403
    default_message = "Access denied."


class NotFoundError(AppError):
    status_code = 404
    default_message = "Resource not found"


class ConflictError(AppError):
    status_code = 409
    default_message = "Resource already exists"

    def __init__(self, message: Optional[str] = None, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class ServiceUnavailableError(AppError):
    status_code = 503
    default_message = "Service temporarily unavailable. Please try again later."


class InternalError(AppError):
    status_code = 500
    default_message = "Server Error"


# Unique index name -> user facing field label
_INDEX_FIELDS = {
    "email": "email",
    "code": "college code",
    "college_1_roll_number_1": "roll number",
    "student_1_job_1": "application",
}


def duplicate_key_field(error: DuplicateKeyError) -> str:
    """Best-effort name of the field that violated a unique index."""
    details = error.details or {}
    key_value = details.get("keyValue") or {}
    if key_value:
        keys = list(key_value.keys())
        if keys == ["student", "job"]:
            return "application"
        if "roll_number" in keys:
            return "roll number"
        return keys[0]
    message = details.get("errmsg") or str(error)
    for index_name, label in _INDEX_FIELDS.items():
        if index_name in message:
            return label
    return "record"


def conflict_from_duplicate(error: DuplicateKeyError) -> ConflictError:
    field = duplicate_key_field(error)
    if field == "application":
        return ConflictError("Student has already applied for this job", field="application")
    return ConflictError(f"{field[0].upper()}{field[1:]} already exists", field=field)


def _error_body(message: str, exc: Optional[Exception] = None) -> dict:
    body = {"success": False, "message": message}
    if exc is not None and not get_settings().is_production:
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return body


async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.message))


async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError):
    messages = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", []) if part != "body")
        messages.append(f"{location}: {err.get('msg')}" if location else err.get("msg"))
    return JSONResponse(status_code=400, content=_error_body(". ".join(messages) or "Invalid request"))


async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    conflict = conflict_from_duplicate(exc)
    return JSONResponse(status_code=conflict.status_code, content=_error_body(conflict.message))


async def store_unavailable_handler(request: Request, exc: PyMongoError):
    logger.error("Store unavailable during %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content=_error_body(ServiceUnavailableError.default_message))


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error during %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=_error_body("Server Error", exc))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(DuplicateKeyError, duplicate_key_handler)
    app.add_exception_handler(ConnectionFailure, store_unavailable_handler)
    app.add_exception_handler(ExecutionTimeout, store_unavailable_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
