"""
Error handling and sanitization

- Domain errors (BookstoreError) → mapped status code, one WARNING line
- Request validation errors → 400 VALIDATION_ERROR with offending fields
- Anything else → 500 INTERNAL_ERROR, traceback logged, message sanitized

Every error body has the same shape: {error, message, code, path, timestamp}
plus `details` when the error carries structured context.
"""
import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from bookstore.core.config import settings
from bookstore.core.exceptions import BookstoreError
from bookstore.core.utils import utcnow

logger = logging.getLogger(__name__)


def error_body(
    request: Request,
    status_title: str,
    message: str,
    code: str,
    details: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    body = {
        "error": status_title,
        "message": message,
        "code": code,
        "path": request.url.path,
        "timestamp": utcnow().isoformat(),
    }
    if details:
        body["details"] = details
    return body


async def bookstore_error_handler(request: Request, exc: BookstoreError) -> JSONResponse:
    logger.warning(f"Domain error on {request.method} {request.url.path}: {exc.to_dict()}")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(request, exc.title, exc.message, exc.code, exc.details),
    )


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        if loc:
            fields.append(".".join(loc))
    message = "Invalid request"
    if fields:
        message = f"Invalid value for: {', '.join(fields)}"
    logger.warning(f"VALIDATION_ERROR on {request.method} {request.url.path}: {fields}")
    return JSONResponse(
        status_code=400,
        content=error_body(
            request, "Validation Failed", message, "VALIDATION_ERROR",
            {"fields": fields} if fields else None,
        ),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BookstoreError, bookstore_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)


class ErrorSanitizationMiddleware(BaseHTTPMiddleware):
    """
    Catch unhandled exceptions and return a sanitized 500.

    - In production: Returns generic error, logs full details
    - In development: Returns full error for debugging
    """

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except HTTPException:
            raise
        except Exception as e:
            error_id = f"{request.client.host if request.client else 'unknown'}-{id(e)}"
            logger.error(
                f"Unhandled exception [{error_id}]: {type(e).__name__}: {str(e)}\n"
                f"Path: {request.url.path}\n"
                f"Method: {request.method}\n"
                f"Traceback:\n{traceback.format_exc()}"
            )

            if settings.DEBUG:
                message = f"{type(e).__name__}: {e}"
            else:
                message = "An unexpected error occurred. Please try again later."
            body = error_body(request, "Internal Server Error", message, "INTERNAL_ERROR")
            body["error_id"] = error_id
            return JSONResponse(status_code=500, content=body)
