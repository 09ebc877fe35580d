"""
Exception handlers mapping failures to JSON error bodies
"""

import logging
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


def _request_id(request: Request):
    return getattr(request.state, "request_id", None)


def _validation_message(exc: RequestValidationError) -> str:
    """Human-readable message for the first failing query parameter"""
    messages = []
    for error in exc.errors():
        field = error.get("loc", ["", ""])[-1]
        error_type = error.get("type", "")
        if error_type == "missing":
            messages.append(f"Missing required query parameter: {field}")
        elif field == "lat" and error_type in ("greater_than_equal", "less_than_equal"):
            messages.append("Latitude must be between -90 and 90")
        elif field == "lon" and error_type in ("greater_than_equal", "less_than_equal"):
            messages.append("Longitude must be between -180 and 180")
        elif error_type.startswith("float") or error_type == "finite_number":
            messages.append(f"Invalid {field} value. Must be a valid number.")
        else:
            messages.append(f"Invalid {field}: {error.get('msg')}")
    return "; ".join(messages) or "Invalid request"


def register_exception_handlers(app: FastAPI, development: bool):
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={
                "message": _validation_message(exc),
                "requestId": _request_id(request)
            }
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404 and exc.detail == "Not Found":
            message = f"Route {request.url.path} not found"
        else:
            message = str(exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content={"message": message, "requestId": _request_id(request)}
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error(
            f"[{_request_id(request)}] Unhandled error on {request.method} {request.url.path}: {exc}",
            exc_info=exc
        )
        body = {
            "message": "Internal server error",
            "requestId": _request_id(request)
        }
        if development:
            body["error"] = {"name": type(exc).__name__, "detail": str(exc)}
        return JSONResponse(status_code=500, content=body)
