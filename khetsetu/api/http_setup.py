"""Perimeter of the auth backend: CORS, body limits, correlation ids and
the ``success: false`` rendering of every failure."""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from khetsetu.api.contracts import ApiErrorResponse, FieldErrorItem
from khetsetu.api.errors import ApiErrorCode, to_error_payload
from khetsetu.core.config import ServerConfig
from khetsetu.core.logging import set_correlation_id

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
}


def _log_context(request: Request, status_code: int) -> dict[str, Any]:
    return {"path": request.url.path, "method": request.method, "status_code": status_code}


def _error_response(
    status_code: int,
    error_code: ApiErrorCode,
    message: str,
    errors: list[FieldErrorItem] | None = None,
) -> JSONResponse:
    body = ApiErrorResponse(error=error_code, message=message, errors=errors)
    return JSONResponse(status_code=status_code, content=body.to_wire())


def _field_errors(exc: RequestValidationError) -> list[FieldErrorItem]:
    """Flatten pydantic errors into ``{msg, param}`` items keyed by body field."""
    items: list[FieldErrorItem] = []
    for error in exc.errors():
        param = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        message = str(error.get("msg") or "Invalid value").removeprefix("Value error, ")
        items.append(FieldErrorItem(msg=message, param=param))
    return items


def _declared_length(request: Request) -> int:
    try:
        return int(request.headers.get("content-length") or 0)
    except ValueError:
        return 0


def register_http_middleware(app: FastAPI, *, config: ServerConfig, logger: Any) -> None:
    """Attach CORS, request size limit and request logging to ``app``."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_size_limit_middleware(request: Request, call_next):
        if _declared_length(request) > config.request_max_bytes:
            logger.warning("Request body too large", extra=_log_context(request, 413))
            return _error_response(
                413,
                ApiErrorCode.REQUEST_TOO_LARGE,
                f"Request size exceeds configured limit ({config.request_max_bytes} bytes).",
            )
        return await call_next(request)

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        correlation_id = (
            request.headers.get("x-request-id")
            or request.headers.get("x-correlation-id")
            or uuid.uuid4().hex
        )
        set_correlation_id(correlation_id)
        response = await call_next(request)
        response.headers["X-Request-ID"] = correlation_id
        response.headers.update(SECURITY_HEADERS)
        logger.info("Request handled", extra=_log_context(request, response.status_code))
        return response


def register_exception_handlers(app: FastAPI, *, logger: Any) -> None:
    @app.exception_handler(HTTPException)
    async def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
        logger.warning("Request rejected", extra=_log_context(request, exc.status_code))
        return JSONResponse(
            status_code=exc.status_code,
            content=to_error_payload(exc.detail, exc.status_code),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_exception(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        logger.warning("Request validation failed", extra=_log_context(request, 400))
        return _error_response(
            400, ApiErrorCode.VALIDATION_ERROR, "Validation failed", _field_errors(exc)
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_exception(request: Request, exc: Exception) -> JSONResponse:
        # Internal details stay in the log; clients get a fixed message.
        logger.exception("Unhandled server error", extra=_log_context(request, 500))
        return _error_response(500, ApiErrorCode.INTERNAL_SERVER_ERROR, "Internal server error")
