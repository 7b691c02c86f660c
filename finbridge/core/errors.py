"""
Service error taxonomy and the FastAPI handlers that render it.

Upstream Plaid errors are returned with Plaid's own status code and body.
Errors raised by this service carry a fixed error_code so callers can tell
"our failure" from "their API said no".
"""

from __future__ import annotations

from typing import Any, Dict

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from finbridge.plaid.errors import APIConnectionError, PlaidAPIError

logger = structlog.get_logger()


class ServiceError(Exception):
    """Base class for errors raised by the service itself."""

    status_code = 500
    error_code = "INTERNAL_ERROR"
    error_type = "INTERNAL"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": {
                "error_code": self.error_code,
                "error_message": str(self) or "An internal error occurred",
                "error_type": self.error_type,
            }
        }


class MissingCredentialError(ServiceError):
    """A required token or identifier has not been provided or stored yet."""

    status_code = 400
    error_code = "MISSING_CREDENTIAL"
    error_type = "INVALID_REQUEST"


class InvalidRequestError(ServiceError):
    """The request body could not be decoded."""

    status_code = 400
    error_code = "INVALID_REQUEST"
    error_type = "INVALID_REQUEST"


class StatementNotFoundError(ServiceError):
    """The item has no statements to download."""

    status_code = 404
    error_code = "STATEMENT_NOT_FOUND"
    error_type = "INVALID_REQUEST"


class ReportTimeoutError(ServiceError):
    """Report generation did not finish within the polling budget."""

    error_code = "REPORT_TIMEOUT"


class SyncTimeoutError(ServiceError):
    """Transaction sync exceeded its page or not-ready bound."""

    error_code = "SYNC_TIMEOUT"


def format_plaid_error(error: PlaidAPIError) -> Dict[str, Any]:
    return {"error": {**error.body, "status_code": error.status_code}}


def internal_error_body(message: str) -> Dict[str, Any]:
    return {
        "error": {
            "error_code": "INTERNAL_ERROR",
            "error_message": message or "An internal error occurred",
            "error_type": "INTERNAL",
        }
    }


async def plaid_error_handler(request: Request, exc: PlaidAPIError) -> JSONResponse:
    logger.error(
        "api.plaid_error",
        status=exc.status_code,
        error_code=exc.error_code,
        error_type=exc.error_type,
        error_message=exc.error_message,
    )
    return JSONResponse(status_code=exc.status_code, content=format_plaid_error(exc))


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    logger.error(
        "api.service_error",
        status=exc.status_code,
        error_code=exc.error_code,
        error=str(exc),
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def connection_error_handler(
    request: Request, exc: APIConnectionError
) -> JSONResponse:
    logger.error("api.upstream_unreachable", error=str(exc))
    return JSONResponse(status_code=502, content=internal_error_body(str(exc)))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    # Runs in the outermost middleware, after the request's log context is gone.
    request_id = getattr(request.state, "request_id", None)
    logger.error(
        "api.internal_error",
        request_id=request_id,
        session_id=getattr(request.state, "session_id", None),
        method=request.method,
        path=request.url.path,
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=exc,
    )
    response = JSONResponse(status_code=500, content=internal_error_body(str(exc)))
    if request_id:
        response.headers["x-request-id"] = request_id
    return response


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PlaidAPIError, plaid_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(ServiceError, service_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(APIConnectionError, connection_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_error_handler)
