"""
structlog setup and the per-request logging middleware.

Development gets colored console output; staging and production emit one
JSON object per line. Every log line written while a request is handled
carries its request id and credential session.
"""

from __future__ import annotations

import logging
import sys
import time
import uuid
from typing import Any, Dict

import structlog
from fastapi import Request

from finbridge.core.credentials import DEFAULT_SESSION_ID

REQUEST_ID_HEADER = "x-request-id"
SESSION_ID_HEADER = "x-session-id"

# Chatty third-party loggers that drown out upstream call logs at DEBUG.
QUIET_LOGGERS = ("httpx", "httpcore")


def _add_log_level(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    event_dict["level"] = method_name
    return event_dict


def configure_logging(env: str = "development", debug: bool = False) -> None:
    """Configure structlog: console renderer in development, JSON otherwise."""
    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        _add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=logging.DEBUG if debug else logging.INFO,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    renderer: Any
    if env == "development":
        renderer = structlog.dev.ConsoleRenderer(colors=True)
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[structlog.stdlib.filter_by_level, *shared_processors, renderer],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


async def request_id_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Bind request id and session to the log context and log each request's outcome."""
    started = time.perf_counter()
    request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
    session_id = request.headers.get(SESSION_ID_HEADER) or DEFAULT_SESSION_ID

    # The catch-all error handler runs outside this middleware and reads these back.
    request.state.request_id = request_id
    request.state.session_id = session_id

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        request_id=request_id,
        session_id=session_id,
        method=request.method,
        path=request.url.path,
    )
    log = structlog.get_logger("finbridge.http")

    response = None
    try:
        response = await call_next(request)
    finally:
        log.info(
            "http.request_completed",
            status=response.status_code if response else 500,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        structlog.contextvars.clear_contextvars()

    response.headers[REQUEST_ID_HEADER] = request_id
    return response
