"""
NoteTaker Backend - Access Logging Middleware
=============================================

What:  One access log line per HTTP request, plus an X-Response-Time header.
How:   Times everything below this middleware. The line goes to the
       "notetaker.access" logger at a level picked from the status class.
Who:   Applied to every request, inside RequestIDMiddleware.

Line format:
    [<request id>] PATCH /api/v1/notes/<id> -> 200 in 12.3ms (1042 bytes)

Request bodies are never logged: they carry note content and file bytes.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from notetaker.middleware.request_id import request_id_var

access_logger = logging.getLogger("notetaker.access")

# Probed every few seconds by orchestrators
_UNLOGGED_PATHS = frozenset({"/health"})

RESPONSE_TIME_HEADER = "X-Response-Time"


def _level_for(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Access log line and X-Response-Time for every non-probe request."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in _UNLOGGED_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        response.headers[RESPONSE_TIME_HEADER] = f"{elapsed_ms:.1f}ms"
        access_logger.log(
            _level_for(response.status_code),
            "[%s] %s %s -> %d in %.1fms (%s bytes)",
            request_id_var.get(""),
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            response.headers.get("content-length", "?"),
        )
        return response
