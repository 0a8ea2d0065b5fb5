"""
Pilbum Backend — Access Log Middleware
========================================

What:  Writes one line per API request: method, path, status, timing, caller.
How:   The record's level tracks the status class, and the same values are
       attached as `extra` so a JSON formatter can index them.

Request bodies (passwords, image bytes) and cookies are never logged.
/health probes and /uploads/* reads are not logged at all; a gallery page
fetches dozens of thumbnails per view.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from pilbum.middleware.rate_limit import client_ip
from pilbum.middleware.request_id import request_id_var

logger = logging.getLogger("pilbum.access")

UNLOGGED_PATHS = frozenset({"/health"})
UNLOGGED_PREFIXES = ("/uploads/",)


def level_for_status(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


def is_unlogged(path: str) -> bool:
    return path in UNLOGGED_PATHS or path.startswith(UNLOGGED_PREFIXES)


class RequestLoggingMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if is_unlogged(request.url.path):
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)

        fields = {
            "request_id": request_id_var.get(""),
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "duration_ms": elapsed_ms,
            "client_ip": client_ip(request),
        }
        logger.log(
            level_for_status(response.status_code),
            "%(method)s %(path)s -> %(status)d in %(duration_ms).1fms [%(request_id)s] %(client_ip)s",
            fields,
            extra=fields,
        )
        return response
