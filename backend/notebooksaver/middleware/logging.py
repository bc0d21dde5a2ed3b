"""
NotebookSaver Backend — Request Logging Middleware
====================================================

What:  One access-log line per request: method, path, status, duration,
       request ID, client address.
Why:   Shows at a glance which captures were slow and which failed, without
       uvicorn's access log (no request IDs, no durations).

Typical durations:
    - GET /api/handoff/queue:  a few ms (one store read)
    - POST /api/extract:       seconds (Gemini round trip or Tesseract run)

Privacy: request bodies (page photos, recognized text) are never logged.
Level:   5xx → ERROR, 4xx → WARNING, everything else → INFO.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from notebooksaver.middleware.request_id import request_id_var

logger = logging.getLogger("notebooksaver.access")

# Polled by supervisors; logging them drowns out real traffic
QUIET_PATHS = frozenset({"/health"})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in QUIET_PATHS:
            return await call_next(request)

        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000

        status = response.status_code
        if status >= 500:
            level = logging.ERROR
        elif status >= 400:
            level = logging.WARNING
        else:
            level = logging.INFO

        client_ip = request.client.host if request.client else "unknown"
        logger.log(
            level,
            "%s %s %d %.1fms [%s] from %s",
            request.method,
            path,
            status,
            duration_ms,
            request_id_var.get(""),
            client_ip,
        )
        return response
