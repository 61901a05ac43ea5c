"""
Core Service — Request Logging Middleware
===========================================

What:  One structured log record for every HTTP request.
How:   Collects caller address, target host, server-bound address, user agent,
       method and path, forwards the request, then logs with the response
       status and duration. The request is never blocked or modified.
When:  First stage of the chain (outermost after CORS).

Record fields (passed as logging `extra`):
    ip_address, host, server_addr, user_agent, method, path, status, duration_ms

Not logged: request bodies, Authorization headers, cookies.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from core.middleware.rate_limit import client_address

logger = logging.getLogger("core.access")


def _server_address(request: Request) -> str:
    server = request.scope.get("server")
    if not server:
        return "unknown"
    host, port = server[0], server[1]
    return f"{host}:{port}" if port is not None else str(host)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs request metadata and outcome.

    Level by status: 5xx → ERROR, 4xx → WARNING, otherwise INFO.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start_time = time.perf_counter()

        fields = {
            "ip_address": client_address(request) or "unknown",
            "host": request.headers.get("host", request.url.hostname or ""),
            "server_addr": _server_address(request),
            "user_agent": request.headers.get("user-agent", ""),
            "method": request.method,
            "path": request.url.path,
        }

        try:
            response = await call_next(request)
        except Exception:
            # Unhandled errors are answered by the outermost error handler
            self._log(fields, 500, start_time, exc_info=True)
            raise

        self._log(fields, response.status_code, start_time)
        return response

    @staticmethod
    def _log(fields: dict, status: int, start_time: float, exc_info: bool = False) -> None:
        duration_ms = (time.perf_counter() - start_time) * 1000
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        logger.log(
            log_level,
            "%s - %s (%s) %d %.1fms",
            fields["method"],
            fields["path"],
            fields["ip_address"],
            status,
            duration_ms,
            extra={**fields, "status": status, "duration_ms": round(duration_ms, 2)},
            exc_info=exc_info,
        )
