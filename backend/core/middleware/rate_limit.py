"""
Core Service — Rate Limiting Middleware
=========================================

What:  Admits or rejects each request by the caller's network address.
How:   Delegates the decision to the RateLimiter on AppContext (token bucket
       per address). Rejections never reach later stages.
When:  Second in the chain, right after request logging.

Responses produced here:
    500 {"error": "..."}                                  address missing or malformed
    429 {"status", "body", "locked", "timestamp"}         no token available
"""

import logging
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from core.exceptions import RateLimitExceededError
from core.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


def client_address(request: Request) -> Optional[str]:
    """Caller host from the transport address, or None when it cannot be extracted."""
    client = request.client
    if client is None:
        return None
    host = client.host
    if not isinstance(host, str) or not host.strip():
        return None
    return host


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Per-address token bucket admission.

    The limiter lock is released inside RateLimiter.allow() before
    call_next() runs, so slow handlers never block other clients.
    """

    def __init__(self, app: ASGIApp, limiter: RateLimiter):
        super().__init__(app)
        self.limiter = limiter

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        identity = client_address(request)
        if identity is None:
            logger.error("Cannot extract client address for %s %s", request.method, request.url.path)
            return JSONResponse(
                status_code=500,
                content={"error": "unable to determine client address"},
            )

        if not self.limiter.allow(identity):
            rejection = RateLimitExceededError(identity=identity)
            logger.warning("Rate limit exceeded for %s on %s", identity, request.url.path)
            return JSONResponse(status_code=429, content=rejection.to_payload())

        return await call_next(request)
