"""
Core Service — Bearer Session Authentication Middleware
=========================================================

What:  Guards every path under the authenticated prefix (CORE_AUTH_PREFIX).
How:   Requires `Authorization: Bearer <token>`, hands the token to the
       TokenVerifier and stores the resulting Session on request.state.session.
When:  After rate limiting, before monitoring and route dispatch. Paths outside
       the prefix pass straight through.

Rejections (401, verifier only called for well-formed headers):
    header absent                        → {"error": "Unauthorized"}
    not exactly "Bearer <token>"         → {"error": "Invalid authorization header"}
    verifier rejects the token           → {"error": "Invalid session"}
"""

import logging

from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from core.exceptions import AuthenticationError
from core.services.auth import TokenVerifier

logger = logging.getLogger(__name__)

BEARER_SCHEME = "Bearer"


def extract_bearer_token(header: str | None) -> str:
    """
    Returns the token from an Authorization header value.

    Raises AuthenticationError for an absent or malformed header.
    """
    if not header:
        raise AuthenticationError("Unauthorized", reason="missing_authorization_header")
    parts = header.split(" ")
    if len(parts) != 2 or parts[0] != BEARER_SCHEME or not parts[1]:
        raise AuthenticationError(
            "Invalid authorization header", reason="invalid_authorization_format"
        )
    return parts[1]


def is_protected(path: str, prefix: str) -> bool:
    if prefix == "/":
        return True
    return path == prefix or path.startswith(prefix + "/")


class AuthMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, verifier: TokenVerifier, prefix: str):
        super().__init__(app)
        self.verifier = verifier
        self.prefix = prefix

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if not is_protected(request.url.path, self.prefix):
            return await call_next(request)

        try:
            token = extract_bearer_token(request.headers.get("Authorization"))
            # Verifiers may do blocking work (key fetches, crypto)
            session = await run_in_threadpool(self.verifier.verify, token)
        except AuthenticationError as e:
            logger.info("Rejected %s %s: %s", request.method, request.url.path, e.reason or e.message)
            return JSONResponse(status_code=401, content={"error": e.message})

        request.state.session = session
        return await call_next(request)
