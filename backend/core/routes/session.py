"""
Core Service — Session Route
==============================

What:  GET <auth prefix>/session returns the caller's verified session.
How:   AuthMiddleware has already verified the bearer token and stored the
       Session on request.state; this handler only reads it.
"""

from fastapi import APIRouter, Depends, Request

from core.exceptions import AuthenticationError
from core.schemas.responses import ErrorResponse, SessionResponse
from core.services.auth import Session


def current_session(request: Request) -> Session:
    """FastAPI dependency: the Session attached by AuthMiddleware."""
    session = getattr(request.state, "session", None)
    if session is None:
        raise AuthenticationError("Unauthorized", reason="no_session_on_request")
    return session


def build_router(prefix: str) -> APIRouter:
    router = APIRouter(prefix=prefix, tags=["Session"])

    @router.get(
        "/session",
        response_model=SessionResponse,
        responses={401: {"description": "Missing or invalid session", "model": ErrorResponse}},
        summary="Current verified session",
    )
    async def get_session(session: Session = Depends(current_session)) -> SessionResponse:
        return SessionResponse(user_id=session.user_id, session_id=session.session_id)

    return router
