"""
Core Service — Probe Route
============================

What:  GET /api/probe, an unauthenticated liveness check.
How:   Answers from process state only; no database or client calls.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request

from core.schemas.responses import ProbeResponse, RateLimitResponse, ServerStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Probe"])


@router.get(
    "/probe",
    response_model=ProbeResponse,
    responses={429: {"description": "Rate limit exceeded", "model": RateLimitResponse}},
    summary="Service liveness probe",
)
async def probe(request: Request) -> ProbeResponse:
    logger.info("probing backend server")
    return ProbeResponse(
        status=ServerStatus.HEALTHY,
        message="pong",
        environment=request.app.state.context.settings.env,
        timestamp=datetime.now(timezone.utc),
    )
