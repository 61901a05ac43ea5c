"""
Core Service — Pydantic Response Schemas
==========================================

What:  The JSON shapes the API returns, including rejection bodies.
How:   Route handlers return these models; FastAPI serializes them and uses
       them for the OpenAPI document. Rejection bodies written by middleware
       follow ErrorResponse and RateLimitResponse.
"""

import enum
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ServerStatus(str, enum.Enum):
    HEALTHY = "HEALTHY"
    ERROR = "ERROR"


class ProbeResponse(BaseModel):
    """
    What:  Liveness answer for GET /api/probe.
    Who:   Load balancers, uptime checks, and developers poking the service.
    """
    status: ServerStatus = Field(description="HEALTHY when the process is serving")
    message: str = Field(default="pong", description="Always 'pong'")
    environment: str = Field(description="Deployment tier (CORE_ENV)")
    timestamp: datetime = Field(description="Server time (UTC)")


class SessionResponse(BaseModel):
    """The verified session of the caller, as seen by the server."""
    user_id: str = Field(description="Subject of the session token")
    session_id: Optional[str] = Field(default=None, description="Provider session id, if present")


class ErrorResponse(BaseModel):
    """
    Body of every handler-reported failure and every auth rejection.

    Example:
        {"error": "invalid price value: '12a-' is not a valid integer"}
    """
    error: str = Field(description="Human-readable error message")


class RateLimitResponse(BaseModel):
    """
    Body of a 429 rejection.

    Example:
        {
            "status": "Request Failed",
            "body": "The account is locked or disabled. Please wait 5 minutes and try again.",
            "locked": true,
            "timestamp": "2026-01-15T12:00:00+00:00"
        }
    """
    status: str
    body: str
    locked: bool
    timestamp: datetime
