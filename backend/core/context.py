"""
Core Service — Application Context
====================================

What:  The single object holding every long-lived collaborator: settings,
       database engine and session factory, token verifier, image store
       handle, rate limiter, and whether monitoring is active.
How:   build_context() constructs it once at startup (failing fast on
       configuration or connectivity problems); create_app() stores it on
       app.state.context where middleware, dependencies and routes read it.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from core.config import Settings
from core.database import (
    create_engine,
    create_session_factory,
    ensure_tables,
    verify_connection,
)
from core.services.auth import JWTSessionVerifier, TokenVerifier
from core.services.image_store import build_image_store
from core.services.monitoring import init_monitoring
from core.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    settings: Settings
    rate_limiter: RateLimiter
    verifier: Optional[TokenVerifier] = None
    engine: Optional[AsyncEngine] = None
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None
    image_store: Any = None
    monitoring: bool = False


async def build_context(settings: Settings) -> AppContext:
    """
    Startup sequence:
        1. Validate required settings            → ConfigurationError
        2. Connect to the database (SELECT 1)    → ConnectivityError
        3. Ensure registered tables exist
        4. Initialize monitoring (non-local only; failures logged)
        5. Build the token verifier and image store clients
        6. Create the rate limiter from settings
    """
    settings.validate_required()

    engine = create_engine(settings)
    try:
        await verify_connection(engine)
        await ensure_tables(engine)
        # Pooled connections are bound to this event loop; the server runs its own
        await engine.dispose()
        logger.info("core database initialized")

        monitoring = init_monitoring(settings)

        verifier = JWTSessionVerifier.from_settings(settings)
        logger.info("auth token verifier initialized")

        image_store = build_image_store(settings.cloudinary_key)
    except Exception:
        await engine.dispose()
        raise

    return AppContext(
        settings=settings,
        rate_limiter=RateLimiter.from_settings(settings),
        verifier=verifier,
        engine=engine,
        session_factory=create_session_factory(engine),
        image_store=image_store,
        monitoring=monitoring,
    )
