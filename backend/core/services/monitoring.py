"""
Core Service — Error Monitoring (Sentry)
==========================================

What:  Initializes Sentry and wraps the dispatcher with its ASGI middleware.
When:  Only outside the "local" deployment tier.
How:   sentry_sdk.init with tracing and profiling at CORE_SENTRY_SAMPLE_RATE.
       Automatic framework integrations are turned off so that the explicit
       SentryAsgiMiddleware is the single place requests are instrumented;
       its position in the middleware chain is set by create_app().
"""

import logging

import sentry_sdk
from sentry_sdk.integrations.asgi import SentryAsgiMiddleware

from core.config import Settings

logger = logging.getLogger(__name__)

FLUSH_TIMEOUT_SECONDS = 2.0

__all__ = ["SentryAsgiMiddleware", "flush_monitoring", "init_monitoring", "monitoring_enabled"]


def monitoring_enabled(settings: Settings) -> bool:
    return not settings.is_local


def init_monitoring(settings: Settings) -> bool:
    """
    Initializes the Sentry client for non-local environments.

    Returns True when the monitoring middleware should be installed. An
    initialization failure is logged and leaves monitoring disabled.
    """
    if not monitoring_enabled(settings):
        logger.info("Monitoring disabled in '%s' environment", settings.env)
        return False
    try:
        sentry_sdk.init(
            dsn=settings.sentry_dsn or None,
            traces_sample_rate=settings.sentry_sample_rate,
            profiles_sample_rate=settings.sentry_sample_rate,
            environment=settings.env,
            auto_enabling_integrations=False,
        )
    except Exception:
        logger.exception("error initializing sentry monitoring")
        return False
    logger.info("Sentry monitoring handler initialized")
    return True


def flush_monitoring() -> None:
    """Sends buffered events before the process exits."""
    sentry_sdk.flush(timeout=FLUSH_TIMEOUT_SECONDS)
