"""
Sentry configuration for error tracking.

Used by both the API process and the ARQ worker.
"""
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from hookrelay.config import settings
from hookrelay.logging_config import logger


def configure_sentry():
    """
    Initialize Sentry with FastAPI and SQLAlchemy integrations.

    Does nothing unless SENTRY_DSN is set.
    """
    dsn = settings.SENTRY_DSN

    if not dsn:
        logger.info("sentry_disabled", reason="SENTRY_DSN not set")
        return

    sentry_sdk.init(
        dsn=dsn,
        integrations=[
            FastApiIntegration(),
            SqlalchemyIntegration(),
        ],
        before_send=scrub_event,
        traces_sample_rate=0.1,
        environment=settings.ENVIRONMENT,
        release=settings.APP_VERSION,
    )

    logger.info("sentry_initialized", environment=settings.ENVIRONMENT)


# Headers that carry provider signatures or bearer tokens
SENSITIVE_HEADERS = {
    "authorization",
    "stripe-signature",
    "svix-signature",
    "x-recall-signature",
    "verif-hash",
    "x-webhook-signature",
}


def scrub_event(event, hint):
    """Drop signature and auth headers from request data before sending."""
    headers = event.get("request", {}).get("headers")
    if isinstance(headers, dict):
        for name in list(headers):
            if name.lower() in SENSITIVE_HEADERS:
                headers[name] = "[Filtered]"
    return event


def capture_exception(exc_info=None):
    """
    Capture an exception to Sentry.

    Usage:
        try:
            ...
        except Exception:
            capture_exception()
            raise
    """
    if sentry_sdk.get_client().is_active():
        sentry_sdk.capture_exception(exc_info)
