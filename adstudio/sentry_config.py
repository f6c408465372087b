"""
Sentry configuration for error tracking.

Captures unhandled exceptions and failed refunds with user context.
"""
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from adstudio.config import settings
from adstudio.logging_config import logger


def configure_sentry():
    """
    Initialize Sentry with FastAPI and SQLAlchemy integrations.

    Requires SENTRY_DSN to be set.
    """
    dsn = settings.SENTRY_DSN

    if not dsn:
        logger.warning("sentry_disabled", reason="SENTRY_DSN not set")
        return

    sentry_sdk.init(
        dsn=dsn,
        integrations=[
            FastApiIntegration(),
            SqlalchemyIntegration(),
        ],
        before_send=add_context,
        # Sample rate: capture 10% of transactions for performance monitoring
        traces_sample_rate=0.1,
        environment=settings.ENVIRONMENT,
        release=settings.APP_VERSION,
    )

    logger.info("sentry_initialized", environment=settings.ENVIRONMENT)


def add_context(event, hint):
    """Tag credit-related errors so refunds can be searched for."""
    exc_info = hint.get("exc_info") if hint else None
    if exc_info:
        exc = exc_info[1]
        ref_id = getattr(exc, "ref_id", None)
        if ref_id:
            event.setdefault("tags", {})["ref_id"] = ref_id
    return event


def capture_exception(error=None, **tags):
    """
    Capture an exception to Sentry.

    Usage:
        try:
            # some code
        except Exception as e:
            capture_exception(e, ref_id=ref_id)
    """
    if not sentry_sdk.get_client().is_active():
        return
    with sentry_sdk.new_scope() as scope:
        for key, value in tags.items():
            scope.set_tag(key, value)
        sentry_sdk.capture_exception(error)


def set_user(user_id: str, email: str | None = None):
    if sentry_sdk.get_client().is_active():
        sentry_sdk.set_user({"id": user_id, "email": email})
