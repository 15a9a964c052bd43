"""Sentry error tracking integration.

Initializes Sentry SDK if SENTRY_DSN env variable is set.
Does nothing otherwise, so it is safe to call unconditionally.
"""

import logging

from app.core.config import settings
from app.core.logging import redact_secrets

logger = logging.getLogger(__name__)


def _scrub_event(event: dict, hint: dict) -> dict:
    """Strip provider API keys from messages and exception values."""
    message = event.get("logentry", {}).get("message")
    if message:
        event["logentry"]["message"] = redact_secrets(message)
    for exc in event.get("exception", {}).get("values", []):
        if exc.get("value"):
            exc["value"] = redact_secrets(exc["value"])
    return event


def init_sentry() -> None:
    """Initialize Sentry if SENTRY_DSN is configured."""
    if not settings.sentry_dsn:
        logger.debug("Sentry DSN not configured, skipping")
        return

    import sentry_sdk
    from sentry_sdk.integrations.celery import CeleryIntegration
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.app_env,
        traces_sample_rate=0.1 if settings.app_env == "production" else 1.0,
        send_default_pii=False,
        before_send=_scrub_event,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            CeleryIntegration(),
        ],
    )
    logger.info("Sentry initialized (env=%s)", settings.app_env)
