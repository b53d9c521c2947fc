"""Optional Sentry error tracking for the API and the worker."""

import logging

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from fixdesk.core.config import settings

logger = logging.getLogger(__name__)


def init_sentry() -> bool:
    """Initialize Sentry when SENTRY_DSN is set and we are not in dev/test."""
    if not settings.SENTRY_DSN or settings.is_dev:
        return False

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENV,
        release=settings.VERSION,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        send_default_pii=False,  # Tenant names and emails stay out of Sentry
    )
    logger.info("Sentry initialized for error tracking")
    return True


def capture_exception(exc: BaseException) -> None:
    """Report a handled exception; no-op when Sentry is not initialized."""
    sentry_sdk.capture_exception(exc)
