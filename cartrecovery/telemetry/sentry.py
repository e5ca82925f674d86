"""
Sentry Error Tracking
=====================

Centralized error tracking for the analytics API.

Related files:
- cartrecovery/main.py: Initializes Sentry on app startup
- cartrecovery/routers/*.py: Tags events with the requesting tenant
- cartrecovery/analytics/orchestrator.py: Reports degraded sections

Environment Variables:
- SENTRY_DSN: Sentry project DSN (Sentry stays disabled without it)
- ENVIRONMENT: Environment name (production, staging, development)
"""

from __future__ import annotations

import logging
from typing import Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

logger = logging.getLogger(__name__)

_initialized = False


def init_sentry(dsn: Optional[str], environment: str = "development") -> bool:
    """
    Initialize Sentry SDK for FastAPI.

    Should be called once during application startup.

    Returns:
        True if Sentry was initialized, False when no DSN is configured
        or initialization failed.
    """
    global _initialized

    if not dsn:
        return False

    try:
        sentry_sdk.init(
            dsn=dsn,
            environment=environment,
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                SqlalchemyIntegration(),
                LoggingIntegration(
                    level=logging.INFO,        # INFO+ as breadcrumbs
                    event_level=logging.ERROR,  # ERROR+ as events
                ),
            ],
            traces_sample_rate=0.1,
            send_default_pii=False,
        )
    except Exception as e:
        logger.error(f"[SENTRY] Failed to initialize: {e}")
        return False

    _initialized = True
    logger.debug(f"[SENTRY] Initialized for {environment} environment")
    return True


def set_user_context(user_id: str) -> None:
    """Attach the tenant id to every event raised during this request."""
    if not _initialized:
        return
    sentry_sdk.set_user({"id": user_id})


def capture_exception(exception: BaseException, extra: Optional[dict] = None) -> None:
    """
    Manually capture an exception to Sentry.

    Use this for exceptions that are caught and handled (a degraded report
    section, for instance) but should still be tracked.

    Args:
        exception: The exception to capture
        extra: Additional context to attach to the event
    """
    if not _initialized:
        logger.error(f"Exception (Sentry disabled): {exception}")
        return

    with sentry_sdk.new_scope() as scope:
        for key, value in (extra or {}).items():
            scope.set_extra(key, value)
        sentry_sdk.capture_exception(exception)
