"""
Sentry Error Tracking
=====================

Centralized error reporting for the integration lifecycle.

Related files:
- metrionix/main.py: Initializes Sentry on app startup
- metrionix/services/sync_service.py: Reports failed syncs
- metrionix/services/webhooks/receiver.py: Reports failed re-sync enqueues

Environment Variables:
- SENTRY_DSN: Sentry project DSN (Sentry stays disabled when unset)
- ENVIRONMENT: Environment name (production, staging, development)
"""

from __future__ import annotations

import logging
import os
from typing import Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.redis import RedisIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

logger = logging.getLogger(__name__)

_initialized = False


def init_sentry(dsn: Optional[str], environment: str = "development") -> bool:
    """
    Initialize Sentry SDK for FastAPI.

    Returns:
        True if Sentry was initialized, False when no DSN is configured.
    """
    global _initialized
    if not dsn:
        logger.info("[SENTRY] SENTRY_DSN not set - error tracking disabled")
        return False

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            RedisIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        traces_sample_rate=0.1,
        send_default_pii=False,  # Never ship tokens or webhook bodies
        release=os.environ.get("RELEASE_VERSION"),
    )
    _initialized = True
    logger.debug(f"[SENTRY] Initialized for {environment} environment")
    return True


def set_agency_context(agency_id: str, user_id: Optional[str] = None) -> None:
    """Attach the authenticated agency to subsequent events of this request."""
    if not _initialized:
        return
    sentry_sdk.set_user({"id": user_id, "agency_id": agency_id})


def capture_exception(exception: Exception, extra: Optional[dict] = None) -> None:
    """
    Manually capture an exception to Sentry.

    Use this for exceptions that are handled (e.g. a failed sync surfaced
    to the caller) but should still be tracked.

    Example:
        except ExternalApiError as e:
            capture_exception(e, extra={"platform": "ga4", "account_id": account_id})
            raise
    """
    if not _initialized:
        logger.debug(f"Exception (Sentry disabled): {exception}")
        return

    with sentry_sdk.new_scope() as scope:
        for key, value in (extra or {}).items():
            scope.set_extra(key, value)
        sentry_sdk.capture_exception(exception)
