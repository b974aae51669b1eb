"""Sentry wiring for exceptions and security-relevant diagnostics.

Every helper is a no-op until ``init_error_reporting`` has been called with a
DSN, which keeps tests and local runs free of network traffic.
"""

import logging
from typing import Any, Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

logger = logging.getLogger(__name__)


def init_error_reporting(dsn: Optional[str], environment: str) -> bool:
    """Initialise Sentry when a DSN is configured. Returns True when enabled."""
    if not dsn:
        logger.info("Sentry DSN not configured; error reporting disabled")
        return False
    try:
        sentry_sdk.init(
            dsn=dsn,
            environment=environment,
            integrations=[
                FastApiIntegration(),
                LoggingIntegration(level=logging.INFO, event_level=None),
            ],
            traces_sample_rate=0.0,
            send_default_pii=False,
        )
    except Exception as exc:  # pragma: no cover - bad DSN at startup
        logger.error("Failed to initialize Sentry: %s", exc)
        return False
    logger.info("Sentry error tracking initialized (%s)", environment)
    return True


def report_exception(exc: BaseException, **extras: Any) -> None:
    sentry_sdk.capture_exception(exc, extras=extras, tags={"component": "stripe-webhook"})


def report_security_event(message: str, **extras: Any) -> None:
    sentry_sdk.capture_message(
        message,
        level="warning",
        extras=extras,
        tags={"component": "stripe-webhook", "security": "true"},
    )
