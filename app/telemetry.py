"""
SpaceOps - Error Tracking

Thin wrapper over sentry-sdk. capture_exception() is fire-and-forget:
it never raises and is a no-op until init_telemetry() has been called
with a DSN.
"""
import logging
from typing import Dict, Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration

from .config import get_config

logger = logging.getLogger(__name__)

_initialized = False


def init_telemetry(dsn: Optional[str] = None) -> bool:
    """Initialize Sentry once. Returns True when a DSN was configured."""
    global _initialized
    dsn = dsn or get_config("sentry_dsn")
    if not dsn or _initialized:
        return _initialized
    sentry_sdk.init(dsn=dsn, integrations=[FastApiIntegration()])
    _initialized = True
    logger.info("[Telemetry] Sentry initialized")
    return True


def capture_exception(error: BaseException, context: Optional[Dict] = None):
    """Report an exception with tag context. Never breaks the caller."""
    try:
        tags = {k: str(v) for k, v in (context or {}).items()}
        sentry_sdk.capture_exception(error, tags=tags)
    except Exception as e:
        logger.debug(f"[Telemetry] capture skipped: {e}")
