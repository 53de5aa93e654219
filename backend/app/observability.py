"""
Error tracking via Sentry.

Sentry is enabled only when SENTRY_DSN is set. Every method is a no-op until
init() succeeds, so call sites never need to check configuration.

Usage:
    from app.observability import error_tracker

    error_tracker.init()                      # once, at startup
    error_tracker.capture_error(exc, context={"path": "/v1/tests"})
"""
import logging
from datetime import date, datetime
from typing import Any, Dict, Optional
from uuid import UUID

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from app.core.config import settings

logger = logging.getLogger(__name__)


def _serialize_value(value: Any) -> Any:
    """Convert a context value to something JSON-compatible."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, dict):
        return {str(k): _serialize_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_serialize_value(item) for item in value]
    return str(value)


class ErrorTracker:
    """Thin wrapper around the Sentry SDK."""

    def __init__(self) -> None:
        self._initialized = False

    @property
    def enabled(self) -> bool:
        return self._initialized

    def init(
        self,
        dsn: Optional[str] = None,
        environment: Optional[str] = None,
        traces_sample_rate: Optional[float] = None,
    ) -> bool:
        """Initialize the Sentry SDK with FastAPI/Starlette integrations.

        Returns:
            True if Sentry was initialized, False if skipped (no DSN).
        """
        dsn = settings.SENTRY_DSN if dsn is None else dsn
        if not dsn:
            logger.debug("Sentry initialization skipped (DSN not configured)")
            return False

        sentry_sdk.init(
            dsn=dsn,
            environment=environment or settings.ENV,
            release=f"{settings.APP_NAME}@{settings.APP_VERSION}",
            traces_sample_rate=(
                settings.SENTRY_TRACES_SAMPLE_RATE
                if traces_sample_rate is None
                else traces_sample_rate
            ),
            integrations=[
                LoggingIntegration(level=None, event_level=None),
                FastApiIntegration(transaction_style="endpoint"),
                StarletteIntegration(transaction_style="endpoint"),
            ],
            send_default_pii=False,
        )
        self._initialized = True
        logger.info(f"Sentry initialized for environment {environment or settings.ENV}")
        return True

    def capture_error(
        self,
        exception: BaseException,
        *,
        context: Optional[Dict[str, Any]] = None,
        tags: Optional[Dict[str, str]] = None,
        level: str = "error",
    ) -> Optional[str]:
        """Capture an exception with additional context.

        Returns:
            Event ID if captured, None if Sentry is not initialized.
        """
        if not self._initialized:
            return None

        with sentry_sdk.new_scope() as scope:
            if context:
                scope.set_context("additional", _serialize_value(context))
            for key, value in (tags or {}).items():
                scope.set_tag(key, value)
            scope.level = level
            return sentry_sdk.capture_exception(exception)

    def flush(self, timeout: float = 2.0) -> None:
        if not self._initialized:
            return
        sentry_sdk.flush(timeout=timeout)


error_tracker = ErrorTracker()
