"""
Observability and monitoring integrations.
structlog configuration for application logs, Sentry for error tracking.
"""

import logging
import sys

import structlog

from app.core.config import settings

logger = structlog.get_logger(__name__)

_sentry_initialized = False
_logging_configured = False


def configure_logging() -> None:
    """Configure structlog and the stdlib root logger once per process."""
    global _logging_configured

    if _logging_configured:
        return

    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    if settings.log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _logging_configured = True


def init_sentry() -> None:
    """Initialize Sentry error tracking."""
    global _sentry_initialized

    if _sentry_initialized or not settings.sentry_dsn:
        return

    try:
        import sentry_sdk
        from sentry_sdk.integrations.fastapi import FastApiIntegration
        from sentry_sdk.integrations.redis import RedisIntegration
        from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            environment=settings.sentry_environment,
            traces_sample_rate=settings.sentry_traces_sample_rate,
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                SqlalchemyIntegration(),
                RedisIntegration(),
            ],
            # Don't send PII
            send_default_pii=False,
        )

        _sentry_initialized = True
        logger.info(
            "Sentry initialized",
            environment=settings.sentry_environment,
            sample_rate=settings.sentry_traces_sample_rate,
        )
    except Exception as e:
        logger.error("Failed to initialize Sentry", error=str(e))


def capture_anomaly(message: str, **context) -> None:
    """
    Report a non-fatal anomaly (e.g. generation history not persisted).

    Logged always; forwarded to Sentry when it is configured.
    """
    logger.error(message, **context)
    if not _sentry_initialized:
        return
    import sentry_sdk

    sentry_sdk.capture_message(message, level="warning", extras=context)
