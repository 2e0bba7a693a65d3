# /eirybot/utils/logging.py

import logging
import sys
from typing import Optional

import structlog
from eirybot.config.settings import settings

# One logging pipeline for the service. structlog loggers (routes, session
# service) and stdlib loggers (db, catalog, uvicorn) share the processors
# below and are rendered by the same handler.

SHARED_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
    structlog.processors.UnicodeDecoder(),
]


def _renderer():
    if settings.environment == "development":
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def setup_logging(level: Optional[str] = None) -> None:
    """
    Configure structlog over the standard logging module.

    Args:
        level: Root log level name; defaults to `settings.log_level`
    """
    structlog.configure(
        processors=SHARED_PROCESSORS + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        processor=_renderer(),
        foreign_pre_chain=SHARED_PROCESSORS,
    ))

    root_logger = logging.getLogger()
    # Replace rather than stack handlers when the app is started more than once (tests, reload)
    root_logger.handlers = [handler]
    root_logger.setLevel((level or settings.log_level).upper())

    for name in settings.quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)
