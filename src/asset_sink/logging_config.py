"""
Structured logging for the ``asset_sink`` package.

Loggers are structlog wrappers around stdlib loggers under the
``asset_sink`` namespace, so importing the package leaves the global
structlog configuration and the root logger alone. Until
``configure_logging()`` runs, records simply propagate to whatever
handlers the host application has installed.

``configure_logging()`` (called by ``Sink.from_settings``) attaches one
handler to the ``asset_sink`` logger:

- JSON output in production (APP_ENV=production)
- Colored console output in development

Usage::

    from asset_sink.logging_config import get_logger
    logger = get_logger(__name__)
    logger.info("file_saved", key="3f2a...9c.json", declared_type="json")
"""
import logging
import sys
from typing import Optional

import structlog

from asset_sink.config import Settings, settings

PACKAGE_LOGGER = "asset_sink"

_SHARED_PROCESSORS: list = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
]

_handler: Optional[logging.Handler] = None


def configure_logging(config: Settings = settings) -> logging.Handler:
    """Install (or replace) the package handler; safe to call repeatedly."""
    global _handler

    if config.app_env.lower() == "production":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    if _handler is not None:
        package_logger.removeHandler(_handler)
    package_logger.addHandler(handler)
    package_logger.setLevel(config.log_level.upper())
    package_logger.propagate = False
    _handler = handler
    return handler


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger for *name*."""
    return structlog.wrap_logger(
        logging.getLogger(name),
        processors=[
            *_SHARED_PROCESSORS,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
    )
