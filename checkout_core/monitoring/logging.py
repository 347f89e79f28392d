"""
Structured logging configuration.

Uses structlog for JSON-formatted logs tagged with the application
name, mode and environment.
"""
import logging
import sys
from typing import Any, Dict, Optional, TextIO

import structlog
from pythonjsonlogger import jsonlogger

from ..config.models import AppConfig

APP_NAME = "checkout-core"

_app_context: Dict[str, Any] = {"app_name": APP_NAME}


def add_app_context(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Add application context to log events.

    Args:
        logger: Logger instance
        method_name: Log method name
        event_dict: Event dictionary

    Returns:
        Dict[str, Any]: Enhanced event dictionary
    """
    for key, value in _app_context.items():
        event_dict.setdefault(key, value)
    return event_dict


def setup_logging(
    config: Optional[AppConfig] = None,
    log_level: Optional[str] = None,
    stream: Optional[TextIO] = None,
) -> None:
    """
    Configure structured logging with JSON formatter.

    Sets up:
    - JSON-formatted logs
    - Context variables (request ids) merged into every event
    - Application name, mode and environment on every event

    Args:
        config: Resolved configuration supplying mode, environment and level
        log_level: Level override, e.g. for the CLI
        stream: Handler stream, stdout by default
    """
    level = (log_level or (config.log_level if config else "INFO")).upper()

    _app_context.clear()
    _app_context["app_name"] = APP_NAME
    if config is not None:
        _app_context["mode"] = config.mode
        _app_context["app_env"] = config.app_env

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            add_app_context,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level, logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    json_handler = logging.StreamHandler(stream or sys.stdout)
    formatter = jsonlogger.JsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s",
        rename_fields={
            "timestamp": "@timestamp",
            "level": "level",
            "name": "logger",
            "message": "message",
        },
    )
    json_handler.setFormatter(formatter)
    root_logger.addHandler(json_handler)

    # Suppress noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("stripe").setLevel(logging.INFO)

    logger = structlog.get_logger(__name__)
    logger.info("logging_configured", log_level=level, **_app_context)
