"""
Logging Configuration for StoreLens

Structured logging via structlog on top of stdlib logging, so that uvicorn,
SQLAlchemy and httpx records share one renderer with our own events.
Shopify credentials never reach the output: ``redact_secrets`` masks them in
every event, including those from foreign loggers.
"""

import logging
import sys
from typing import Any, Dict, Optional, TextIO

import structlog
from structlog.processors import JSONRenderer, TimeStamper
from structlog.stdlib import add_log_level, ProcessorFormatter

from storelens.config.settings import Settings, get_settings

SECRET_KEYS = frozenset({
    "access_token",
    "shopify_access_token",
    "x-shopify-access-token",
    "webhook_secret",
    "password",
    "admin_api_token",
})
REDACTED = "***"

# Third-party loggers that are noisy at the application level
QUIET_LOGGERS = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "aiosqlite": logging.WARNING,
}


def redact_secrets(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Mask credential values, one level deep into dict-valued fields"""
    for key, value in list(event_dict.items()):
        if key.lower() in SECRET_KEYS and value:
            event_dict[key] = REDACTED
        elif isinstance(value, dict):
            event_dict[key] = {
                k: (REDACTED if isinstance(k, str) and k.lower() in SECRET_KEYS and v else v)
                for k, v in value.items()
            }
    return event_dict


def configure_logging(
    log_level: Optional[str] = None,
    settings: Optional[Settings] = None,
    stream: Optional[TextIO] = None,
) -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Override log level (DEBUG, INFO, WARNING, ERROR)
        settings: Settings to read format and levels from; defaults to the cached ones
        stream: Output stream; stdout unless given
    """
    settings = settings or get_settings()
    level = log_level or settings.monitoring.log_level
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        add_log_level,
        TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if settings.monitoring.log_format == "json":
        renderer = JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=stream is None)

    formatter = ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers = [handler]

    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logger = logging.getLogger(logger_name)
        logger.handlers = [handler]
        logger.propagate = False
        logger.setLevel(numeric_level)

    for logger_name, floor in QUIET_LOGGERS.items():
        logging.getLogger(logger_name).setLevel(max(numeric_level, floor))

    # SQL statements only when the engine is configured to echo them
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.database.echo else logging.WARNING
    )

    structlog.get_logger(__name__).info(
        "Logging configured",
        level=level,
        format=settings.monitoring.log_format,
        environment=settings.app_env,
    )
