"""Structured logging configuration using structlog.

JSON lines in production, readable console output in development or when
LOG_FORMAT=text. Webhook credentials never reach a log line: fields that
look like secrets or signatures are masked by `redact_secrets`.
"""

import logging
import sys
from typing import Optional

import structlog

from app.config import Settings, get_settings

REDACTED = "***REDACTED***"

# Substrings of event keys whose values are masked
SENSITIVE_KEY_PARTS = ("secret", "signature", "authorization", "password", "token")

NOISY_LOGGERS = ("uvicorn.access", "redis", "httpx", "httpcore")


def redact_secrets(logger, method_name, event_dict):
    """structlog processor masking credential-like fields."""
    for key in list(event_dict):
        if key == "event":
            continue
        if any(part in key.lower() for part in SENSITIVE_KEY_PARTS):
            event_dict[key] = REDACTED
    return event_dict


def _app_context(settings: Settings):
    def add_app_context(logger, method_name, event_dict):
        event_dict.setdefault("app", settings.APP_NAME)
        event_dict.setdefault("environment", settings.ENVIRONMENT)
        return event_dict

    return add_app_context


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Configure structlog and route stdlib logging through it."""
    settings = settings or get_settings()

    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        _app_context(settings),
        redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.is_development or settings.LOG_FORMAT == "text":
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # uvicorn and redis log through stdlib; give them the same renderer
    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
