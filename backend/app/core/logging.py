"""structlog setup for FormGate.

One processor chain serves both structlog loggers and stdlib loggers
(uvicorn, SQLAlchemy, httpx) through ``ProcessorFormatter``. Production
renders JSON lines, debug mode a coloured console. Every entry gets the
request's correlation id, and secret-bearing values are blanked before any
renderer sees them.
"""

import logging
import logging.config
import re

import structlog
from asgi_correlation_id.context import correlation_id

REDACTED = "[redacted]"

# Keys whose values must never reach a log sink.
REDACTED_KEYS = frozenset({
    "api_key",
    "apikey",
    "auth_secret",
    "app_enc_key",
    "cookie",
    "password",
    "payload",
    "token",
})

# Backlog authenticates with ?apiKey=..., which can surface in URLs inside
# messages and tracebacks.
_API_KEY_IN_URL = re.compile(r"(?i)(apiKey=)[^&\s'\"]+")


def add_correlation_id(logger, method, event_dict):
    cid = correlation_id.get(None)
    if cid:
        event_dict["correlation_id"] = cid
    return event_dict


def redact_secrets(logger, method, event_dict):
    """Blank secret-bearing keys and any ``apiKey=`` query value in string fields."""
    for key, value in event_dict.items():
        if key.lower() in REDACTED_KEYS:
            event_dict[key] = REDACTED
        elif isinstance(value, str) and "apikey=" in value.lower():
            event_dict[key] = _API_KEY_IN_URL.sub(rf"\1{REDACTED}", value)
    return event_dict


def configure_structlog(log_level: str = "INFO", json_logs: bool = True) -> None:
    """Install the processor chain and the stdlib root handler.

    Must run before the first ``structlog.get_logger(...).info`` call in the
    process; app.main does it ahead of its other imports.
    """
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_correlation_id,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_logs:
        # JSON lines carry the traceback as a string, scrubbed like any other field
        shared_processors.append(structlog.processors.format_exc_info)
    shared_processors.append(redact_secrets)

    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "structured": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processors": [
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    renderer,
                ],
                "foreign_pre_chain": shared_processors,
            },
        },
        "handlers": {
            "stdout": {
                "class": "logging.StreamHandler",
                "formatter": "structured",
                "stream": "ext://sys.stdout",
            },
        },
        "root": {"handlers": ["stdout"], "level": log_level},
        "loggers": {
            "uvicorn.access": {"level": "WARNING"},
            # Request lines carry full URLs, Backlog's apiKey included
            "httpx": {"level": "WARNING"},
            "httpcore": {"level": "WARNING"},
        },
    })

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
