"""Structlog setup for the venue search service.

Every record, whether it comes from a ``structlog`` logger or a stdlib one
(httpx, uvicorn), passes through the same chain: request context from
``contextvars``, service fields, secret redaction and value clipping. The
final renderer is JSON in production and a console layout elsewhere.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

SERVICE_NAME = "venue-search"

REDACTED = "[REDACTED]"
REDACT_KEYS = frozenset({"api_key", "elasticsearch_api_key", "authorization", "password", "token"})
MAX_VALUE_CHARS = 500

_NOISY_LOGGERS: tuple[str, ...] = ("httpx", "httpcore", "uvicorn.access")


def redact_secrets(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    """Mask credential-bearing keys before anything is rendered."""
    for key in event_dict.keys() & REDACT_KEYS:
        event_dict[key] = REDACTED
    return event_dict


def clip_long_values(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    """Shorten oversized string values, such as a pasted query or a backend error body."""
    for key, value in event_dict.items():
        if key != "event" and isinstance(value, str) and len(value) > MAX_VALUE_CHARS:
            event_dict[key] = value[:MAX_VALUE_CHARS] + "..."
    return event_dict


def _service_fields(environment: str) -> Processor:
    def add_service(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", SERVICE_NAME)
        event_dict.setdefault("env", environment)
        return event_dict

    return add_service


def _renderer(environment: str) -> Processor:
    if environment == "production":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def configure_logging(environment: str, log_level: str = "INFO") -> None:
    """Route structlog and stdlib logging through one processor chain.

    Args:
        environment: ``"production"`` for JSON lines; anything else renders
                     for a terminal.
        log_level:   Level name such as ``"INFO"``; unknown names fall back
                     to ``INFO``.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    pre_chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        _service_fields(environment),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_secrets,
        clip_long_values,
    ]
    if environment == "production":
        pre_chain.append(structlog.processors.dict_tracebacks)
    else:
        pre_chain.append(structlog.processors.StackInfoRenderer())

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(environment),
            ],
        )
    )
    logging.basicConfig(handlers=[handler], level=level, force=True)

    # Per-request client chatter only shows when debugging.
    noisy_level = level if level <= logging.DEBUG and environment != "production" else logging.WARNING
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(noisy_level)


def bind_request_context(**fields: Any) -> None:  # noqa: ANN401
    """Attach *fields* to every log line emitted by the current request."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(**fields)
