"""Structured JSON logging via structlog."""

from __future__ import annotations

import logging
import sys
import uuid

import structlog


def setup_logging(*, level: int = logging.INFO) -> None:
    """Configure structlog for JSON output. Call once at process startup."""

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.dev.ConsoleRenderer()
        if sys.stderr.isatty()
        else structlog.processors.JSONRenderer(),
        foreign_pre_chain=shared_processors,
    )

    # web3 and aiohttp log through stdlib; route them through the same formatter
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # web3's provider logger is chatty at DEBUG (every request body)
    logging.getLogger("web3.providers").setLevel(max(level, logging.INFO))


def bind_request_context(**extra: object) -> str:
    """Bind a fresh request id (plus extras) into structlog contextvars.

    Every log line emitted while handling one mint/redeem action carries the
    same ``request_id``.  Returns the id so it can be echoed in results.
    """
    request_id = uuid.uuid4().hex
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id, **extra)
    return request_id


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()
