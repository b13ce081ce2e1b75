"""Structured event logging.

Pipeline code logs snake_case event names with keyword fields, e.g.
``log.info("page_render_start", url=url)``. Rendering (JSON for servers,
console for local runs) is decided once by ``configure_logging``.
"""
from __future__ import annotations

import logging
import os
import uuid
from typing import Any, Optional, TextIO

import structlog

from config import SERVICE_NAME, SERVICE_VERSION


def _add_service_fields(_logger: Any, _method: str, event_dict: dict) -> dict:
    event_dict.setdefault("service", SERVICE_NAME)
    event_dict.setdefault("version", SERVICE_VERSION)
    return event_dict


def configure_logging(json_output: bool = True, level: Optional[str] = None, stream: Optional[TextIO] = None) -> None:
    level_name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    level_no = logging.getLevelName(level_name)
    if not isinstance(level_no, int):
        level_no = logging.INFO

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _add_service_fields,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level_no),
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=False,
    )


def new_correlation_id() -> str:
    return str(uuid.uuid4())


def get_logger(correlation_id: Optional[str] = None, **context: Any) -> Any:
    """Return a logger bound to a correlation id (a fresh one when not given)."""
    return structlog.get_logger("a11y").bind(correlation_id=correlation_id or new_correlation_id(), **context)
