"""Structured logging configuration.

Features:
- JSON formatted logs for aggregation
- Source / option context while a DataSet is being merged
- Error tracking
"""

from __future__ import annotations

import json
import logging
import sys
import traceback
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional, Union

# Context variables for merge tracking
source_var: ContextVar[Optional[str]] = ContextVar("config_source", default=None)
option_var: ContextVar[Optional[str]] = ContextVar("config_option", default=None)


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(
        self,
        service_name: str = "liveconf",
        include_stack_trace: bool = True,
    ):
        super().__init__()
        self.service_name = service_name
        self.include_stack_trace = include_stack_trace

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
        }

        log_entry["location"] = {
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName,
        }

        # Add context variables
        if source := source_var.get():
            log_entry["config_source"] = source
        if option := option_var.get():
            log_entry["config_option"] = option

        if hasattr(record, "extra_fields"):
            log_entry["extra"] = record.extra_fields

        if record.exc_info and self.include_stack_trace:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "stacktrace": traceback.format_exception(*record.exc_info),
            }

        return json.dumps(log_entry, default=str)


def setup_structured_logging(
    service_name: str = "liveconf",
    level: Union[int, str] = logging.INFO,
    json_output: bool = True,
) -> None:
    """Configure structured logging for the application."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)

    if json_output:
        formatter: logging.Formatter = StructuredFormatter(service_name=service_name)
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)


def setup_from_settings(service_name: str = "liveconf") -> None:
    """Configure logging from LIVECONF_LOG_LEVEL / LIVECONF_LOG_JSON."""
    from liveconf.core.config.settings import get_settings

    settings = get_settings()
    level = "DEBUG" if settings.debug else settings.log_level
    setup_structured_logging(service_name, level=level, json_output=settings.log_json)


@contextmanager
def source_context(source: str) -> Iterator[None]:
    """Tag every record emitted inside the block with the originating source."""
    token = source_var.set(source)
    try:
        yield
    finally:
        source_var.reset(token)


@contextmanager
def option_context(option: str) -> Iterator[None]:
    """Tag every record emitted inside the block with the option being applied."""
    token = option_var.set(option)
    try:
        yield
    finally:
        option_var.reset(token)
