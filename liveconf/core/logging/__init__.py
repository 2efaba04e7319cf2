"""Logging helpers."""

from liveconf.core.logging.structured import (
    StructuredFormatter,
    option_context,
    option_var,
    setup_from_settings,
    setup_structured_logging,
    source_context,
    source_var,
)

__all__ = [
    "StructuredFormatter",
    "option_context",
    "option_var",
    "setup_from_settings",
    "setup_structured_logging",
    "source_context",
    "source_var",
]
