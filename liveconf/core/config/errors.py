"""Configuration error taxonomy.

All errors raised by the option registry and the merge pipeline derive from
``ConfigError`` so callers can catch them generically.
"""

from __future__ import annotations

from typing import Any, Optional


class ConfigError(Exception):
    """Base class for configuration errors."""


class DuplicateOptError(ConfigError):
    """An option name or alias is already registered in the group."""

    def __init__(self, group: str, name: str):
        self.group = group
        self.name = name
        super().__init__(f"option '{name}' has been registered into the group '{group}'")


class NoOptError(ConfigError, KeyError):
    """The group has no option with the given name."""

    def __init__(self, group: str, name: str):
        self.group = group
        self.name = name
        super().__init__(f"the group '{group}' has no option '{name}'")

    def __str__(self) -> str:
        return self.args[0]


class FrozenOptError(ConfigError):
    """A write was attempted on a frozen option."""

    def __init__(self, group: str, name: str):
        self.group = group
        self.name = name
        super().__init__(f"option '{name}' in the group '{group}' is frozen")


class OptParseError(ConfigError, ValueError):
    """A raw value could not be converted to the option's kind."""

    def __init__(self, group: str, name: str, value: Any, cause: Exception):
        self.group = group
        self.name = name
        self.value = value
        self.cause = cause
        super().__init__(
            f"cannot parse {value!r} for option '{name}' in the group '{group}': {cause}"
        )


class ValidationError(ConfigError, ValueError):
    """A parsed value was rejected by one of the option's validators."""

    def __init__(self, group: str, name: str, value: Any, reason: str):
        self.group = group
        self.name = name
        self.value = value
        self.reason = reason
        super().__init__(
            f"invalid value {value!r} for option '{name}' in the group '{group}': {reason}"
        )


class NoDecoderError(ConfigError):
    """No decoder is registered for a data format."""

    def __init__(self, format: str):
        self.format = format
        super().__init__(f"no decoder for the format '{format}'")


class SourceError(ConfigError):
    """A source failed to read, watch or decode its data."""

    def __init__(
        self,
        source: str,
        format: str = "",
        data: Optional[bytes] = None,
        cause: Optional[BaseException] = None,
    ):
        self.source = source
        self.format = format
        self.data = data
        self.cause = cause
        super().__init__(f"source[{source}]: {cause}")


BENIGN_ERRORS = (NoOptError, FrozenOptError)
