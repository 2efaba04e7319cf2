"""Option value validators.

A validator is any callable taking the parsed value. It rejects the value by
raising ``ValueError`` (or ``TypeError``) or by returning ``False``; any
other return value accepts it.
"""

from __future__ import annotations

import ipaddress
import re
from typing import Any, Callable, Iterable, Optional
from urllib.parse import urlparse

Validator = Callable[[Any], Optional[bool]]

_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_HOSTNAME = re.compile(r"^(?=.{1,253}$)([A-Za-z0-9]([A-Za-z0-9-]{0,61}[A-Za-z0-9])?)(\.[A-Za-z0-9]([A-Za-z0-9-]{0,61}[A-Za-z0-9])?)*$")


def run_validator(validator: Validator, value: Any) -> Optional[str]:
    """Run one validator and return the failure reason, or None if it passes."""
    try:
        result = validator(value)
    except Exception as e:
        return str(e) or type(e).__name__
    if result is False:
        name = getattr(validator, "__name__", type(validator).__name__)
        return f"rejected by validator '{name}'"
    return None


def min_value(min_val: float) -> Validator:
    """Validator for minimum value."""

    def check(value: Any) -> None:
        if value < min_val:
            raise ValueError(f"{value!r} is less than {min_val!r}")

    return check


def max_value(max_val: float) -> Validator:
    """Validator for maximum value."""

    def check(value: Any) -> None:
        if value > max_val:
            raise ValueError(f"{value!r} is greater than {max_val!r}")

    return check


def in_range(min_val: float, max_val: float) -> Validator:
    """Validator for value in the closed range [min_val, max_val]."""

    def check(value: Any) -> None:
        if not min_val <= value <= max_val:
            raise ValueError(f"{value!r} is not in the range [{min_val!r}, {max_val!r}]")

    return check


def port() -> Validator:
    """Validator for a TCP/UDP port number."""
    return in_range(1, 65535)


def str_len(min_len: int, max_len: int) -> Validator:
    """Validator for the length of a string."""

    def check(value: Any) -> None:
        if not min_len <= len(value) <= max_len:
            raise ValueError(
                f"the length of {value!r} is not in the range [{min_len}, {max_len}]"
            )

    return check


def not_empty() -> Validator:
    """Validator for non-empty values."""

    def check(value: Any) -> None:
        if not value:
            raise ValueError("the value must not be empty")

    return check


def one_of(choices: Iterable[Any]) -> Validator:
    """Validator for a value among a fixed set of choices."""
    allowed = list(choices)

    def check(value: Any) -> None:
        if value not in allowed:
            raise ValueError(f"{value!r} is not one of {allowed!r}")

    return check


def regex_match(pattern: str) -> Validator:
    """Validator for regex match."""
    compiled = re.compile(pattern)

    def check(value: Any) -> None:
        if not compiled.match(str(value)):
            raise ValueError(f"{value!r} does not match the pattern '{pattern}'")

    return check


def url() -> Validator:
    """Validator for an absolute URL with a scheme and a host."""

    def check(value: Any) -> None:
        parsed = urlparse(str(value))
        if not parsed.scheme or not parsed.netloc:
            raise ValueError(f"{value!r} is not a valid URL")

    return check


def ip() -> Validator:
    """Validator for an IPv4 or IPv6 address."""

    def check(value: Any) -> None:
        try:
            ipaddress.ip_address(str(value))
        except ValueError:
            raise ValueError(f"{value!r} is not a valid IP address") from None

    return check


def email() -> Validator:
    """Validator for an email address."""

    def check(value: Any) -> None:
        if not _EMAIL.match(str(value)):
            raise ValueError(f"{value!r} is not a valid email address")

    return check


def address() -> Validator:
    """Validator for a ``host:port`` address; the host may be empty or an IP."""

    def check(value: Any) -> None:
        text = str(value)
        host, sep, port_text = text.rpartition(":")
        if not sep or not port_text.isdigit() or not 0 < int(port_text) <= 65535:
            raise ValueError(f"{value!r} is not a valid address")

        if host.startswith("[") and host.endswith("]"):
            host = host[1:-1]
        if not host:
            return
        try:
            ipaddress.ip_address(host)
        except ValueError:
            if not _HOSTNAME.match(host):
                raise ValueError(f"{value!r} is not a valid address") from None

    return check


def maybe(validator: Validator) -> Validator:
    """Accept empty values, validate the rest with ``validator``."""

    def check(value: Any) -> Optional[bool]:
        if value in ("", None):
            return None
        return validator(value)

    return check


def any_of(*validators: Validator) -> Validator:
    """Accept the value if at least one validator accepts it."""

    def check(value: Any) -> None:
        reasons = []
        for validator in validators:
            reason = run_validator(validator, value)
            if reason is None:
                return
            reasons.append(reason)
        raise ValueError("; ".join(reasons))

    return check


def each(validator: Validator) -> Validator:
    """Apply ``validator`` to every item of a list value."""

    def check(value: Any) -> None:
        for item in value:
            reason = run_validator(validator, item)
            if reason is not None:
                raise ValueError(reason)

    return check
