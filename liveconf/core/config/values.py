"""Option value kinds and coercion helpers.

Every option declares one ``ValueKind``; the helpers below turn arbitrary
input (already typed values, strings read from files or the environment,
lists) into the Python representation of that kind.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, List

from dateutil import parser as date_parser

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1
UINT64_MAX = 2**64 - 1

_TRUE_STRINGS = {"1", "t", "true", "on", "yes", "y"}
_FALSE_STRINGS = {"", "0", "f", "false", "off", "no", "n"}

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
    "d": 86400.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h|d)")
_LIST_SPLIT = re.compile(r"[\s,]+")


class ValueKind(Enum):
    """Kinds of option values."""

    BOOL = "bool"
    INT = "int"
    UINT = "uint"
    FLOAT = "float"
    STRING = "string"
    DURATION = "duration"
    TIME = "time"

    BOOLS = "bools"
    INTS = "ints"
    UINTS = "uints"
    FLOATS = "floats"
    STRINGS = "strings"
    DURATIONS = "durations"
    TIMES = "times"

    @property
    def is_list(self) -> bool:
        return self in _LIST_TO_SCALAR

    @property
    def scalar(self) -> "ValueKind":
        """The element kind for list kinds, the kind itself otherwise."""
        return _LIST_TO_SCALAR.get(self, self)


_LIST_TO_SCALAR = {
    ValueKind.BOOLS: ValueKind.BOOL,
    ValueKind.INTS: ValueKind.INT,
    ValueKind.UINTS: ValueKind.UINT,
    ValueKind.FLOATS: ValueKind.FLOAT,
    ValueKind.STRINGS: ValueKind.STRING,
    ValueKind.DURATIONS: ValueKind.DURATION,
    ValueKind.TIMES: ValueKind.TIME,
}


def _unsupported(value: Any, target: str) -> TypeError:
    return TypeError(f"unable to cast {value!r} of type {type(value).__name__} to {target}")


def to_bool(value: Any) -> bool:
    """Convert a value to bool."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if value in (0, 1):
            return bool(value)
        raise ValueError(f"invalid bool value {value!r}")
    if isinstance(value, bytes):
        value = value.decode("utf-8")
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
        raise ValueError(f"invalid bool value {value!r}")
    raise _unsupported(value, "bool")


def _parse_int_string(value: str) -> int:
    text = value.strip().replace("_", "")
    try:
        return int(text, 0)
    except ValueError:
        # int("010", 0) is rejected by Python; accept it as decimal.
        return int(text, 10)


def to_int(value: Any) -> int:
    """Convert a value to a signed 64-bit integer."""
    if isinstance(value, bool):
        result = int(value)
    elif isinstance(value, int):
        result = value
    elif isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"{value!r} is not an integral number")
        result = int(value)
    elif isinstance(value, (str, bytes)):
        text = value.decode("utf-8") if isinstance(value, bytes) else value
        result = _parse_int_string(text)
    else:
        raise _unsupported(value, "int")

    if not INT64_MIN <= result <= INT64_MAX:
        raise ValueError(f"{result} is out of the int64 range")
    return result


def to_uint(value: Any) -> int:
    """Convert a value to an unsigned 64-bit integer."""
    if isinstance(value, bool):
        result = int(value)
    elif isinstance(value, int):
        result = value
    elif isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"{value!r} is not an integral number")
        result = int(value)
    elif isinstance(value, (str, bytes)):
        text = value.decode("utf-8") if isinstance(value, bytes) else value
        result = _parse_int_string(text)
    else:
        raise _unsupported(value, "uint")

    if not 0 <= result <= UINT64_MAX:
        raise ValueError(f"{result} is out of the uint64 range")
    return result


def to_float(value: Any) -> float:
    """Convert a value to float."""
    if isinstance(value, (bool, int, float)):
        return float(value)
    if isinstance(value, bytes):
        value = value.decode("utf-8")
    if isinstance(value, str):
        return float(value.strip())
    raise _unsupported(value, "float")


def format_duration(value: timedelta) -> str:
    """Render a timedelta as a duration string, such as ``1h30m0s``."""
    total_us = (value.days * 86400 + value.seconds) * 1_000_000 + value.microseconds
    if total_us == 0:
        return "0s"

    sign = "-" if total_us < 0 else ""
    total_us = abs(total_us)
    if total_us < 1_000_000:
        if total_us % 1000 == 0:
            return f"{sign}{total_us // 1000}ms"
        return f"{sign}{total_us}us"

    hours, rest = divmod(total_us, 3600 * 1_000_000)
    minutes, rest = divmod(rest, 60 * 1_000_000)
    seconds, micros = divmod(rest, 1_000_000)

    text = ""
    if hours:
        text += f"{hours}h"
    if hours or minutes:
        text += f"{minutes}m"
    if micros:
        text += f"{seconds}.{micros:06d}".rstrip("0") + "s"
    else:
        text += f"{seconds}s"
    return sign + text


def to_str(value: Any) -> str:
    """Convert a value to str."""
    if isinstance(value, str):
        return value
    if isinstance(value, bytes):
        return value.decode("utf-8")
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, timedelta):
        return format_duration(value)
    if isinstance(value, datetime):
        return value.isoformat()
    raise _unsupported(value, "string")


def _parse_duration_string(value: str) -> timedelta:
    text = value.strip()
    if not text:
        raise ValueError("empty duration")

    sign = 1.0
    if text[0] in "+-":
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]

    try:
        return timedelta(seconds=sign * float(text))
    except ValueError:
        pass

    pos = 0
    seconds = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()

    if pos == 0 or pos != len(text):
        raise ValueError(f"invalid duration {value!r}")
    return timedelta(seconds=sign * seconds)


def to_duration(value: Any) -> timedelta:
    """Convert a value to timedelta; plain numbers are seconds."""
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise _unsupported(value, "duration")
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)
    if isinstance(value, bytes):
        value = value.decode("utf-8")
    if isinstance(value, str):
        return _parse_duration_string(value)
    raise _unsupported(value, "duration")


def to_time(value: Any) -> datetime:
    """Convert a value to datetime; plain numbers are UNIX seconds in UTC."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, bool):
        raise _unsupported(value, "time")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, bytes):
        value = value.decode("utf-8")
    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("empty time")
        try:
            return date_parser.isoparse(text)
        except ValueError:
            return date_parser.parse(text)
    raise _unsupported(value, "time")


def split_list(value: str) -> List[str]:
    """Split a string on commas and whitespace, dropping empty items."""
    return [item for item in _LIST_SPLIT.split(value.strip()) if item]


def to_list(value: Any, convert: Callable[[Any], Any]) -> List[Any]:
    """Convert a value to a homogeneous list using ``convert`` per item."""
    if isinstance(value, bytes):
        value = value.decode("utf-8")
    if isinstance(value, str):
        items: List[Any] = split_list(value)
    elif isinstance(value, (list, tuple, set, frozenset)):
        items = list(value)
    else:
        raise _unsupported(value, "list")
    return [convert(item) for item in items]


SCALAR_CONVERTERS: Dict[ValueKind, Callable[[Any], Any]] = {
    ValueKind.BOOL: to_bool,
    ValueKind.INT: to_int,
    ValueKind.UINT: to_uint,
    ValueKind.FLOAT: to_float,
    ValueKind.STRING: to_str,
    ValueKind.DURATION: to_duration,
    ValueKind.TIME: to_time,
}

_ZERO_VALUES: Dict[ValueKind, Callable[[], Any]] = {
    ValueKind.BOOL: lambda: False,
    ValueKind.INT: lambda: 0,
    ValueKind.UINT: lambda: 0,
    ValueKind.FLOAT: lambda: 0.0,
    ValueKind.STRING: lambda: "",
    ValueKind.DURATION: timedelta,
    ValueKind.TIME: lambda: datetime.fromtimestamp(0, tz=timezone.utc),
}


def coerce(value: Any, kind: ValueKind) -> Any:
    """Convert ``value`` to the representation of ``kind``."""
    if kind.is_list:
        return to_list(value, SCALAR_CONVERTERS[kind.scalar])
    return SCALAR_CONVERTERS[kind](value)


def zero_value(kind: ValueKind) -> Any:
    """The zero value of a kind; list kinds get an empty list."""
    if kind.is_list:
        return []
    return _ZERO_VALUES[kind]()


def is_kind(value: Any, kind: ValueKind) -> bool:
    """Report whether ``value`` already is a valid value of ``kind``.

    Integers must also fit the 64-bit range of the kind.
    """
    if kind.is_list:
        return isinstance(value, list) and all(is_kind(v, kind.scalar) for v in value)
    if kind == ValueKind.BOOL:
        return isinstance(value, bool)
    if kind in (ValueKind.INT, ValueKind.UINT):
        if not isinstance(value, int) or isinstance(value, bool):
            return False
        if kind == ValueKind.INT:
            return INT64_MIN <= value <= INT64_MAX
        return 0 <= value <= UINT64_MAX
    if kind == ValueKind.FLOAT:
        return isinstance(value, float)
    if kind == ValueKind.STRING:
        return isinstance(value, str)
    if kind == ValueKind.DURATION:
        return isinstance(value, timedelta)
    return isinstance(value, datetime)
