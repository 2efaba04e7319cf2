"""Option descriptors and their runtime slots.

``Opt`` is an immutable record describing one configurable value. The
``with_*`` builders return a new record instead of mutating the receiver, so
one descriptor can be registered into several groups safely.

``OptSlot`` is the mutable cell owned by exactly one ``OptGroup``.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Optional, Tuple

from liveconf.core.config.validators import Validator
from liveconf.core.config.values import ValueKind, coerce, is_kind, zero_value

UpdateCallback = Callable[[Any, Any], None]
Parser = Callable[[Any], Any]


@dataclass(frozen=True)
class Opt:
    """Descriptor of one configurable value."""

    name: str
    kind: ValueKind
    default: Any = None
    help: str = ""
    short: str = ""
    aliases: Tuple[str, ...] = ()
    validators: Tuple[Validator, ...] = ()
    is_cli: bool = False
    on_update: Optional[UpdateCallback] = None
    parser: Optional[Parser] = None

    def __post_init__(self) -> None:
        if not self.name or self.name.strip() != self.name:
            raise ValueError(f"invalid option name {self.name!r}")
        object.__setattr__(self, "aliases", tuple(self.aliases))
        object.__setattr__(self, "validators", tuple(self.validators))
        if self.default is not None:
            try:
                default = self.parse(self.default)
            except Exception as e:
                raise ValueError(
                    f"invalid default {self.default!r} for option '{self.name}': {e}"
                ) from e
            object.__setattr__(self, "default", default)

    def parse(self, value: Any) -> Any:
        """Convert a raw value to this option's kind, without validation."""
        if self.parser is not None:
            return self.parser(value)
        if is_kind(value, self.kind):
            return list(value) if self.kind.is_list else value
        return coerce(value, self.kind)

    def zero(self) -> Any:
        """The zero value of this option's kind."""
        return zero_value(self.kind)

    def names(self) -> Tuple[str, ...]:
        """The name followed by every alias."""
        return (self.name,) + self.aliases

    # Builders. Each returns a new Opt.

    def with_default(self, default: Any) -> "Opt":
        return replace(self, default=default)

    def with_help(self, help: str) -> "Opt":
        return replace(self, help=help)

    def with_short(self, short: str) -> "Opt":
        return replace(self, short=short)

    def with_aliases(self, *aliases: str) -> "Opt":
        return replace(self, aliases=tuple(aliases))

    def with_validators(self, *validators: Validator) -> "Opt":
        """Replace the validator chain."""
        return replace(self, validators=tuple(validators))

    def add_validators(self, *validators: Validator) -> "Opt":
        """Append validators to the existing chain."""
        return replace(self, validators=self.validators + tuple(validators))

    def as_cli(self, is_cli: bool = True) -> "Opt":
        return replace(self, is_cli=is_cli)

    def with_on_update(self, callback: Optional[UpdateCallback]) -> "Opt":
        return replace(self, on_update=callback)

    def with_parser(self, parser: Optional[Parser]) -> "Opt":
        return replace(self, parser=parser)


@dataclass
class OptSlot:
    """Runtime state of a registered option."""

    opt: Opt
    value: Any = None
    is_set: bool = False
    frozen: bool = False
    lock_count: int = 0
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @classmethod
    def for_opt(cls, opt: Opt) -> "OptSlot":
        return cls(opt=opt, value=opt.default)

    @property
    def locked(self) -> bool:
        return self.lock_count > 0

    def read(self) -> Tuple[Any, bool]:
        """Return (value, is_set) as one consistent pair."""
        with self.lock:
            return self.value, self.is_set


def _factory(kind: ValueKind) -> Callable[..., Opt]:
    def new_opt(name: str, default: Any = None, help: str = "", **attrs: Any) -> Opt:
        return Opt(name=name, kind=kind, default=default, help=help, **attrs)

    new_opt.__name__ = f"{kind.value}_opt"
    new_opt.__doc__ = f"Create an option of kind {kind.name}."
    return new_opt


bool_opt = _factory(ValueKind.BOOL)
int_opt = _factory(ValueKind.INT)
uint_opt = _factory(ValueKind.UINT)
float_opt = _factory(ValueKind.FLOAT)
str_opt = _factory(ValueKind.STRING)
duration_opt = _factory(ValueKind.DURATION)
time_opt = _factory(ValueKind.TIME)

bools_opt = _factory(ValueKind.BOOLS)
ints_opt = _factory(ValueKind.INTS)
uints_opt = _factory(ValueKind.UINTS)
floats_opt = _factory(ValueKind.FLOATS)
strs_opt = _factory(ValueKind.STRINGS)
durations_opt = _factory(ValueKind.DURATIONS)
times_opt = _factory(ValueKind.TIMES)
