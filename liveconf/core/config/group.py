"""Hierarchical option groups.

Groups form a tree keyed by dotted full names ("" is the root). Each group
owns its option slots and its child groups. A group created only as an
intermediate node of a deeper path is *auxiliary* until an option is
registered into it.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from liveconf.core.config.errors import (
    DuplicateOptError,
    FrozenOptError,
    NoOptError,
    OptParseError,
    ValidationError,
)
from liveconf.core.config.opt import Opt, OptSlot
from liveconf.core.config.proxy import OptProxy
from liveconf.core.config.structs import register_dataclass
from liveconf.core.config.validators import run_validator
from liveconf.core.config.values import ValueKind

if TYPE_CHECKING:
    from liveconf.core.config.manager import Config

logger = logging.getLogger(__name__)

_MISSING = object()


class OptGroup:
    """A node of the option namespace."""

    def __init__(self, config: "Config", full_name: str = ""):
        self._config = config
        self._full_name = full_name
        self._name = full_name.rsplit(config.separator, 1)[-1] if full_name else ""
        self._slots: Dict[str, OptSlot] = {}
        self._aliases: Dict[str, str] = {}
        self._children: Dict[str, OptGroup] = {}
        self._auxiliary = bool(full_name)

    def __repr__(self) -> str:
        return f"OptGroup({self._full_name!r}, opts={len(self._slots)}, auxiliary={self._auxiliary})"

    @property
    def config(self) -> "Config":
        return self._config

    @property
    def name(self) -> str:
        """The short name of the group; "" for the root."""
        return self._name

    @property
    def full_name(self) -> str:
        """The dotted path from the root; "" for the root."""
        return self._full_name

    @property
    def is_auxiliary(self) -> bool:
        """Whether the group only exists as an intermediate placeholder."""
        return self._auxiliary

    def opt_full_name(self, name: str) -> str:
        if not self._full_name:
            return name
        return f"{self._full_name}{self._config.separator}{name}"

    # ------------------------------------------------------------------
    # Tree

    def _split_path(self, path: str) -> List[str]:
        sep = self._config.separator
        path = path.strip()
        if path.startswith(sep):
            path = path[len(sep):]
        if path.endswith(sep):
            path = path[: -len(sep)]
        if not path:
            return []

        names = path.split(sep)
        if any(not name.strip() for name in names):
            raise ValueError(f"invalid group path {path!r}")
        return names

    def group(self, path: str) -> "OptGroup":
        """Return the descendant group at ``path``, creating missing levels."""
        names = self._split_path(path)
        with self._config._lock:
            node = self
            for name in names:
                child = node._children.get(name)
                if child is None:
                    child = OptGroup(self._config, node.opt_full_name(name))
                    node._children[name] = child
                    self._config._index_group(child)
                node = child
        return node

    def get_group(self, path: str) -> Optional["OptGroup"]:
        """Return the descendant group at ``path`` or None, never creating it."""
        try:
            names = self._split_path(path)
        except ValueError:
            return None

        with self._config._lock:
            node: Optional[OptGroup] = self
            for name in names:
                node = node._children.get(name)
                if node is None:
                    return None
        return node

    def has_group(self, name: str) -> bool:
        return self.get_group(name) is not None

    def groups(self) -> List["OptGroup"]:
        """Direct children sorted by name."""
        with self._config._lock:
            children = list(self._children.values())
        return sorted(children, key=lambda g: g.name)

    def all_groups(self) -> List["OptGroup"]:
        """This group and every descendant, sorted by full name."""
        result: List[OptGroup] = []
        stack = [self]
        with self._config._lock:
            while stack:
                node = stack.pop()
                result.append(node)
                stack.extend(node._children.values())
        return sorted(result, key=lambda g: g.full_name)

    # ------------------------------------------------------------------
    # Registration

    def fix_opt_name(self, name: str) -> str:
        """Canonicalize an option name: '-' equals '_' and aliases resolve."""
        name = name.replace("-", "_")
        with self._config._lock:
            return self._aliases.get(name, name)

    def _check_name(self, name: str) -> None:
        if not name or self._config.separator in name:
            raise ValueError(
                f"option name {name!r} must be non-empty and must not contain "
                f"the group separator {self._config.separator!r}"
            )

    def _remove_slot(self, name: str) -> Optional[OptSlot]:
        slot = self._slots.pop(name, None)
        if slot is not None:
            for alias in [a for a, target in self._aliases.items() if target == name]:
                del self._aliases[alias]
        return slot

    def register_opt(self, opt: Opt, force: bool = False) -> "OptGroup":
        """Register an option into this group.

        Raises DuplicateOptError if the name or an alias is already taken,
        unless ``force`` is given: the old option is then replaced and its
        current value discarded.
        """
        for name in opt.names():
            self._check_name(name)

        name = opt.name.replace("-", "_")
        aliases = [a.replace("-", "_") for a in opt.aliases]
        aliases = [a for a in aliases if a != name]

        with self._config._lock:
            for candidate in [name] + aliases:
                owner = candidate if candidate in self._slots else self._aliases.get(candidate)
                if owner is None:
                    continue
                if not force:
                    raise DuplicateOptError(self._full_name, candidate)
                self._remove_slot(owner)
                logger.debug(f"Replaced option '{owner}' in the group '{self._full_name}'")

            self._slots[name] = OptSlot.for_opt(opt)
            for alias in aliases:
                self._aliases[alias] = name
            self._auxiliary = False

        if self._config.debug:
            logger.debug(
                f"Registered option '{name}' into the group '{self._full_name}' (cli={opt.is_cli})"
            )
        return self

    def register_opts(self, *opts: Opt, force: bool = False) -> "OptGroup":
        for opt in opts:
            self.register_opt(opt, force=force)
        return self

    def new_proxy(self, opt: Opt, force: bool = False) -> OptProxy:
        """Register ``opt`` and return a live handle on it."""
        self.register_opt(opt, force=force)
        return OptProxy(self, opt.name)

    def register_dataclass(self, obj: Any, force: bool = False) -> "OptGroup":
        """Register one option per field of a dataclass or dataclass instance."""
        return register_dataclass(self, obj, force=force)

    def unregister_opts(self, *names: str) -> "OptGroup":
        """Remove options; unknown names are ignored."""
        with self._config._lock:
            for name in names:
                canonical = self._aliases.get(name.replace("-", "_"), name.replace("-", "_"))
                if self._remove_slot(canonical) is not None:
                    logger.debug(f"Unregistered option '{canonical}' from the group '{self._full_name}'")
        return self

    # ------------------------------------------------------------------
    # Lookup

    def _find_slot(self, name: str) -> Optional[OptSlot]:
        name = name.replace("-", "_")
        with self._config._lock:
            return self._slots.get(self._aliases.get(name, name))

    def slot(self, name: str) -> OptSlot:
        slot = self._find_slot(name)
        if slot is None:
            raise NoOptError(self._full_name, name)
        return slot

    def has_opt(self, name: str) -> bool:
        return self._find_slot(name) is not None

    def has_opt_and_is_not_set(self, name: str) -> bool:
        slot = self._find_slot(name)
        if slot is None:
            return False
        with slot.lock:
            return not slot.is_set

    def is_set(self, name: str) -> bool:
        return self.slot(name).read()[1]

    def opt(self, name: str) -> Optional[Opt]:
        slot = self._find_slot(name)
        return slot.opt if slot is not None else None

    def _slots_sorted(self) -> List[Tuple[str, OptSlot]]:
        with self._config._lock:
            items = list(self._slots.items())
        return sorted(items, key=lambda item: item[0])

    def all_opts(self) -> List[Opt]:
        return [slot.opt for _, slot in self._slots_sorted()]

    def cli_opts(self) -> List[Opt]:
        return [slot.opt for _, slot in self._slots_sorted() if slot.opt.is_cli]

    def not_cli_opts(self) -> List[Opt]:
        return [slot.opt for _, slot in self._slots_sorted() if not slot.opt.is_cli]

    def items(self) -> List[Tuple[Opt, Any, bool]]:
        """(opt, value, is_set) for every option, sorted by option name."""
        result = []
        for _, slot in self._slots_sorted():
            value, is_set = slot.read()
            result.append((slot.opt, value, is_set))
        return result

    # ------------------------------------------------------------------
    # Parse / set

    def _parse_slot(self, slot: OptSlot, value: Any) -> Any:
        opt = slot.opt
        try:
            parsed = opt.parse(value)
        except Exception as e:
            raise OptParseError(self._full_name, opt.name, value, e) from e

        for validator in opt.validators:
            reason = run_validator(validator, parsed)
            if reason is not None:
                raise ValidationError(self._full_name, opt.name, parsed, reason)
        return parsed

    def parse(self, name: str, value: Any) -> Any:
        """Parse and validate a raw value for an option without storing it."""
        return self._parse_slot(self.slot(name), value)

    def _store(self, slot: OptSlot, value: Any, skip_locked: bool = False) -> bool:
        with slot.lock:
            if slot.frozen:
                raise FrozenOptError(self._full_name, slot.opt.name)
            if skip_locked and slot.locked:
                return False
            old = slot.value
            slot.value = value
            slot.is_set = True

        self._config._option_changed(self, slot.opt, old, value)
        return True

    def set(self, name: str, value: Any) -> None:
        """Parse, validate and store a value, then fire the update callbacks.

        Raises NoOptError, OptParseError, ValidationError or FrozenOptError.
        """
        slot = self.slot(name)
        self._store(slot, self._parse_slot(slot, value))

    def merge_value(self, name: str, value: Any, skip_locked: bool = False) -> bool:
        """Parse, validate and store a value taken from a DataSet.

        With ``skip_locked`` an option owned by a live watcher is left
        untouched and False is returned. Raises like ``set``.
        """
        slot = self.slot(name)
        parsed = self._parse_slot(slot, value)
        stored = self._store(slot, parsed, skip_locked=skip_locked)
        if not stored:
            logger.debug(
                f"Skipped option '{slot.opt.name}' in the group '{self._full_name}': locked by a watcher"
            )
        return stored

    # ------------------------------------------------------------------
    # Freeze / lock

    def freeze(self, *names: str) -> None:
        """Reject further writes to the options until unfrozen."""
        for slot in [self.slot(name) for name in names]:
            with slot.lock:
                slot.frozen = True

    def unfreeze(self, *names: str) -> None:
        for slot in [self.slot(name) for name in names]:
            with slot.lock:
                slot.frozen = False

    def is_frozen(self, name: str) -> bool:
        slot = self.slot(name)
        with slot.lock:
            return slot.frozen

    def lock_opt(self, name: str) -> bool:
        """Mark the option as owned by a live watcher."""
        slot = self._find_slot(name)
        if slot is None:
            return False
        with slot.lock:
            slot.lock_count += 1
        return True

    def unlock_opt(self, name: str) -> bool:
        slot = self._find_slot(name)
        if slot is None:
            return False
        with slot.lock:
            if slot.lock_count > 0:
                slot.lock_count -= 1
        return True

    def is_locked(self, name: str) -> bool:
        slot = self.slot(name)
        with slot.lock:
            return slot.locked

    # ------------------------------------------------------------------
    # Get

    def get(self, name: str, default: Any = _MISSING) -> Any:
        """Return the current value of an option.

        With ``default`` given, it is returned for unknown options instead of
        raising NoOptError.
        """
        slot = self._find_slot(name)
        if slot is None:
            if default is _MISSING:
                raise NoOptError(self._full_name, name)
            return default
        return slot.read()[0]

    def must(self, name: str) -> Any:
        """Like get(), but raise ValueError if the option has no value."""
        value = self.get(name)
        if value is None:
            raise ValueError(f"the option '{name}' in the group '{self._full_name}' has no value")
        return value

    def _get_kind(self, name: str, kind: ValueKind) -> Any:
        slot = self.slot(name)
        if slot.opt.kind != kind:
            raise TypeError(
                f"the option '{name}' in the group '{self._full_name}' is "
                f"{slot.opt.kind.value}, not {kind.value}"
            )
        return self.must(name)

    def get_bool(self, name: str) -> bool:
        return self._get_kind(name, ValueKind.BOOL)

    def get_int(self, name: str) -> int:
        return self._get_kind(name, ValueKind.INT)

    def get_uint(self, name: str) -> int:
        return self._get_kind(name, ValueKind.UINT)

    def get_float(self, name: str) -> float:
        return self._get_kind(name, ValueKind.FLOAT)

    def get_str(self, name: str) -> str:
        return self._get_kind(name, ValueKind.STRING)

    def get_duration(self, name: str) -> timedelta:
        return self._get_kind(name, ValueKind.DURATION)

    def get_time(self, name: str) -> datetime:
        return self._get_kind(name, ValueKind.TIME)

    def get_bools(self, name: str) -> List[bool]:
        return self._get_kind(name, ValueKind.BOOLS)

    def get_ints(self, name: str) -> List[int]:
        return self._get_kind(name, ValueKind.INTS)

    def get_uints(self, name: str) -> List[int]:
        return self._get_kind(name, ValueKind.UINTS)

    def get_floats(self, name: str) -> List[float]:
        return self._get_kind(name, ValueKind.FLOATS)

    def get_strs(self, name: str) -> List[str]:
        return self._get_kind(name, ValueKind.STRINGS)

    def get_durations(self, name: str) -> List[timedelta]:
        return self._get_kind(name, ValueKind.DURATIONS)

    def get_times(self, name: str) -> List[datetime]:
        return self._get_kind(name, ValueKind.TIMES)

