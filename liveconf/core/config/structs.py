"""Register options from dataclass fields.

Each field becomes an option of the kind matching its annotation; nested
dataclass fields become subgroups. Per-field settings come from the field
metadata::

    @dataclass
    class Server:
        host: str = field(default="0.0.0.0", metadata={"help": "Bind address"})
        port: int = field(default=8080, metadata={"cli": True, "short": "p"})
        timeout: timedelta = timedelta(seconds=30)

    config.register_dataclass(Server, group="server")

Supported metadata keys: ``name`` (``"-"`` skips the field), ``group``
(rename a nested group), ``help``, ``short``, ``cli``, ``aliases`` and
``validators``. When an instance is registered, its current field values
become the defaults and every later update of an option is written back to
the matching attribute.
"""

from __future__ import annotations

import dataclasses
import logging
import types
import typing
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Dict, Optional

from liveconf.core.config.opt import Opt
from liveconf.core.config.values import ValueKind

if TYPE_CHECKING:
    from liveconf.core.config.group import OptGroup

logger = logging.getLogger(__name__)

_SCALAR_KINDS: Dict[type, ValueKind] = {
    bool: ValueKind.BOOL,
    int: ValueKind.INT,
    float: ValueKind.FLOAT,
    str: ValueKind.STRING,
    timedelta: ValueKind.DURATION,
    datetime: ValueKind.TIME,
}

_LIST_KINDS: Dict[ValueKind, ValueKind] = {
    ValueKind.BOOL: ValueKind.BOOLS,
    ValueKind.INT: ValueKind.INTS,
    ValueKind.FLOAT: ValueKind.FLOATS,
    ValueKind.STRING: ValueKind.STRINGS,
    ValueKind.DURATION: ValueKind.DURATIONS,
    ValueKind.TIME: ValueKind.TIMES,
}


def _unwrap_optional(annotation: Any) -> Any:
    if typing.get_origin(annotation) in (typing.Union, types.UnionType):
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def kind_for_annotation(annotation: Any) -> ValueKind:
    """Map a field annotation to an option kind.

    ``Optional[X]`` is treated as ``X``; ``List[X]`` and ``list[X]`` map to
    the list kind of ``X``. Raises TypeError for anything else.
    """
    annotation = _unwrap_optional(annotation)
    if typing.get_origin(annotation) is list:
        args = typing.get_args(annotation)
        scalar = _unwrap_optional(args[0]) if args else None
        if scalar in _SCALAR_KINDS:
            return _LIST_KINDS[_SCALAR_KINDS[scalar]]
    elif annotation in _SCALAR_KINDS:
        return _SCALAR_KINDS[annotation]
    raise TypeError(f"unsupported option type {annotation!r}")


def _field_default(f: dataclasses.Field, instance: Any) -> Any:
    if instance is not None:
        return getattr(instance, f.name)
    if f.default is not dataclasses.MISSING:
        return f.default
    if f.default_factory is not dataclasses.MISSING:
        return f.default_factory()
    return None


def _write_back(instance: Any, attr: str):
    def on_update(old: Any, new: Any) -> None:
        setattr(instance, attr, new)

    return on_update


def register_dataclass(group: "OptGroup", obj: Any, force: bool = False) -> "OptGroup":
    """Register the fields of the dataclass (or dataclass instance) ``obj``."""
    if not dataclasses.is_dataclass(obj):
        raise TypeError(f"{obj!r} is not a dataclass or a dataclass instance")

    cls = obj if isinstance(obj, type) else type(obj)
    instance: Optional[Any] = None if isinstance(obj, type) else obj
    if instance is not None and cls.__dataclass_params__.frozen:
        raise TypeError(f"cannot bind options to the frozen dataclass {cls.__name__}")

    hints = typing.get_type_hints(cls)
    for f in dataclasses.fields(cls):
        meta = f.metadata
        name = str(meta.get("name", f.name)).strip()
        if name == "-":
            continue

        annotation = _unwrap_optional(hints.get(f.name, f.type))
        if dataclasses.is_dataclass(annotation):
            subgroup = group.group(str(meta.get("group", name)).strip())
            child = getattr(instance, f.name) if instance is not None else annotation
            if child is None:
                child = annotation
            register_dataclass(subgroup, child, force=force)
            continue

        opt = Opt(
            name=name,
            kind=kind_for_annotation(annotation),
            default=_field_default(f, instance),
            help=meta.get("help", ""),
            short=meta.get("short", ""),
            aliases=tuple(meta.get("aliases", ())),
            validators=tuple(meta.get("validators", ())),
            is_cli=bool(meta.get("cli", False)),
            on_update=_write_back(instance, f.name) if instance is not None else None,
        )
        group.register_opt(opt, force=force)

    logger.debug(f"Registered the fields of {cls.__name__} into the group '{group.full_name}'")
    return group
