"""Handles on registered options.

An ``OptProxy`` remembers where an option lives so callers can keep one
object around instead of repeating its dotted name. Every read goes to the
registry, so the proxy always reflects the latest reload.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Optional

from liveconf.core.config.opt import Opt

if TYPE_CHECKING:
    from liveconf.core.config.group import OptGroup


class OptProxy:
    """Live view of one registered option."""

    def __init__(self, group: "OptGroup", name: str):
        self._group = group
        self._name = group.fix_opt_name(name)

    def __repr__(self) -> str:
        return f"OptProxy({self.full_name!r})"

    @property
    def group(self) -> "OptGroup":
        return self._group

    @property
    def name(self) -> str:
        return self._name

    @property
    def full_name(self) -> str:
        return self._group.opt_full_name(self._name)

    @property
    def opt(self) -> Optional[Opt]:
        """The descriptor, or None once the option was unregistered."""
        return self._group.opt(self._name)

    def get(self) -> Any:
        return self._group.get(self._name)

    @property
    def value(self) -> Any:
        return self.get()

    def set(self, value: Any) -> None:
        """Parse, validate and store ``value``. Errors are raised, not handled."""
        self._group.set(self._name, value)

    def is_set(self) -> bool:
        return self._group.is_set(self._name)

    def on_update(self, callback: Callable[[Any, Any], None]) -> Callable[[str, str, Any, Any], None]:
        """Call ``callback(old, new)`` whenever this option changes.

        Returns the registered Config observer, which can be passed to
        ``Config.remove_observer``.
        """
        target = self._group
        name = self._name

        def observer(group: str, opt: str, old: Any, new: Any) -> None:
            if group == target.full_name and target.fix_opt_name(opt) == name:
                callback(old, new)

        return self._group.config.observe(observer)
