"""Point-in-time copies of option values and the snapshot backup file."""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from liveconf.core.config.sources import json_default

if TYPE_CHECKING:
    from liveconf.core.config.group import OptGroup
    from liveconf.core.config.manager import Config
    from liveconf.core.config.opt import Opt

logger = logging.getLogger(__name__)

TraverseFunc = Callable[["OptGroup", "Opt", Any], None]


def take_snapshot(root: "OptGroup") -> Dict[str, Any]:
    """Flat ``{dotted name: value}`` of every option that has been set."""
    snapshot: Dict[str, Any] = {}
    for group in root.all_groups():
        for opt, value, is_set in group.items():
            if is_set:
                snapshot[group.opt_full_name(opt.name)] = value
    return snapshot


def traverse(root: "OptGroup", fn: TraverseFunc) -> None:
    """Call ``fn(group, opt, value)`` for every option, ordered by group then option name."""
    for group in root.all_groups():
        for opt, value, _ in group.items():
            fn(group, opt, value)


def dump_snapshot(snapshot: Dict[str, Any]) -> str:
    return json.dumps(snapshot, default=json_default, indent=2, sort_keys=True)


def write_snapshot_file(path: Path, snapshot: Dict[str, Any]) -> None:
    """Write the snapshot as JSON, replacing the file atomically."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f".{path.name}.tmp")
    tmp.write_text(dump_snapshot(snapshot), encoding="utf-8")
    os.replace(tmp, path)


class BackupWriter:
    """Rewrites a snapshot file whenever the Config's values change."""

    def __init__(self, config: "Config", path: Path, interval: float):
        if interval <= 0:
            raise ValueError(f"the snapshot interval must be positive, got {interval}")
        self.config = config
        self.path = Path(path)
        self.interval = interval
        self._generation: Optional[int] = None
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self._generation = self.config.generation
        self._thread = threading.Thread(
            target=self._run,
            name=f"liveconf-backup-{self.path.name}",
            daemon=True,
        )
        self._thread.start()

    def join(self, timeout: Optional[float] = None) -> bool:
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def flush(self) -> bool:
        """Write the file if the values changed since the last write."""
        generation = self.config.generation
        if generation == self._generation:
            return False

        try:
            write_snapshot_file(self.path, self.config.snapshot())
        except OSError as e:
            logger.error(f"Failed to write the config snapshot to {self.path}: {e}")
            return False

        self._generation = generation
        logger.debug(f"Wrote the config snapshot to {self.path}")
        return True

    def _run(self) -> None:
        exit_event = self.config.exit_event
        while not exit_event.wait(self.interval):
            self.flush()
        self.flush()
