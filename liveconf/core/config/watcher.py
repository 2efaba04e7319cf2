"""Background watchers delivering DataSets pushed by sources.

Each watched source runs ``source.watch()`` in a daemon thread. Pushed
DataSets are merged with force, and the options they wrote are locked
against static loads until the same watcher pushes a newer DataSet or
stops.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, List, Optional, Tuple

from liveconf.core.config.dataset import DataSet
from liveconf.core.config.errors import SourceError
from liveconf.core.config.sources import Source
from liveconf.utils.metrics import config_active_watchers

if TYPE_CHECKING:
    from liveconf.core.config.group import OptGroup
    from liveconf.core.config.manager import Config

logger = logging.getLogger(__name__)


class SourceWatcher:
    """Runs the watch loop of one source for the lifetime of a Config."""

    def __init__(self, config: "Config", source: Source):
        self.config = config
        self.source = source
        self._locked: List[Tuple["OptGroup", str]] = []
        self._locked_mutex = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    def __repr__(self) -> str:
        return f"SourceWatcher({self.source.name!r}, alive={self.alive})"

    @property
    def alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def locked_options(self) -> List[str]:
        """Dotted names of the options currently locked by this watcher."""
        with self._locked_mutex:
            return [group.opt_full_name(name) for group, name in self._locked]

    def start(self) -> None:
        if self._thread is not None:
            return

        self._thread = threading.Thread(
            target=self._run,
            name=f"liveconf-watch-{self.source.name}",
            daemon=True,
        )
        config_active_watchers.inc()
        self._thread.start()
        logger.info(f"Started watching {self.source.name}")

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the watch loop to end; return True if it did."""
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def _run(self) -> None:
        try:
            self.source.watch(self._on_push, self.config.exit_event)
        except Exception as e:
            self.config.handle_error(SourceError(self.source.name, cause=e))
        finally:
            self.claim([])
            config_active_watchers.dec()
            logger.info(f"Stopped watching {self.source.name}")

    def _on_push(self, dataset: Optional[DataSet], error: Optional[Exception]) -> bool:
        if self.config.closed:
            return False

        if error is not None:
            if not isinstance(error, SourceError):
                error = SourceError(self.source.name, cause=error)
            self.config.handle_error(error)
            return False

        if dataset is None:
            return False
        try:
            return self.config._merge(dataset, force=True, owner=self)
        except Exception as e:
            logger.exception(f"Failed to merge a push from {self.source.name}")
            self.config.handle_error(SourceError(self.source.name, format=dataset.format, cause=e))
            return False

    def claim(self, written: List[Tuple["OptGroup", str]]) -> None:
        """Make ``written`` the set of options locked by this watcher.

        New locks are taken before the previous ones are released so an
        option written by two consecutive pushes is never unlocked in between.
        """
        for group, name in written:
            group.lock_opt(name)

        with self._locked_mutex:
            previous, self._locked = self._locked, list(written)

        for group, name in previous:
            group.unlock_opt(name)
