"""Configuration Manager.

Provides the runtime option registry:
- Hierarchical option groups
- Multi-source loading with force semantics
- Live reload from watched sources
- Change notifications
"""

from __future__ import annotations

import logging
import signal
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from liveconf.core.config.dataset import DataSet
from liveconf.core.config.decoder import Decoder, DecoderRegistry, flatten_map
from liveconf.core.config.errors import (
    BENIGN_ERRORS,
    FrozenOptError,
    NoOptError,
    OptParseError,
    SourceError,
    ValidationError,
)
from liveconf.core.config.group import OptGroup
from liveconf.core.config.opt import Opt
from liveconf.core.config.proxy import OptProxy
from liveconf.core.config.settings import LiveconfSettings, get_settings
from liveconf.core.config.snapshot import BackupWriter, TraverseFunc, take_snapshot, traverse
from liveconf.core.config.sources import CliSource, MapSource, Source
from liveconf.core.config.watcher import SourceWatcher
from liveconf.core.logging.structured import option_context, source_context
from liveconf.utils.metrics import (
    config_datasets_total,
    config_errors_total,
    config_merge_duration_seconds,
    config_option_updates_total,
)

logger = logging.getLogger(__name__)

ErrorHandler = Callable[[Exception], None]
Observer = Callable[[str, str, Any, Any], None]

_MISSING = object()


def default_error_handler(error: Exception) -> None:
    """Log the error; unknown and frozen options are expected during merges."""
    if isinstance(error, BENIGN_ERRORS):
        logger.debug(f"Config: {error}")
    else:
        logger.error(f"Config error: {error}")


class Config:
    """Centralized option registry fed by configuration sources."""

    def __init__(
        self,
        separator: Optional[str] = None,
        error_handler: Optional[ErrorHandler] = None,
        settings: Optional[LiveconfSettings] = None,
    ):
        self.settings = settings or get_settings()
        self.separator = separator or self.settings.group_separator
        self.debug = self.settings.debug

        self._lock = threading.RLock()
        self._groups: Dict[str, OptGroup] = {}
        self._root = OptGroup(self, "")
        self._groups[""] = self._root

        self.decoders = DecoderRegistry(lock=self._lock)
        self._error_handler: ErrorHandler = error_handler or default_error_handler
        self._observers: List[Observer] = []
        self._watchers: List[SourceWatcher] = []
        self._writers: List[BackupWriter] = []
        self._args: Optional[Tuple[str, ...]] = None
        self._generation = 0

        self._exit = threading.Event()
        self._closed = False

    def __repr__(self) -> str:
        return f"Config(groups={len(self._groups)}, watchers={len(self._watchers)}, closed={self._closed})"

    def __enter__(self) -> "Config":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Groups and options

    @property
    def root(self) -> OptGroup:
        return self._root

    def _index_group(self, group: OptGroup) -> None:
        with self._lock:
            self._groups[group.full_name] = group

    def group(self, path: str = "") -> OptGroup:
        """Return the group at ``path``, creating it if needed."""
        return self._root.group(path)

    def get_group(self, path: str = "") -> Optional[OptGroup]:
        """Return the group at ``path`` or None."""
        with self._lock:
            group = self._groups.get(path)
        if group is None:
            group = self._root.get_group(path)
        return group

    def all_groups(self) -> List[OptGroup]:
        return self._root.all_groups()

    def register_opt(self, opt: Opt, group: str = "", force: bool = False) -> OptGroup:
        return self.group(group).register_opt(opt, force=force)

    def register_opts(self, *opts: Opt, group: str = "", force: bool = False) -> OptGroup:
        """Register options into the group at ``group`` ("" is the root)."""
        return self.group(group).register_opts(*opts, force=force)

    def new_proxy(self, opt: Opt, group: str = "", force: bool = False) -> OptProxy:
        """Register ``opt`` into ``group`` and return an OptProxy for it."""
        return self.group(group).new_proxy(opt, force=force)

    def proxy(self, name: str) -> OptProxy:
        """Return an OptProxy for the registered option with the dotted ``name``."""
        group, opt = self._resolve(name)
        group.slot(opt)
        return OptProxy(group, opt)

    def register_dataclass(self, obj: Any, group: str = "", force: bool = False) -> OptGroup:
        """Register the fields of a dataclass into ``group``; see ``structs``."""
        return self.group(group).register_dataclass(obj, force=force)

    def split_name(self, name: str) -> Tuple[str, str]:
        """Split a dotted option name into (group path, option name)."""
        group, _, opt = name.rpartition(self.separator)
        return group, opt

    def _resolve(self, name: str) -> Tuple[OptGroup, str]:
        path, opt = self.split_name(name)
        group = self.get_group(path)
        if group is None:
            raise NoOptError(path, opt)
        return group, opt

    def has_opt(self, name: str) -> bool:
        path, opt = self.split_name(name)
        group = self.get_group(path)
        return group is not None and group.has_opt(opt)

    def get(self, name: str, default: Any = _MISSING) -> Any:
        """Get the value of the option with the dotted ``name``."""
        try:
            group, opt = self._resolve(name)
            return group.get(opt)
        except NoOptError:
            if default is _MISSING:
                raise
            return default

    def must(self, name: str) -> Any:
        group, opt = self._resolve(name)
        return group.must(opt)

    def is_set(self, name: str) -> bool:
        group, opt = self._resolve(name)
        return group.is_set(opt)

    def set(self, name: str, value: Any) -> None:
        """Set the option with the dotted ``name``. Errors are raised, not handled."""
        group, opt = self._resolve(name)
        group.set(opt, value)

    def freeze(self, *names: str) -> None:
        for name in names:
            group, opt = self._resolve(name)
            group.freeze(opt)

    def unfreeze(self, *names: str) -> None:
        for name in names:
            group, opt = self._resolve(name)
            group.unfreeze(opt)

    # ------------------------------------------------------------------
    # Errors and observers

    def set_error_handler(self, handler: ErrorHandler) -> None:
        if handler is None:
            raise ValueError("the error handler must not be None")
        with self._lock:
            self._error_handler = handler

    def handle_error(self, error: Exception) -> None:
        """Forward an error to the error handler, never raising."""
        config_errors_total.labels(kind=type(error).__name__).inc()
        with self._lock:
            handler = self._error_handler
        try:
            handler(error)
        except Exception as e:
            logger.error(f"Config error handler failed on '{error}': {e}")

    def observe(self, observer: Observer) -> Observer:
        """Call ``observer(group, name, old, new)`` after every option update.

        Returns the observer so it can be used as a decorator.
        """
        with self._lock:
            self._observers.append(observer)
        return observer

    def remove_observer(self, observer: Observer) -> bool:
        with self._lock:
            try:
                self._observers.remove(observer)
            except ValueError:
                return False
        return True

    def _option_changed(self, group: OptGroup, opt: Opt, old: Any, new: Any) -> None:
        with self._lock:
            self._generation += 1
            observers = list(self._observers)
        config_option_updates_total.inc()

        if self.debug:
            logger.debug(f"Set option '{group.opt_full_name(opt.name)}' from {old!r} to {new!r}")

        if opt.on_update is not None:
            try:
                opt.on_update(old, new)
            except Exception as e:
                self.handle_error(e)

        for observer in observers:
            try:
                observer(group.full_name, opt.name, old, new)
            except Exception as e:
                self.handle_error(e)

    @property
    def generation(self) -> int:
        """Incremented on every option update."""
        with self._lock:
            return self._generation

    # ------------------------------------------------------------------
    # Decoders

    def add_decoder(self, name: str, decoder: Decoder, force: bool = False) -> bool:
        return self.decoders.add_decoder(name, decoder, force=force)

    def add_decoder_alias(self, alias: str, name: str) -> None:
        self.decoders.add_decoder_alias(alias, name)

    def get_decoder(self, name: str) -> Optional[Decoder]:
        return self.decoders.get_decoder(name)

    # ------------------------------------------------------------------
    # Loading

    @property
    def args(self) -> Tuple[str, ...]:
        """Positional arguments from the first DataSet that carried any."""
        with self._lock:
            return self._args or ()

    def load_dataset(self, dataset: DataSet, force: bool = False) -> bool:
        """Merge a DataSet into the registered options.

        Without ``force`` only options that have not been set yet are written.
        Returns False if the data could not be decoded or a value was
        rejected; values written before the rejected one are kept.
        """
        return self._merge(dataset, force=force)

    def _merge(self, dataset: DataSet, force: bool = False, owner: Optional[SourceWatcher] = None) -> bool:
        if dataset.is_empty:
            config_datasets_total.labels(status="empty").inc()
            if owner is not None:
                owner.claim([])
            return True

        started = time.perf_counter()
        with source_context(dataset.source):
            try:
                data = self.decoders.decode(dataset.format, dataset.data)
                if not isinstance(data, Mapping):
                    raise TypeError(f"decoded data is {type(data).__name__}, not a mapping")
            except Exception as e:
                self._report_source_error(dataset, e)
                return False

            ok, written = self._apply(flatten_map(data, self.separator), force, owner)

        if owner is not None:
            owner.claim(written)

        if dataset.args:
            with self._lock:
                if self._args is None or force:
                    self._args = dataset.args

        config_datasets_total.labels(status="ok" if ok else "aborted").inc()
        config_merge_duration_seconds.observe(time.perf_counter() - started)
        logger.debug(
            f"Merged {len(written)} option(s) from {dataset.source} "
            f"(format={dataset.format}, force={force}, ok={ok})"
        )
        return ok

    def _apply(
        self,
        values: Mapping[str, Any],
        force: bool,
        owner: Optional[SourceWatcher],
    ) -> Tuple[bool, List[Tuple[OptGroup, str]]]:
        written: List[Tuple[OptGroup, str]] = []
        for key, value in values.items():
            if value is None:
                continue

            path, name = self.split_name(key)
            group = self.get_group(path)
            if group is None:
                continue

            with option_context(key):
                try:
                    if not (force or group.has_opt_and_is_not_set(name)):
                        continue
                    if group.merge_value(name, value, skip_locked=owner is None):
                        written.append((group, group.fix_opt_name(name)))
                except NoOptError:
                    continue
                except FrozenOptError as e:
                    self.handle_error(e)
                except (OptParseError, ValidationError) as e:
                    self.handle_error(e)
                    return False, written
                except Exception as e:
                    # Anything else is reported as a parse failure of this value.
                    self.handle_error(OptParseError(group.full_name, name, value, e))
                    return False, written
        return True, written

    def _report_source_error(self, dataset: DataSet, cause: Exception) -> None:
        config_datasets_total.labels(status="error").inc()
        self.handle_error(
            SourceError(dataset.source, format=dataset.format, data=dataset.data, cause=cause)
        )

    def load_source_without_watch(self, source: Source, force: bool = False) -> bool:
        """Read a source once and merge its data."""
        try:
            dataset = source.read()
        except Exception as e:
            self.handle_error(SourceError(source.name, cause=e))
            return False
        return self.load_dataset(dataset, force=force)

    def load_source(self, source: Source, force: bool = False) -> bool:
        """Read and merge a source, then watch it if it supports watching."""
        ok = self.load_source_without_watch(source, force=force)
        if source.supports_watch:
            self.watch_source(source)
        return ok

    def load_sources(self, *sources: Source, force: bool = False) -> bool:
        results = [self.load_source(source, force=force) for source in sources]
        return all(results)

    def load_map(self, mapping: Mapping[str, Any], force: bool = False, name: str = "map") -> bool:
        return self.load_source_without_watch(MapSource(mapping, name=name), force=force)

    def reload_sources(self, *sources: Source) -> bool:
        """Re-read sources with force, without starting new watchers."""
        results = [self.load_source_without_watch(source, force=True) for source in sources]
        logger.info(f"Reloaded {len(sources)} config source(s)")
        return all(results)

    def install_reload_signal(
        self,
        *sources: Source,
        signum: int = signal.SIGHUP,
    ) -> Any:
        """Reload ``sources`` with force whenever the process receives ``signum``.

        Must be called from the main thread. The reload runs in a separate
        thread so the interrupted code never waits on its own locks. Returns
        the previous signal handler.
        """

        def on_signal(received: int, frame: Any) -> None:
            if self._exit.is_set():
                return
            logger.info(f"Received signal {received}, reloading config sources")
            threading.Thread(
                target=self.reload_sources,
                args=sources,
                name="liveconf-reload",
                daemon=True,
            ).start()

        return signal.signal(signum, on_signal)

    # ------------------------------------------------------------------
    # Watching

    def watch_source(self, source: Source) -> Optional[SourceWatcher]:
        """Start the watch loop of ``source``; None once the Config is closed."""
        with self._lock:
            if self._closed:
                logger.debug(f"Config is closed, not watching {source.name}")
                return None
            watcher = SourceWatcher(self, source)
            self._watchers.append(watcher)
        watcher.start()
        return watcher

    @property
    def watchers(self) -> List[SourceWatcher]:
        with self._lock:
            return list(self._watchers)

    @property
    def exit_event(self) -> threading.Event:
        return self._exit

    @property
    def closed(self) -> bool:
        return self._exit.is_set()

    # ------------------------------------------------------------------
    # Snapshot

    def snapshot(self) -> Dict[str, Any]:
        """Flat copy of every option that has been set."""
        return take_snapshot(self._root)

    def traverse(self, fn: TraverseFunc) -> None:
        traverse(self._root, fn)

    def load_backup_file(
        self,
        path: Union[str, Path],
        interval: Optional[float] = None,
    ) -> bool:
        """Load a previous snapshot file, then keep it updated until close.

        Values from the file never override options that are already set.
        """
        path = Path(path)
        ok = True
        if path.exists():
            try:
                data = path.read_bytes()
            except OSError as e:
                self.handle_error(SourceError(f"backup:{path}", format="json", cause=e))
                ok = False
            else:
                ok = self.load_dataset(DataSet(data=data, format="json", source=f"backup:{path}"))

        writer = BackupWriter(
            self,
            path,
            interval if interval is not None else self.settings.snapshot_interval,
        )
        with self._lock:
            if self._closed:
                return ok
            self._writers.append(writer)
        writer.start()
        return ok

    # ------------------------------------------------------------------
    # Lifecycle

    def close(self, timeout: Optional[float] = None) -> None:
        """Stop every watcher and background writer. Safe to call repeatedly."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            watchers = list(self._watchers)
            writers = list(self._writers)

        self._exit.set()
        timeout = self.settings.watcher_join_timeout if timeout is None else timeout
        for watcher in watchers:
            if not watcher.join(timeout):
                logger.warning(f"Watcher of {watcher.source.name} did not stop within {timeout}s")
        for writer in writers:
            writer.join(timeout)
        logger.info("Config closed")

    def wait_closed(self, timeout: Optional[float] = None) -> bool:
        """Block until the Config is closed; False on timeout."""
        return self._exit.wait(timeout)

    def parse_cli(self, argv: Optional[Sequence[str]] = None, force: bool = True) -> bool:
        """Load command-line arguments for every CLI option."""
        return self.load_source_without_watch(CliSource(self, argv), force=force)
