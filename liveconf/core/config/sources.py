"""Configuration Sources Implementation.

A source produces DataSets. ``read()`` returns the current data once;
sources with ``supports_watch`` also implement ``watch()``, a blocking loop
run by the Config in its own thread that pushes later changes until the
exit event is set.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, Sequence, Set, Tuple
from urllib.parse import urlparse

import httpx

from liveconf.core.config.dataset import DataSet
from liveconf.core.config.settings import get_settings
from liveconf.core.config.values import ValueKind, format_duration

if TYPE_CHECKING:
    from liveconf.core.config.manager import Config

logger = logging.getLogger(__name__)

WatchCallback = Callable[[Optional[DataSet], Optional[Exception]], bool]


def json_default(value: Any) -> Any:
    """JSON fallback for option values that json cannot encode itself."""
    if isinstance(value, timedelta):
        return format_duration(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)


class Source(ABC):
    """Base class for configuration sources."""

    supports_watch = False

    def __init__(self, name: str):
        self.name = name

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"

    @abstractmethod
    def read(self) -> DataSet:
        """Read the current data. Raise on failure."""
        pass

    def watch(self, callback: WatchCallback, exit_event: threading.Event) -> None:
        """Push changes to ``callback`` until ``exit_event`` is set.

        The callback returns True when the DataSet was applied. The default
        implementation has nothing to watch and returns immediately.
        """
        return None


class PollingSource(Source):
    """A source that detects changes by polling every ``interval`` seconds."""

    supports_watch = True

    def __init__(self, name: str, interval: float):
        super().__init__(name)
        if interval <= 0:
            raise ValueError(f"the poll interval must be positive, got {interval}")
        self.interval = interval

    @abstractmethod
    def _poll(self) -> Optional[DataSet]:
        """Return a DataSet if the data changed since the last poll, else None."""
        pass

    def _commit(self, dataset: DataSet) -> None:
        """Called after ``dataset`` was applied successfully."""
        pass

    def _on_exit(self) -> None:
        pass

    def watch(self, callback: WatchCallback, exit_event: threading.Event) -> None:
        logger.debug(f"Watching {self.name} every {self.interval}s")
        try:
            while not exit_event.wait(self.interval):
                try:
                    dataset = self._poll()
                except Exception as e:
                    callback(None, e)
                    continue

                if dataset is not None and callback(dataset, None):
                    self._commit(dataset)
        finally:
            self._on_exit()
            logger.debug(f"Stopped watching {self.name}")


class MapSource(Source):
    """A fixed in-memory mapping, nested or with dotted keys."""

    def __init__(self, mapping: Mapping[str, Any], name: str = "map", args: Sequence[str] = ()):
        super().__init__(name)
        self.mapping = mapping
        self.args = tuple(args)

    def read(self) -> DataSet:
        data = json.dumps(self.mapping, default=json_default)
        return DataSet(data=data, format="json", source=self.name, args=self.args)


class EnvSource(Source):
    """Environment variable configuration source.

    ``PREFIX_SERVER_PORT=9090`` becomes the option ``server.port``: names are
    lower-cased, the prefix is stripped, and ``_`` becomes the group
    separator. Without a prefix every variable is offered. Values are
    stripped and empty ones skipped.
    """

    def __init__(
        self,
        prefix: str = "",
        separator: str = ".",
        environ: Optional[Mapping[str, str]] = None,
    ):
        super().__init__(f"env:{prefix}" if prefix else "env")
        self.prefix = prefix.lower().rstrip("_") + "_" if prefix else ""
        self.separator = separator
        self._environ = environ

    def _config_key(self, env_key: str) -> Optional[str]:
        key = env_key.lower()
        if self.prefix:
            if not key.startswith(self.prefix):
                return None
            key = key[len(self.prefix):]
        key = key.strip("_")
        if not key:
            return None
        return key.replace("_", self.separator)

    def read(self) -> DataSet:
        environ = self._environ if self._environ is not None else os.environ
        values: Dict[str, str] = {}
        for env_key, value in environ.items():
            key = self._config_key(env_key)
            value = value.strip()
            # Empty variables are treated as unset.
            if key is not None and value:
                values[key] = value
        return DataSet(data=json.dumps(values), format="json", source=self.name)


class FileSource(PollingSource):
    """File-based configuration source.

    The format comes from the file extension unless given; files without an
    extension are read as INI. A missing file reads as empty data.
    """

    def __init__(
        self,
        path: str,
        format: Optional[str] = None,
        interval: Optional[float] = None,
    ):
        self.path = Path(path)
        super().__init__(
            f"file:{self.path}",
            interval if interval is not None else get_settings().file_watch_interval,
        )
        self.format = (format or self.path.suffix.lstrip(".") or "ini").lower()
        self._state: Optional[Tuple[int, int]] = None

    def _stat(self) -> Optional[Tuple[int, int]]:
        try:
            st = self.path.stat()
        except FileNotFoundError:
            return None
        return st.st_size, st.st_mtime_ns

    def read(self) -> DataSet:
        state = self._stat()
        if state is None:
            logger.warning(f"Config file not found: {self.path}")
            self._state = None
            return DataSet(data=b"", format=self.format, source=self.name)

        data = self.path.read_bytes()
        self._state = state
        logger.info(f"Loaded config from {self.path}")
        return DataSet(data=data, format=self.format, source=self.name)

    def _poll(self) -> Optional[DataSet]:
        state = self._stat()
        if state is None or state == self._state:
            return None
        return self.read()


def _default_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, default=json_default)


def _attach_bool_values(argv: List[str], bool_flags: Set[str]) -> List[str]:
    """Spell a bare bool flag as ``flag=true`` so it never takes the next argument."""
    result = []
    for i, arg in enumerate(argv):
        if arg == "--":
            return result + argv[i:]
        result.append(f"{arg}=true" if arg in bool_flags else arg)
    return result


class CliSource(Source):
    """Command-line arguments for every option registered with ``is_cli``.

    Options are spelled ``--group.name`` (``--name`` in the root group), plus
    ``-x`` when the option has a short name. Only flags actually given are
    emitted; the remaining arguments become the DataSet args. A bool flag
    alone means true and takes an explicit value only as ``--flag=value``.
    """

    def __init__(
        self,
        config: "Config",
        argv: Optional[Sequence[str]] = None,
        prog: Optional[str] = None,
        description: Optional[str] = None,
    ):
        super().__init__("cli")
        self.config = config
        self.argv = argv
        self.prog = prog
        self.description = description

    def build_parser(self) -> Tuple[argparse.ArgumentParser, Dict[str, ValueKind], Set[str]]:
        """Build the parser; also return the kind per dest and the bool flags."""
        parser = argparse.ArgumentParser(
            prog=self.prog,
            description=self.description,
            argument_default=argparse.SUPPRESS,
            allow_abbrev=False,
        )
        kinds: Dict[str, ValueKind] = {}
        bool_flags: Set[str] = set()

        for group in self.config.root.all_groups():
            for opt in group.cli_opts():
                dest = group.opt_full_name(opt.name)
                flags: List[str] = []
                for name in opt.names():
                    for spelling in (name, name.replace("_", "-")):
                        flag = f"--{group.opt_full_name(spelling)}"
                        if flag not in flags:
                            flags.append(flag)
                if opt.short:
                    flags.append(f"-{opt.short}")

                help_text = opt.help or None
                if help_text is not None:
                    if opt.default is not None:
                        help_text += f" (default: {_default_text(opt.default)})"
                    help_text = help_text.replace("%", "%%")

                kwargs: Dict[str, Any] = {"dest": dest, "help": help_text}
                if opt.kind == ValueKind.BOOL:
                    kwargs.update(nargs="?", const="true", metavar="BOOL")
                    bool_flags.update(flags)
                elif opt.kind.is_list:
                    kwargs.update(action="append", metavar=opt.kind.scalar.value.upper())
                else:
                    kwargs.update(metavar=opt.kind.value.upper())

                parser.add_argument(*flags, **kwargs)
                kinds[dest] = opt.kind

        return parser, kinds, bool_flags

    def read(self) -> DataSet:
        parser, kinds, bool_flags = self.build_parser()
        argv = sys.argv[1:] if self.argv is None else list(self.argv)
        namespace, rest = parser.parse_known_args(_attach_bool_values(argv, bool_flags))

        values: Dict[str, Any] = {}
        for dest, value in vars(namespace).items():
            if kinds[dest].is_list:
                value = ",".join(value)
            values[dest] = value

        return DataSet(data=json.dumps(values), format="json", source=self.name, args=rest)


_CONTENT_TYPE_FORMATS = {
    "json": "json",
    "yaml": "yaml",
    "yml": "yaml",
    "toml": "toml",
    "ini": "ini",
}


class UrlSource(PollingSource):
    """Configuration fetched with HTTP GET.

    The watch loop re-fetches every ``interval`` seconds and only pushes data
    whose checksum differs from the last one applied successfully.
    """

    def __init__(
        self,
        url: str,
        format: Optional[str] = None,
        interval: Optional[float] = None,
        timeout: Optional[float] = None,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        settings = get_settings()
        super().__init__(
            f"url:{url}",
            interval if interval is not None else settings.url_watch_interval,
        )
        self.url = url
        self.format = format.lower() if format else None
        self.timeout = timeout if timeout is not None else settings.url_timeout
        self.headers = headers or {}
        self._transport = transport
        self._client: Optional[httpx.Client] = None
        self._client_lock = threading.Lock()
        self._last_checksum: Optional[str] = None

    def _get_client(self) -> httpx.Client:
        with self._client_lock:
            if self._client is None:
                self._client = httpx.Client(
                    timeout=self.timeout,
                    headers=self.headers,
                    transport=self._transport,
                )
            return self._client

    def close(self) -> None:
        with self._client_lock:
            if self._client is not None:
                self._client.close()
                self._client = None

    def _detect_format(self, response: httpx.Response) -> str:
        if self.format:
            return self.format

        content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
        subtype = content_type.rsplit("/", 1)[-1]
        for marker, fmt in _CONTENT_TYPE_FORMATS.items():
            if subtype == marker or subtype.endswith(f"-{marker}") or subtype.endswith(f"+{marker}"):
                return fmt

        suffix = Path(urlparse(self.url).path).suffix.lstrip(".").lower()
        return suffix or "json"

    def _fetch(self) -> DataSet:
        response = self._get_client().get(self.url)
        response.raise_for_status()
        return DataSet(data=response.content, format=self._detect_format(response), source=self.name)

    def read(self) -> DataSet:
        dataset = self._fetch()
        self._last_checksum = dataset.checksum
        return dataset

    def _poll(self) -> Optional[DataSet]:
        dataset = self._fetch()
        if dataset.checksum == self._last_checksum:
            return None
        return dataset

    def _commit(self, dataset: DataSet) -> None:
        self._last_checksum = dataset.checksum

    def _on_exit(self) -> None:
        self.close()
