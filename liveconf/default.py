"""Process-wide default Config.

Applications that need a single registry can use these helpers instead of
passing a Config around. Everything else in the package works on explicit
Config instances.
"""

from __future__ import annotations

import threading
from typing import Any, Optional

from liveconf.core.config.group import OptGroup
from liveconf.core.config.manager import Config
from liveconf.core.config.opt import Opt
from liveconf.core.config.proxy import OptProxy
from liveconf.core.config.sources import Source

_config: Optional[Config] = None
_config_lock = threading.Lock()


def get_config() -> Config:
    """Get the default Config, creating it on first use."""
    global _config
    with _config_lock:
        if _config is None:
            _config = Config()
        return _config


def reset_config() -> None:
    """Close and drop the default Config."""
    global _config
    with _config_lock:
        config, _config = _config, None
    if config is not None:
        config.close()


def register_opts(*opts: Opt, group: str = "", force: bool = False) -> OptGroup:
    return get_config().register_opts(*opts, group=group, force=force)


def new_proxy(opt: Opt, group: str = "", force: bool = False) -> OptProxy:
    return get_config().new_proxy(opt, group=group, force=force)


def group(path: str = "") -> OptGroup:
    return get_config().group(path)


def get(name: str, *default: Any) -> Any:
    return get_config().get(name, *default)


def set(name: str, value: Any) -> None:
    get_config().set(name, value)


def load_source(source: Source, force: bool = False) -> bool:
    return get_config().load_source(source, force=force)


def close() -> None:
    get_config().close()
