"""Runtime configuration registry.

Provides:
- Typed options in a hierarchical, dot-separated namespace
- Loading from maps, environment, files, command line and URLs
- Hot reload from watched sources without restart
- Per-option and global change callbacks
"""

from liveconf.core.config.dataset import DataSet
from liveconf.core.config.decoder import DecoderRegistry, flatten_map
from liveconf.core.config.errors import (
    ConfigError,
    DuplicateOptError,
    FrozenOptError,
    NoDecoderError,
    NoOptError,
    OptParseError,
    SourceError,
    ValidationError,
)
from liveconf.core.config.group import OptGroup
from liveconf.core.config.manager import Config, default_error_handler
from liveconf.core.config.opt import (
    Opt,
    OptSlot,
    bool_opt,
    bools_opt,
    duration_opt,
    durations_opt,
    float_opt,
    floats_opt,
    int_opt,
    ints_opt,
    str_opt,
    strs_opt,
    time_opt,
    times_opt,
    uint_opt,
    uints_opt,
)
from liveconf.core.config.proxy import OptProxy
from liveconf.core.config.settings import LiveconfSettings, get_settings, reset_settings
from liveconf.core.config.sources import (
    CliSource,
    EnvSource,
    FileSource,
    MapSource,
    PollingSource,
    Source,
    UrlSource,
)
from liveconf.core.config.structs import kind_for_annotation, register_dataclass
from liveconf.core.config.values import ValueKind
from liveconf.core.config.watcher import SourceWatcher

__all__ = [
    "CliSource",
    "Config",
    "ConfigError",
    "DataSet",
    "DecoderRegistry",
    "DuplicateOptError",
    "EnvSource",
    "FileSource",
    "FrozenOptError",
    "LiveconfSettings",
    "MapSource",
    "NoDecoderError",
    "NoOptError",
    "Opt",
    "OptGroup",
    "OptParseError",
    "OptProxy",
    "OptSlot",
    "PollingSource",
    "Source",
    "SourceError",
    "SourceWatcher",
    "UrlSource",
    "ValidationError",
    "ValueKind",
    "bool_opt",
    "bools_opt",
    "default_error_handler",
    "duration_opt",
    "durations_opt",
    "flatten_map",
    "float_opt",
    "floats_opt",
    "get_settings",
    "int_opt",
    "ints_opt",
    "kind_for_annotation",
    "register_dataclass",
    "reset_settings",
    "str_opt",
    "strs_opt",
    "time_opt",
    "times_opt",
    "uint_opt",
    "uints_opt",
]
