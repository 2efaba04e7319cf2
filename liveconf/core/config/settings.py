"""Runtime settings of the liveconf library itself.

These tune the library (watch intervals, logging), not the options an
application registers into a Config.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class LiveconfSettings(BaseSettings):
    debug: bool = False
    log_level: str = "INFO"
    log_json: bool = False

    group_separator: str = Field(default=".", min_length=1)

    # Polling intervals in seconds
    file_watch_interval: float = Field(default=1.0, gt=0)
    url_watch_interval: float = Field(default=10.0, gt=0)
    url_timeout: float = Field(default=5.0, gt=0)
    snapshot_interval: float = Field(default=10.0, gt=0)

    # Upper bound for joining one watcher thread on close
    watcher_join_timeout: float = Field(default=2.0, ge=0)

    model_config = {
        "env_prefix": "LIVECONF_",
        "case_sensitive": False,
    }


_settings_cache: Optional[LiveconfSettings] = None


def get_settings() -> LiveconfSettings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = LiveconfSettings()
    return _settings_cache


def reset_settings() -> None:
    """Drop the cached settings so the next get_settings() re-reads the environment."""
    global _settings_cache
    _settings_cache = None
