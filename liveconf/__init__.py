"""liveconf: typed runtime configuration with live reload."""

from liveconf.core.config import *  # noqa: F401,F403
from liveconf.core.config import __all__

__version__ = "0.1.0"
