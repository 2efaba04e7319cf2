import os

import pytest


@pytest.fixture(autouse=True)
def env_isolation():
    """Isolate LIVECONF_* and test-only environment variables between tests."""
    backup = {k: v for k, v in os.environ.items() if k.startswith(("LIVECONF_", "APP_"))}
    try:
        yield
    finally:
        for k in [k for k in os.environ if k.startswith(("LIVECONF_", "APP_"))]:
            if k not in backup:
                os.environ.pop(k, None)
        os.environ.update(backup)


@pytest.fixture(autouse=True)
def settings_isolation():
    """Drop cached library settings and the default Config between tests."""
    from liveconf.core.config.settings import reset_settings
    from liveconf.default import reset_config

    reset_settings()
    try:
        yield
    finally:
        reset_config()
        reset_settings()


@pytest.fixture
def config():
    """A fresh Config closed after the test."""
    from liveconf.core.config.manager import Config

    cfg = Config()
    try:
        yield cfg
    finally:
        cfg.close(timeout=1.0)


@pytest.fixture
def errors(config):
    """Errors reported to the Config error handler."""
    collected = []
    config.set_error_handler(collected.append)
    return collected


@pytest.fixture
def server_config(config):
    """A Config with server.port (8080) and server.host ("0.0.0.0")."""
    from liveconf.core.config.opt import int_opt, str_opt

    config.register_opts(
        int_opt("port", 8080, "The server port"),
        str_opt("host", "0.0.0.0", "The bind address"),
        group="server",
    )
    return config
