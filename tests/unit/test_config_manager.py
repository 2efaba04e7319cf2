"""Tests for the Config manager and its merge pipeline."""

from __future__ import annotations

import json
import os
import signal
import time
from datetime import timedelta
from unittest.mock import MagicMock

import pytest


def _json(data, source="test", args=()):
    from liveconf.core.config.dataset import DataSet

    return DataSet(data=json.dumps(data), format="json", source=source, args=args)


class TestMergePipeline:
    """Tests for load_dataset."""

    def test_server_scenario(self, server_config):
        """Test unset options are filled and set ones are kept without force."""
        assert server_config.load_dataset(_json({"server": {"port": "9090"}}))
        assert server_config.get("server.port") == 9090
        assert server_config.get("server.host") == "0.0.0.0"

        assert server_config.load_dataset(_json({"server": {"host": "127.0.0.1"}}))
        assert server_config.get("server.host") == "127.0.0.1"

        assert server_config.load_dataset(_json({"server": {"port": "1111"}}))
        assert server_config.get("server.port") == 9090

    def test_first_source_wins_then_force(self, config):
        """Test load order precedence and force overwrite."""
        from liveconf.core.config.opt import str_opt
        from liveconf.core.config.sources import MapSource

        config.register_opts(str_opt("x"))
        a, b = MapSource({"x": "a"}, name="a"), MapSource({"x": "b"}, name="b")

        config.load_source(a)
        config.load_source(b)
        assert config.get("x") == "a"

        config.load_source(b, force=True)
        assert config.get("x") == "b"

    def test_dotted_keys(self, server_config):
        assert server_config.load_dataset(_json({"server.port": 7000}))
        assert server_config.get("server.port") == 7000

    def test_unknown_keys_ignored(self, server_config, errors):
        """Test unknown options and groups are skipped without error."""
        ok = server_config.load_dataset(
            _json({"server": {"portt": 1, "port": 1}, "other": {"x": 1}, "top": 2})
        )

        assert ok
        assert server_config.get("server.port") == 1
        assert errors == []
        assert server_config.get_group("other") is None

    def test_validation_aborts_rest(self, config, errors):
        """Test a rejected value aborts only the keys after it."""
        from liveconf.core.config.errors import ValidationError
        from liveconf.core.config.opt import int_opt
        from liveconf.core.config.validators import max_value

        config.register_opts(
            int_opt("a"),
            int_opt("b", validators=[max_value(10)]),
            int_opt("c"),
        )

        ok = config.load_dataset(_json({"a": 1, "b": 11, "c": 3}))

        assert ok is False
        assert config.get("a") == 1
        assert config.get("b") is None
        assert config.get("c") is None
        assert len(errors) == 1
        assert isinstance(errors[0], ValidationError)

    def test_parse_error_aborts_rest(self, config, errors):
        from liveconf.core.config.errors import OptParseError
        from liveconf.core.config.opt import int_opt

        config.register_opts(int_opt("a"), int_opt("b"))

        assert not config.load_dataset(_json({"a": "x", "b": 2}))
        assert config.get("b") is None
        assert isinstance(errors[0], OptParseError)

    def test_overflowing_value_is_a_parse_error(self, config, errors):
        """Test conversion errors other than ValueError reach the handler."""
        from liveconf.core.config.errors import OptParseError
        from liveconf.core.config.opt import duration_opt

        config.register_opt(duration_opt("timeout"))

        assert config.load_map({"timeout": "1e300"}) is False
        assert config.get("timeout") is None
        assert len(errors) == 1
        assert isinstance(errors[0], OptParseError)
        assert isinstance(errors[0].cause, OverflowError)

    def test_raising_validator_is_a_validation_error(self, config, errors):
        from liveconf.core.config.errors import ValidationError
        from liveconf.core.config.opt import int_opt

        def explode(value):
            raise RuntimeError("boom")

        config.register_opts(int_opt("a", validators=[explode]), int_opt("b"))

        assert config.load_dataset(_json({"a": 1, "b": 2})) is False
        assert config.get("a") is None
        assert isinstance(errors[0], ValidationError)
        assert "boom" in str(errors[0])

    def test_unexpected_merge_failure_is_reported(self, config, errors):
        """Test an unexpected exception while storing aborts the merge without raising."""
        from unittest.mock import patch

        from liveconf.core.config.errors import OptParseError
        from liveconf.core.config.group import OptGroup
        from liveconf.core.config.opt import int_opt

        config.register_opt(int_opt("a"))

        with patch.object(OptGroup, "merge_value", side_effect=RuntimeError("disk full")):
            assert config.load_map({"a": 1}) is False

        assert isinstance(errors[0], OptParseError)
        assert isinstance(errors[0].cause, RuntimeError)
        assert config.get("a") is None

    def test_frozen_reported_and_skipped(self, server_config, errors):
        from liveconf.core.config.errors import FrozenOptError

        server_config.freeze("server.port")

        ok = server_config.load_dataset(_json({"server": {"port": 1, "host": "h"}}), force=True)

        assert ok
        assert server_config.get("server.port") == 8080
        assert server_config.get("server.host") == "h"
        assert isinstance(errors[0], FrozenOptError)

    def test_empty_dataset(self, server_config, errors):
        from liveconf.core.config.dataset import DataSet

        assert server_config.load_dataset(DataSet(data=b"", format="nope", source="empty"))
        assert errors == []

    def test_unknown_format(self, server_config, errors):
        """Test a DataSet without a decoder is reported as a SourceError."""
        from liveconf.core.config.dataset import DataSet
        from liveconf.core.config.errors import NoDecoderError, SourceError

        ok = server_config.load_dataset(DataSet(data=b"port=1", format="xml", source="s"))

        assert ok is False
        assert isinstance(errors[0], SourceError)
        assert isinstance(errors[0].cause, NoDecoderError)
        assert errors[0].data == b"port=1"

    def test_decode_error(self, server_config, errors):
        from liveconf.core.config.dataset import DataSet
        from liveconf.core.config.errors import SourceError

        assert not server_config.load_dataset(DataSet(data=b"{bad", format="json", source="s"))
        assert not server_config.load_dataset(DataSet(data=b"[1, 2]", format="json", source="s"))
        assert all(isinstance(e, SourceError) for e in errors)
        assert len(errors) == 2

    def test_null_values_skipped(self, server_config):
        assert server_config.load_dataset(_json({"server": {"port": None}}))
        assert not server_config.is_set("server.port")

    def test_args(self, config):
        """Test args are kept from the first DataSet unless forced."""
        config.load_dataset(_json({}, args=["a"]))
        config.load_dataset(_json({}, args=["b"]))
        assert config.args == ("a",)

        config.load_dataset(_json({}, args=["c"]), force=True)
        assert config.args == ("c",)

    def test_formats(self, config):
        """Test the built-in decoders."""
        from liveconf.core.config.dataset import DataSet
        from liveconf.core.config.opt import int_opt, str_opt

        config.register_opts(str_opt("name"))
        config.register_opts(int_opt("port"), group="server")

        config.load_dataset(DataSet(data="name: yml\nserver:\n  port: 1\n", format="yml", source="y"))
        assert (config.get("name"), config.get("server.port")) == ("yml", 1)

        config.load_dataset(
            DataSet(data='name = "toml"\n[server]\nport = 2\n', format="toml", source="t"), force=True
        )
        assert (config.get("name"), config.get("server.port")) == ("toml", 2)

        config.load_dataset(
            DataSet(data="[DEFAULT]\nname = ini\n[server]\nport = 3\n", format="conf", source="i"),
            force=True,
        )
        assert (config.get("name"), config.get("server.port")) == ("ini", 3)

    def test_custom_decoder(self, server_config):
        from liveconf.core.config.dataset import DataSet

        def decode_kv(data):
            return dict(line.split("=", 1) for line in data.decode().splitlines() if line)

        assert server_config.add_decoder("kv", decode_kv)
        assert not server_config.add_decoder("KV", decode_kv)
        server_config.add_decoder_alias("properties", "kv")

        server_config.load_dataset(DataSet(data="server.port=7\n", format="properties", source="p"))

        assert server_config.get("server.port") == 7


class TestObservers:
    """Tests for update callbacks and the error handler."""

    def test_on_update_and_observers(self, config):
        """Test both callbacks receive old and new values."""
        from liveconf.core.config.opt import int_opt

        on_update = MagicMock()
        observer = MagicMock()
        config.register_opts(int_opt("port", 1, on_update=on_update), group="server")
        config.observe(observer)

        config.set("server.port", 2)

        on_update.assert_called_once_with(1, 2)
        observer.assert_called_once_with("server", "port", 1, 2)

    def test_failing_callbacks_are_reported(self, config, errors):
        """Test callback failures reach the error handler and never propagate."""
        from liveconf.core.config.opt import int_opt

        def boom(old, new):
            raise RuntimeError("on_update failed")

        config.register_opts(int_opt("a", on_update=boom), int_opt("b"))
        config.observe(MagicMock(side_effect=RuntimeError("observer failed")))

        assert config.load_dataset(_json({"a": 1, "b": 2}))

        assert config.get("b") == 2
        assert [str(e) for e in errors] == [
            "on_update failed",
            "observer failed",
            "observer failed",
        ]

    def test_remove_observer(self, config):
        from liveconf.core.config.opt import int_opt

        observer = config.observe(MagicMock())
        config.register_opts(int_opt("a"))

        assert config.remove_observer(observer)
        assert not config.remove_observer(observer)
        config.set("a", 1)
        observer.assert_not_called()

    def test_error_handler_required(self, config):
        with pytest.raises(ValueError):
            config.set_error_handler(None)

    def test_error_handler_failure_is_logged(self, config, caplog):
        from liveconf.core.config.errors import SourceError

        config.set_error_handler(MagicMock(side_effect=RuntimeError("handler")))

        config.handle_error(SourceError("s", cause=OSError("x")))

        assert "handler failed" in caplog.text

    def test_default_handler_filters_benign(self, caplog):
        import logging

        from liveconf.core.config.errors import FrozenOptError, NoOptError, SourceError
        from liveconf.core.config.manager import default_error_handler

        with caplog.at_level(logging.DEBUG, logger="liveconf.core.config.manager"):
            default_error_handler(NoOptError("g", "x"))
            default_error_handler(FrozenOptError("g", "x"))
            default_error_handler(SourceError("s", cause=OSError("down")))

        levels = [r.levelname for r in caplog.records]
        assert levels == ["DEBUG", "DEBUG", "ERROR"]

    def test_generation(self, server_config):
        before = server_config.generation
        server_config.set("server.port", 1)
        assert server_config.generation == before + 1


class TestSnapshot:
    """Tests for snapshot and traverse."""

    def test_snapshot_only_set_options(self, server_config):
        server_config.set("server.port", 1)

        assert server_config.snapshot() == {"server.port": 1}

    def test_traverse_sorted(self, config):
        from liveconf.core.config.opt import int_opt

        config.register_opts(int_opt("z", 1), int_opt("a", 2))
        config.register_opts(int_opt("b", 3), group="g")
        seen = []

        config.traverse(lambda group, opt, value: seen.append((group.full_name, opt.name, value)))

        assert seen == [("", "a", 2), ("", "z", 1), ("g", "b", 3)]

    def test_backup_file(self, tmp_path):
        """Test the backup file is loaded and rewritten after changes."""
        from liveconf.core.config.manager import Config
        from liveconf.core.config.opt import duration_opt, int_opt

        path = tmp_path / "backup.json"
        path.write_text(json.dumps({"server.port": 1234}))

        with Config() as config:
            config.register_opts(int_opt("port", 8080), duration_opt("timeout", "1s"), group="server")

            assert config.load_backup_file(path, interval=0.01)
            assert config.get("server.port") == 1234

            config.set("server.timeout", "90s")
            deadline = time.monotonic() + 5
            while time.monotonic() < deadline:
                data = json.loads(path.read_text())
                if "server.timeout" in data:
                    break
                time.sleep(0.01)

        assert json.loads(path.read_text()) == {"server.port": 1234, "server.timeout": "1m30s"}


class TestLifecycle:
    """Tests for close and the reload signal."""

    def test_double_close(self, config):
        config.close()
        config.close()

        assert config.closed
        assert config.wait_closed(0)

    def test_no_watch_after_close(self, config, tmp_path):
        from liveconf.core.config.sources import FileSource

        config.close()
        config.load_source(FileSource(str(tmp_path / "a.json"), interval=0.01))

        assert config.watchers == []

    def test_read_failure(self, config, errors):
        from liveconf.core.config.errors import SourceError
        from liveconf.core.config.sources import Source

        source = MagicMock(spec=Source)
        source.name = "broken"
        source.supports_watch = False
        source.read.side_effect = OSError("unreachable")

        assert config.load_source(source) is False
        assert isinstance(errors[0], SourceError)
        assert errors[0].source == "broken"

    def test_reload_sources(self, server_config):
        from liveconf.core.config.sources import MapSource

        server_config.set("server.port", 1)

        assert server_config.reload_sources(MapSource({"server": {"port": 2}}))
        assert server_config.get("server.port") == 2

    @pytest.mark.skipif(not hasattr(signal, "SIGHUP"), reason="SIGHUP not available")
    def test_reload_signal(self, server_config):
        """Test the signal handler re-reads sources with force."""
        from liveconf.core.config.sources import MapSource

        server_config.set("server.port", 1)
        previous = server_config.install_reload_signal(MapSource({"server": {"port": 2}}))
        try:
            os.kill(os.getpid(), signal.SIGHUP)
            deadline = time.monotonic() + 5
            while server_config.get("server.port") != 2 and time.monotonic() < deadline:
                time.sleep(0.01)
        finally:
            signal.signal(signal.SIGHUP, previous)

        assert server_config.get("server.port") == 2


class TestSettings:
    """Tests for LiveconfSettings."""

    def test_env_overrides(self):
        from liveconf.core.config.settings import get_settings, reset_settings

        os.environ["LIVECONF_GROUP_SEPARATOR"] = "/"
        os.environ["LIVECONF_FILE_WATCH_INTERVAL"] = "0.5"
        reset_settings()

        settings = get_settings()
        assert settings.group_separator == "/"
        assert settings.file_watch_interval == 0.5
        assert get_settings() is settings

    def test_custom_separator(self):
        from liveconf.core.config.manager import Config
        from liveconf.core.config.opt import int_opt

        with Config(separator="/") as config:
            config.register_opts(int_opt("port"), group="a/b")
            config.load_dataset(_json({"a": {"b": {"port": 3}}}))

            assert config.get("a/b/port") == 3
            assert config.snapshot() == {"a/b/port": 3}
