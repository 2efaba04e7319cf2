"""Tests for option descriptors and validators."""

from __future__ import annotations

from datetime import timedelta

import pytest


class TestOpt:
    """Tests for Opt."""

    def test_default_is_coerced(self):
        """Test the default is converted to the option kind."""
        from liveconf.core.config.opt import duration_opt, int_opt

        assert int_opt("port", "8080").default == 8080
        assert duration_opt("timeout", "1s").default == timedelta(seconds=1)

    def test_invalid_default(self):
        from liveconf.core.config.opt import int_opt

        with pytest.raises(ValueError):
            int_opt("port", "abc")

    def test_invalid_name(self):
        from liveconf.core.config.opt import str_opt

        with pytest.raises(ValueError):
            str_opt("")
        with pytest.raises(ValueError):
            str_opt(" host")

    def test_builders_return_new_records(self):
        """Test with_* builders never mutate the receiver."""
        from liveconf.core.config.opt import int_opt

        base = int_opt("port", 80)
        changed = base.with_default(81).with_help("Port").with_short("p").as_cli()

        assert base.default == 80
        assert base.help == ""
        assert not base.is_cli
        assert changed.default == 81
        assert changed.help == "Port"
        assert changed.short == "p"
        assert changed.is_cli

    def test_validator_builders(self):
        from liveconf.core.config.opt import int_opt
        from liveconf.core.config.validators import max_value, min_value

        low, high = min_value(1), max_value(10)
        opt = int_opt("n").with_validators(low)

        assert opt.add_validators(high).validators == (low, high)
        assert opt.with_validators(high).validators == (high,)

    def test_parse_keeps_values_of_the_kind(self):
        """Test values that already have the option kind are returned without conversion."""
        from unittest.mock import patch

        from liveconf.core.config.opt import duration_opt, ints_opt, uint_opt

        timeout = timedelta(seconds=5)
        ids = [1, 2]

        with patch("liveconf.core.config.opt.coerce") as coerce:
            assert duration_opt("timeout").parse(timeout) is timeout
            parsed = ints_opt("ids").parse(ids)
        coerce.assert_not_called()
        assert parsed == ids
        assert parsed is not ids

        with pytest.raises(ValueError):
            uint_opt("count").parse(-1)

    def test_custom_parser(self):
        from liveconf.core.config.opt import str_opt

        opt = str_opt("name").with_parser(lambda v: str(v).upper())

        assert opt.parse("abc") == "ABC"

    def test_names_and_zero(self):
        from liveconf.core.config.opt import ints_opt

        opt = ints_opt("ids", aliases=["id_list"])

        assert opt.names() == ("ids", "id_list")
        assert opt.default is None
        assert opt.zero() == []


class TestOptSlot:
    """Tests for OptSlot."""

    def test_for_opt(self):
        from liveconf.core.config.opt import OptSlot, bool_opt

        slot = OptSlot.for_opt(bool_opt("debug", "true"))

        assert slot.read() == (True, False)
        assert not slot.frozen
        assert not slot.locked


class TestValidators:
    """Tests for validator factories."""

    def test_range_validators(self):
        from liveconf.core.config.validators import in_range, port, run_validator

        assert run_validator(in_range(1, 3), 2) is None
        assert "range" in run_validator(in_range(1, 3), 4)
        assert run_validator(port(), 0) is not None
        assert run_validator(port(), 65535) is None

    def test_false_return_rejects(self):
        from liveconf.core.config.validators import run_validator

        def is_even(value):
            return value % 2 == 0

        assert run_validator(is_even, 2) is None
        assert run_validator(is_even, 3) == "rejected by validator 'is_even'"

    def test_string_validators(self):
        from liveconf.core.config.validators import (
            email,
            not_empty,
            one_of,
            regex_match,
            run_validator,
            str_len,
            url,
        )

        assert run_validator(not_empty(), "") is not None
        assert run_validator(str_len(1, 3), "abcd") is not None
        assert run_validator(one_of(["a", "b"]), "c") is not None
        assert run_validator(regex_match(r"^\d+$"), "12") is None
        assert run_validator(url(), "https://example.com/x") is None
        assert run_validator(url(), "example.com") is not None
        assert run_validator(email(), "a@example.com") is None

    def test_address_validators(self):
        from liveconf.core.config.validators import address, ip, run_validator

        assert run_validator(ip(), "::1") is None
        assert run_validator(ip(), "300.1.1.1") is not None
        assert run_validator(address(), ":8080") is None
        assert run_validator(address(), "127.0.0.1:80") is None
        assert run_validator(address(), "[::1]:80") is None
        assert run_validator(address(), "example.com:443") is None
        assert run_validator(address(), "example.com") is not None
        assert run_validator(address(), "bad host:80") is not None

    def test_combinators(self):
        from liveconf.core.config.validators import any_of, each, ip, maybe, min_value, one_of, run_validator

        assert run_validator(maybe(ip()), "") is None
        assert run_validator(maybe(ip()), "x") is not None
        assert run_validator(any_of(one_of(["localhost"]), ip()), "localhost") is None
        assert run_validator(any_of(one_of(["localhost"]), ip()), "x") is not None
        assert run_validator(each(min_value(0)), [1, 2]) is None
        assert run_validator(each(min_value(0)), [1, -2]) is not None
