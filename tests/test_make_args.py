"""Tests for builds/make_args.py module."""

import pytest

from android_kernel_builder.builds.make_args import (
    DENIED_MAKE_KEYS,
    filter_make_args,
    make_arg_key,
    parse_extra_make_args,
)


class TestMakeArgKey:
    """Tests for make_arg_key function."""

    def test_assignment(self):
        """Should return the variable name of KEY=value."""
        assert make_arg_key("LOCALVERSION=-custom") == "LOCALVERSION"

    def test_value_with_equals(self):
        """Should split on the first equals sign only."""
        assert make_arg_key("KCFLAGS=-DFOO=1") == "KCFLAGS"

    def test_option_and_target(self):
        """Should return None for options and targets."""
        assert make_arg_key("-j8") is None
        assert make_arg_key("menuconfig") is None

    @pytest.mark.parametrize("arg", ["CC:=clang", "CC::=clang", "CC+=-v", "CC?=gcc", "CC!=echo gcc"])
    def test_assignment_operators(self, arg):
        """Should strip make assignment operators from the key."""
        assert make_arg_key(arg) == "CC"


class TestFilterMakeArgs:
    """Tests for filter_make_args function."""

    @pytest.mark.parametrize("key", sorted(DENIED_MAKE_KEYS))
    def test_every_denied_key_is_dropped(self, key):
        """Should drop each denied variable."""
        assert filter_make_args([f"{key}=x", "-j8"]) == ["-j8"]

    def test_shell_override(self):
        """Should drop SHELL overrides whatever the value."""
        args = ["SHELL=/bin/bash", 'SHELL=/bin/sh -c "rm -rf /"', "-j8"]
        assert filter_make_args(args) == ["-j8"]

    def test_safe_args_keep_order(self):
        """Should keep safe arguments unchanged and in order."""
        args = ["-j8", "V=1", "LOCALVERSION=-custom", "menuconfig"]
        assert filter_make_args(args) == args

    def test_mixed_args(self):
        """Should remove only denied arguments from a mixed list."""
        args = ["V=1", "CC=gcc", "KCFLAGS=-O2", "O=/tmp/out", "Image.gz"]
        assert filter_make_args(args) == ["V=1", "KCFLAGS=-O2", "Image.gz"]

    def test_shell_metacharacters_pass_through(self):
        """Should not sanitize values, only keys."""
        args = ["-j8; rm -rf /", "V=$(whoami)", "V=`id` | cat", "LOCALVERSION=../escape"]
        assert filter_make_args(args) == args

    def test_all_denied(self):
        """Should return an empty list when every argument is denied."""
        assert filter_make_args(["CC=gcc", "LD=ld", "SHELL=/bin/sh"]) == []

    def test_empty(self):
        """Should handle an empty list."""
        assert filter_make_args([]) == []

    def test_assignment_operators_are_denied(self):
        """Should drop denied variables set with any assignment operator."""
        args = ["CC:=/tmp/evil", "CROSS_COMPILE+=x", "SHELL?=/bin/sh", "-j8", "KCFLAGS+=-O2"]
        assert filter_make_args(args) == ["-j8", "KCFLAGS+=-O2"]

    def test_key_match_is_exact(self):
        """Should keep variables that only share a prefix with a denied key."""
        assert filter_make_args(["CCACHE_DIR=/tmp", "ARCH_FOO=1"]) == ["CCACHE_DIR=/tmp", "ARCH_FOO=1"]


class TestParseExtraMakeArgs:
    """Tests for parse_extra_make_args function."""

    def test_valid_array(self):
        """Should parse a JSON array of strings."""
        assert parse_extra_make_args('["-j8", "V=1"]') == ["-j8", "V=1"]

    def test_empty_string(self):
        """Should return an empty list for empty input."""
        assert parse_extra_make_args("") == []
        assert parse_extra_make_args("   ") == []
        assert parse_extra_make_args(None) == []

    def test_invalid_json(self):
        """Should return an empty list for invalid JSON."""
        assert parse_extra_make_args("not valid json") == []

    def test_non_array(self):
        """Should return an empty list for a JSON object."""
        assert parse_extra_make_args('{"key": "value"}') == []
