"""Tests for the template function library."""

from datetime import datetime, timezone

import pytest

from starfish_gateway.rewrite.functions import default_functions, format_size, format_time, format_unix, to_int


class TestFormatSize:
    """Tests for format_size."""

    @pytest.mark.parametrize(
        "size,unit,expected",
        [
            (1048576, "mb", "1"),
            (1048576, "MB", "1"),
            (1536, "kb", "1"),
            (5, "b", "5"),
            (5, "bytes", "5"),
            (3 * 1024**3, "gb", "3"),
            (2 * 1024**4, "tb", "2"),
            (1024, "auto", "1KB"),
            (512, "auto", "512B"),
            (5 * 1024**2 + 10, "auto", "5MB"),
            (1024**3, "auto", "1GB"),
            (1024**4, "auto", "1TB"),
            (2048, "furlongs", "2048"),
        ],
    )
    def test_units(self, size: int, unit: str, expected: str) -> None:
        assert format_size(size, unit) == expected


class TestTimeFormatting:
    """Tests for time formatting."""

    def test_format_unix_default_layout(self) -> None:
        assert format_unix(1705316400) == "2024/01/15"

    def test_format_unix_custom_layout(self) -> None:
        assert format_unix(1705316400, "%m/%d/%Y") == "01/15/2024"

    def test_format_unix_unknown_is_empty(self) -> None:
        assert format_unix(0) == ""

    def test_format_unix_out_of_range_is_empty(self) -> None:
        assert format_unix(1705316400000) == ""
        assert format_time(1705316400000, "%Y") == ""

    def test_format_time_datetime(self) -> None:
        dt = datetime(2023, 12, 31, 23, 59, tzinfo=timezone.utc)
        assert format_time(dt, "%Y-%m") == "2023-12"

    def test_format_time_none(self) -> None:
        assert format_time(None) == ""


class TestToInt:
    """Tests for to_int."""

    def test_conversions(self) -> None:
        assert to_int(12) == 12
        assert to_int("42abc") == 42
        assert to_int("-7") == -7
        assert to_int("abc") == 0
        assert to_int(3.9) == 3
        assert to_int(None) == 0


class TestDefaultFunctions:
    """Tests for the registered function table."""

    @pytest.fixture
    def call(self):
        table = default_functions()

        def _call(name: str, *args):
            func = table.get(name)
            assert func is not None, name
            return func(*args)

        return _call

    def test_registers_full_library(self) -> None:
        table = default_functions()
        for name in [
            "lower", "upper", "title", "trim", "trim_left", "trim_right", "replace",
            "replace_all", "has_prefix", "has_suffix", "contains", "join", "split",
            "base", "dir", "ext", "clean", "join_path", "format_time", "format_unix",
            "format_size", "add", "sub", "mul", "div", "first", "last", "index",
            "length", "if", "default", "eq", "ne", "not", "to_string", "to_int",
        ]:
            assert name in table

    def test_strings(self, call) -> None:
        assert call("title", "hello world") == "Hello World"
        assert call("trim", "  x  ") == "x"
        assert call("trim_right", "path///", "/") == "path"
        assert call("replace", "a-b-c", "-", "_", 1) == "a_b-c"
        assert call("replace_all", "a-b-c", "-", "_") == "a_b_c"
        assert call("split", "a,b", ",") == ["a", "b"]
        assert call("contains", ["x", "y"], "y") is True
        assert call("contains", "haystack", "st") is True

    def test_paths(self, call) -> None:
        assert call("base", "projects/a/report.pdf") == "report.pdf"
        assert call("dir", "projects/a/report.pdf") == "projects/a"
        assert call("ext", "report.tar.gz") == ".gz"
        assert call("clean", "a//b/../c") == "a/c"
        assert call("join_path", "a", "", "b/c") == "a/b/c"

    def test_integers(self, call) -> None:
        assert call("add", 2, 3) == 5
        assert call("sub", 2, 3) == -1
        assert call("mul", "4", 3) == 12
        assert call("div", 7, 2) == 3
        assert call("div", -7, 2) == -3
        assert call("div", 7, 0) == 0

    def test_lists(self, call) -> None:
        assert call("first", ["a", "b"]) == "a"
        assert call("last", ["a", "b"]) == "b"
        assert call("first", []) == ""
        assert call("index", ["a", "b"], 1) == "b"
        assert call("index", ["a", "b"], 5) == ""
        assert call("length", ["a", "b"]) == 2

    def test_conditionals(self, call) -> None:
        assert call("if", True, "yes", "no") == "yes"
        assert call("default", "", "fallback") == "fallback"
        assert call("default", "set", "fallback") == "set"
        assert call("eq", 1, 1) is True
        assert call("ne", 1, 1) is False
        assert call("not", "") is True
        assert call("to_string", False) == "false"
