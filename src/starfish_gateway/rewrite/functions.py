"""Function library available to path templates.

Every function is pure: it depends only on its arguments and never touches
the filesystem, network or clock.
"""

import posixpath
import re
from datetime import datetime, timezone
from typing import Any

from starfish_gateway.rewrite.template import FunctionTable, to_text

DEFAULT_DATE_LAYOUT = "%Y/%m/%d"

KB = 1024
MB = KB * 1024
GB = MB * 1024
TB = GB * 1024

UNIT_DIVISORS = {
    "b": 1,
    "bytes": 1,
    "kb": KB,
    "mb": MB,
    "gb": GB,
    "tb": TB,
}

LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")


def format_size(size: int, unit: str = "auto") -> str:
    """Format a byte count.

    Fixed units return the bare integer quotient; "auto" picks the largest
    unit where the value is at least 1 and appends its suffix. Unknown units
    return the raw byte count.

    >>> format_size(1048576, "mb")
    '1'
    >>> format_size(1024, "auto")
    '1KB'
    """
    size = to_int(size)
    unit = (unit or "").lower()
    if unit == "auto":
        for suffix, divisor in (("TB", TB), ("GB", GB), ("MB", MB), ("KB", KB)):
            if size >= divisor:
                return f"{size // divisor}{suffix}"
        return f"{size}B"
    divisor = UNIT_DIVISORS.get(unit, 1)
    return str(size // divisor)


def format_unix(timestamp: Any, layout: str = DEFAULT_DATE_LAYOUT) -> str:
    """Format epoch seconds (UTC) with a strftime layout; empty when unknown."""
    timestamp = to_int(timestamp)
    if timestamp <= 0:
        return ""
    try:
        moment = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    except (ValueError, OverflowError, OSError):
        return ""
    return moment.strftime(layout)


def format_time(value: Any, layout: str = DEFAULT_DATE_LAYOUT) -> str:
    """Format a datetime (or epoch seconds) with a strftime layout."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.strftime(layout)
    return format_unix(value, layout)


def to_int(value: Any) -> int:
    """Coerce to an integer; strings use their leading digits, otherwise 0."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        match = LEADING_INT_RE.match(value)
        return int(match.group(1)) if match else 0
    return 0


def _div(a: Any, b: Any) -> int:
    a, b = to_int(a), to_int(b)
    if b == 0:
        return 0
    quotient = abs(a) // abs(b)
    return quotient if (a >= 0) == (b >= 0) else -quotient


def _sequence(value: Any) -> list[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def _first(value: Any) -> Any:
    items = _sequence(value)
    return items[0] if items else ""


def _last(value: Any) -> Any:
    items = _sequence(value)
    return items[-1] if items else ""


def _index(value: Any, position: Any) -> Any:
    items = _sequence(value)
    position = to_int(position)
    if 0 <= position < len(items):
        return items[position]
    return ""


def _length(value: Any) -> int:
    if isinstance(value, (list, tuple, str)):
        return len(value)
    return 0


def _join(value: Any, separator: str) -> str:
    if isinstance(value, str):
        return value
    return separator.join(to_text(item) for item in _sequence(value))


def _split(value: Any, separator: str) -> list[str]:
    text = to_text(value)
    if separator == "":
        return list(text)
    return text.split(separator)


def _replace(value: Any, old: str, new: str, count: Any = -1) -> str:
    return to_text(value).replace(old, new, to_int(count))


def _contains(value: Any, item: Any) -> bool:
    if isinstance(value, (list, tuple)):
        return item in value
    return to_text(item) in to_text(value)


def _base(path: str) -> str:
    return posixpath.basename(path.rstrip("/"))


def _clean(path: str) -> str:
    return posixpath.normpath(path) if path else ""


def _join_path(*parts: Any) -> str:
    pieces = [to_text(part) for part in parts if to_text(part)]
    if not pieces:
        return ""
    return posixpath.normpath(posixpath.join(*pieces))


def _ext(path: str) -> str:
    return posixpath.splitext(path)[1]


def _if(condition: Any, when_true: Any, when_false: Any) -> Any:
    return when_true if condition else when_false


def _default(value: Any, fallback: Any) -> Any:
    if value is None or value == "":
        return fallback
    return value


def default_functions() -> FunctionTable:
    """Build the function table used by the path rewriter."""
    return (
        FunctionTable()
        # Strings
        .register("lower", lambda s: to_text(s).lower())
        .register("upper", lambda s: to_text(s).upper())
        .register("title", lambda s: to_text(s).title())
        .register("trim", lambda s: to_text(s).strip())
        .register("trim_left", lambda s, chars: to_text(s).lstrip(chars))
        .register("trim_right", lambda s, chars: to_text(s).rstrip(chars))
        .register("replace", _replace)
        .register("replace_all", lambda s, old, new: to_text(s).replace(old, new))
        .register("has_prefix", lambda s, p: to_text(s).startswith(p))
        .register("has_suffix", lambda s, p: to_text(s).endswith(p))
        .register("contains", _contains)
        .register("join", _join)
        .register("split", _split)
        # Paths
        .register("base", _base)
        .register("dir", posixpath.dirname)
        .register("ext", _ext)
        .register("clean", _clean)
        .register("join_path", _join_path)
        # Time and size
        .register("format_time", format_time)
        .register("format_unix", format_unix)
        .register("format_size", format_size)
        # Integers
        .register("add", lambda a, b: to_int(a) + to_int(b))
        .register("sub", lambda a, b: to_int(a) - to_int(b))
        .register("mul", lambda a, b: to_int(a) * to_int(b))
        .register("div", _div)
        # Lists
        .register("first", _first)
        .register("last", _last)
        .register("index", _index)
        .register("length", _length)
        # Conditionals
        .register("if", _if)
        .register("default", _default)
        .register("eq", lambda a, b: a == b)
        .register("ne", lambda a, b: a != b)
        .register("not", lambda a: not a)
        # Conversions
        .register("to_string", to_text)
        .register("to_int", to_int)
    )
