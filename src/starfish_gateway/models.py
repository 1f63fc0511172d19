"""Data types shared by the cache, rewrite engine and listing converter."""

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from typing import Any

FILE_TYPE_CODE = 32768

# Starfish JSON field name -> Entry attribute
API_FIELD_MAP = {
    "_id": "id",
    "fn": "filename",
    "parent_path": "parent_path",
    "full_path": "full_path",
    "type": "type",
    "size": "size",
    "mode": "mode",
    "uid": "uid",
    "gid": "gid",
    "ct": "create_time_unix",
    "mt": "modify_time_unix",
    "at": "access_time_unix",
    "volume": "volume",
    "ino": "inode",
    "size_unit": "size_unit",
    "tags_explicit": "tags_explicit_str",
    "tags_inherited": "tags_inherited_str",
}


def _unix_to_datetime(timestamp: int) -> datetime | None:
    if timestamp <= 0:
        return None
    try:
        return datetime.fromtimestamp(timestamp, tz=timezone.utc)
    except (ValueError, OverflowError, OSError):
        # Beyond year 9999, e.g. milliseconds reported as seconds
        return None


def split_tags(value: str) -> list[str]:
    """Split a comma-joined tag string. Empty input yields an empty list."""
    if not value:
        return []
    return value.split(",")


@dataclass(frozen=True)
class Entry:
    """A single file or directory record from the Starfish index.

    Timestamps are seconds since the epoch; zero means unknown.
    """

    id: int = 0
    filename: str = ""
    parent_path: str = ""
    full_path: str = ""
    type: int | str = 0
    size: int = 0
    mode: str = ""
    uid: int = 0
    gid: int = 0
    create_time_unix: int = 0
    modify_time_unix: int = 0
    access_time_unix: int = 0
    volume: str = ""
    inode: int = 0
    size_unit: str = ""
    tags_explicit_str: str = ""
    tags_inherited_str: str = ""

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Entry":
        """Build an entry from a Starfish query row.

        Unknown keys are ignored; missing or null values fall back to defaults.
        """
        defaults = {f.name: f.default for f in fields(cls)}
        values: dict[str, Any] = {}
        for api_name, attr in API_FIELD_MAP.items():
            raw = data.get(api_name)
            if raw is None:
                continue
            default = defaults[attr]
            if isinstance(default, int) and attr != "type":
                try:
                    raw = int(raw)
                except (TypeError, ValueError):
                    raw = default
            elif isinstance(default, str):
                raw = str(raw)
            values[attr] = raw
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        """Raw attributes as a plain dictionary."""
        return asdict(self)

    @property
    def modify_time(self) -> datetime | None:
        return _unix_to_datetime(self.modify_time_unix)

    @property
    def create_time(self) -> datetime | None:
        return _unix_to_datetime(self.create_time_unix)

    @property
    def access_time(self) -> datetime | None:
        return _unix_to_datetime(self.access_time_unix)

    @property
    def is_file(self) -> bool:
        return self.type in (FILE_TYPE_CODE, "f")

    @property
    def tags_explicit(self) -> list[str]:
        return split_tags(self.tags_explicit_str)

    @property
    def tags_inherited(self) -> list[str]:
        return split_tags(self.tags_inherited_str)

    @property
    def all_tags(self) -> list[str]:
        """Explicit and inherited tags, deduplicated in first-seen order."""
        return list(dict.fromkeys(self.tags_explicit + self.tags_inherited))


@dataclass
class QueryResult:
    """Flat entry set returned by one upstream query."""

    entries: list[Entry] = field(default_factory=list)
    total: int = 0


@dataclass
class CachedResult:
    """A cached query result with expiry metadata."""

    data: QueryResult
    cached_at: float
    expires_at: float
    volume_and_path: str = ""
    hit_count: int = 0

    def is_valid(self, now: float) -> bool:
        return now < self.expires_at


@dataclass(frozen=True)
class ListingParams:
    """Per-request listing parameters."""

    prefix: str = ""
    delimiter: str = ""
    start_after: str = ""
    max_keys: int = 1000


@dataclass(frozen=True)
class ObjectInfo:
    """One object in a listing or a HEAD response."""

    key: str
    size: int
    last_modified: datetime | None
    etag: str
    volume: str = ""
    source_path: str = ""


@dataclass
class ListingResult:
    """Grouped, paginated listing of a bucket."""

    bucket: str
    objects: list[ObjectInfo] = field(default_factory=list)
    common_prefixes: list[str] = field(default_factory=list)
    is_truncated: bool = False
    prefix: str = ""
    delimiter: str = ""
    start_after: str = ""
    max_keys: int = 1000
    next_marker: str | None = None

    @property
    def key_count(self) -> int:
        return len(self.objects) + len(self.common_prefixes)


@dataclass(frozen=True)
class BucketInfo:
    """A bucket backed by a Starfish collection tag."""

    name: str
    collection_tag: str
    creation_date: datetime
