"""Conversion of flat Starfish entries into S3-style hierarchical listings.

Entries arrive sorted by parent path then filename; the converter keeps that
order and never re-sorts. Keys are grouped under common prefixes when a
delimiter is given, and the number of plain objects drives truncation.
"""

import posixpath
from collections.abc import Iterable

from starfish_gateway.models import Entry, ListingParams, ListingResult, ObjectInfo
from starfish_gateway.rewrite.engine import PathRewriter


def build_object_key(entry: Entry) -> str:
    """Source key of an entry before any rewrite.

    `full_path` wins when present; otherwise the parent path and filename
    are joined. The leading slash is dropped either way.
    """
    if entry.full_path:
        return entry.full_path.lstrip("/")
    if entry.parent_path:
        return posixpath.normpath(posixpath.join(entry.parent_path, entry.filename)).lstrip("/")
    return entry.filename


def should_be_common_prefix(key: str, prefix: str, delimiter: str) -> bool:
    """Whether a key folds into a common prefix.

    The key must start with `prefix` and the remainder must contain the
    delimiter with at least one character after it.
    """
    if not delimiter or not key.startswith(prefix):
        return False
    remainder = key[len(prefix):]
    index = remainder.find(delimiter)
    if index == -1:
        return False
    return index + len(delimiter) < len(remainder)


def get_common_prefix(key: str, prefix: str, delimiter: str) -> str:
    """`prefix` plus the remainder up to and including the first delimiter."""
    remainder = key[len(prefix):]
    index = remainder.find(delimiter)
    if index == -1:
        return prefix
    return prefix + remainder[: index + len(delimiter)]


def generate_etag(entry: Entry) -> str:
    """Quoted identity tag derived from size and modification time.

    >>> generate_etag(Entry(size=10, modify_time_unix=1700000000))
    '"10-1700000000"'
    """
    return f'"{entry.size}-{entry.modify_time_unix}"'


def to_object_info(entry: Entry, key: str) -> ObjectInfo:
    return ObjectInfo(
        key=key,
        size=entry.size,
        last_modified=entry.modify_time,
        etag=generate_etag(entry),
        volume=entry.volume,
        source_path=build_object_key(entry),
    )


class ListingConverter:
    """Turns a flat entry sequence into a bucket listing.

    With `strict_prefix` False, entries whose presented key does not start
    with the requested prefix are still listed as plain objects. Set it to
    True to drop them instead.
    """

    def __init__(self, rewriter: PathRewriter | None = None, strict_prefix: bool = False) -> None:
        self.rewriter = rewriter or PathRewriter()
        self.strict_prefix = strict_prefix

    def presented_key(self, entry: Entry, scope: str) -> str:
        """Key an entry is listed under in `scope`."""
        return self.rewriter.rewrite(entry, build_object_key(entry), scope)

    def convert(self, entries: Iterable[Entry], scope: str, params: ListingParams) -> ListingResult:
        """Build the listing for one request.

        Args:
            entries: Flat entries in upstream order
            scope: Bucket the listing is presented under
            params: Prefix, delimiter, start-after cursor and page size
        """
        result = ListingResult(
            bucket=scope,
            prefix=params.prefix,
            delimiter=params.delimiter,
            start_after=params.start_after,
            max_keys=params.max_keys,
        )
        seen_prefixes: set[str] = set()
        count = 0

        for entry in entries:
            # max_keys of 0 means unlimited
            if params.max_keys > 0 and count >= params.max_keys:
                result.is_truncated = True
                break

            key = self.presented_key(entry, scope)

            if params.start_after and key <= params.start_after:
                continue

            if self.strict_prefix and not key.startswith(params.prefix):
                continue

            if should_be_common_prefix(key, params.prefix, params.delimiter):
                common_prefix = get_common_prefix(key, params.prefix, params.delimiter)
                if common_prefix not in seen_prefixes:
                    seen_prefixes.add(common_prefix)
                    result.common_prefixes.append(common_prefix)
                continue

            result.objects.append(to_object_info(entry, key))
            count += 1

        if result.is_truncated and result.objects:
            result.next_marker = result.objects[-1].key
        return result
