"""Render context exposed to path templates."""

import posixpath
from typing import Any

from starfish_gateway.models import Entry
from starfish_gateway.rewrite.functions import DEFAULT_DATE_LAYOUT, format_size, format_time


def build_context(entry: Entry, original_key: str) -> dict[str, Any]:
    """Build the fields a template can reference for one entry.

    Raw entry attributes are available under their own names and under
    ``entry``. `parent_dir` is the directory above `parent_path`.
    """
    raw = entry.to_dict()
    extension = posixpath.splitext(entry.filename)[1]
    context: dict[str, Any] = dict(raw)
    context.update(
        entry=raw,
        original_key=original_key,
        modify_time=entry.modify_time,
        create_time=entry.create_time,
        access_time=entry.access_time,
        modify_date=format_time(entry.modify_time, DEFAULT_DATE_LAYOUT),
        create_date=format_time(entry.create_time, DEFAULT_DATE_LAYOUT),
        access_date=format_time(entry.access_time, DEFAULT_DATE_LAYOUT),
        size_formatted=format_size(entry.size, "auto"),
        filename_without_ext=entry.filename[: len(entry.filename) - len(extension)],
        extension=extension,
        parent_dir=posixpath.dirname(entry.parent_path),
        volume_name=entry.volume,
        uid_str=str(entry.uid),
        gid_str=str(entry.gid),
        size_str=str(entry.size),
        inode_str=str(entry.inode),
        tags_explicit=entry.tags_explicit,
        tags_inherited=entry.tags_inherited,
        all_tags=entry.all_tags,
    )
    return context
