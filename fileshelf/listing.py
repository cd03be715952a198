"""Directory listings, size formatting and log appending for the file server."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable
from urllib.parse import quote

_PATH_SEGMENT_SAFE = ":@&=+$"
_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def human_readable_size(size: int) -> str:
    """Format a byte count as B, KB, MB or GB with one decimal above bytes."""
    if size < 1024:
        return f"{size}B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f}KB"
    if size < 1024 * 1024 * 1024:
        return f"{size / 1024 / 1024:.1f}MB"
    return f"{size / 1024 / 1024 / 1024:.1f}GB"


def path_escape(name: str) -> str:
    """Escape a name so it can be used as a single URL path segment."""
    return quote(name, safe=_PATH_SEGMENT_SAFE)


@dataclass(frozen=True)
class _Entry:
    name: str
    is_dir: bool
    size: int
    mtime: float

    @property
    def mod_time(self) -> int:
        return int(self.mtime)

    @property
    def mod_time_str(self) -> str:
        return datetime.fromtimestamp(self.mtime).strftime(_TIME_FORMAT)


def _directory_path(root_dir: str, uri: str) -> str:
    return os.path.join(root_dir, *(part for part in uri.split("/") if part))


def _entries(root_dir: str, uri: str) -> list[_Entry]:
    with os.scandir(_directory_path(root_dir, uri)) as iterator:
        found = sorted(iterator, key=lambda entry: entry.name)
    entries = []
    for entry in found:
        info = entry.stat(follow_symlinks=False)
        entries.append(
            _Entry(
                name=entry.name,
                is_dir=entry.is_dir(follow_symlinks=False),
                size=info.st_size,
                mtime=info.st_mtime,
            )
        )
    return entries


def list_directory(root_dir: str, uri: str) -> list[dict]:
    """Describe every entry of the directory at ``uri`` below ``root_dir``."""
    return [
        {
            "name": entry.name,
            "url": path_escape(entry.name),
            "size": entry.size,
            "sizeStr": human_readable_size(entry.size),
            "modTime": entry.mod_time,
            "modTimeStr": entry.mod_time_str,
            "isDir": entry.is_dir,
        }
        for entry in _entries(root_dir, uri)
    ]


def _quoted(name: str) -> str:
    return name.replace("'", "\\'")


def render_index(root_dir: str, uri: str, template: str) -> str:
    """Render the HTML index page for a directory: directories first, then files."""
    entries = _entries(root_dir, uri)
    parts = [template, f"<script>start('{uri}');</script>"]
    if uri != "/":
        parts.append("<script>onHasParentDirectory();</script>")
    parts.extend(
        f"<script>addRow('{_quoted(entry.name)}', '{path_escape(entry.name)}', 1, 0, '', "
        f"{entry.mod_time}, '{entry.mod_time_str}');</script>\n"
        for entry in entries
        if entry.is_dir
    )
    parts.extend(
        f"<script>addRow('{_quoted(entry.name)}', '{path_escape(entry.name)}', 0, "
        f"{entry.size}, '{human_readable_size(entry.size)}', "
        f"{entry.mod_time}, '{entry.mod_time_str}');</script>\n"
        for entry in entries
        if not entry.is_dir
    )
    return "".join(parts)


def is_sub_dir(parent: str, child: str) -> bool:
    """Tell whether ``child`` is ``parent`` itself or lies below it."""
    parent = os.path.abspath(parent)
    child = os.path.abspath(child)
    return child == parent or child.startswith(parent + os.sep)


def save_log(directory: str, name: str, logs: Iterable[str]) -> None:
    """Append log lines to ``<name>.log`` in ``directory``, creating it if needed."""
    log_file = os.path.join(directory, name + ".log")
    with open(log_file, "a", encoding="utf-8") as handle:
        handle.writelines(logs)
        handle.flush()
        os.fsync(handle.fileno())