"""Searching directories for files with given extensions."""

from __future__ import annotations

import os
from collections.abc import Iterable

from shapetrack.dirlist import list_dir_sorted


def find_files_in_dir(
    directory: str | os.PathLike,
    extensions: str | Iterable[str],
    strip_extension: bool,
    recursive: bool,
) -> list[str]:
    """Find files whose extension is one of `extensions`.

    Directories that cannot be listed are skipped. With `strip_extension`
    the part of each path from its last "." on is removed.
    """
    wanted = [extensions] if isinstance(extensions, str) else list(extensions)
    files: list[str] = []
    pending = [os.fspath(directory)]
    while pending:
        dir_path = pending.pop()
        try:
            entries = list_dir_sorted(dir_path)
        except OSError:
            continue
        for entry in entries:
            if entry.is_dir:
                if recursive and entry.name not in (".", ".."):
                    pending.append(entry.path)
                continue
            if entry.extension not in wanted:
                continue
            if strip_extension:
                cut = entry.path.rfind(".")
                files.append(entry.path if cut < 0 else entry.path[:cut])
            else:
                files.append(entry.path)
    return files