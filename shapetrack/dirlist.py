"""Directory listing with file type information.

Listings include the "." and ".." entries. Paths of entries are formed as
the directory path, a "/" and the entry name.
"""

from __future__ import annotations

import errno
import os
import stat
from dataclasses import dataclass

_PATH_MAX = 4096
_FILENAME_MAX = 256


@dataclass(frozen=True)
class DirEntry:
    """One entry of a directory."""

    path: str
    name: str
    extension: str
    is_dir: bool
    is_reg: bool


def _os_error(code: int, filename: str) -> OSError:
    return OSError(code, os.strerror(code), filename)


def _extension(name: str) -> str:
    _, dot, tail = name.rpartition(".")
    return tail if dot else ""


def _check_path(path: str) -> None:
    if not path:
        raise _os_error(errno.EINVAL, path)
    if len(os.fsencode(path)) >= _PATH_MAX:
        raise _os_error(errno.ENAMETOOLONG, path)


def _entry_names(path: str) -> list[str]:
    try:
        names = os.listdir(path)
    except OSError as exc:
        raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), path) from exc
    return [".", "..", *names]


def read_entry(directory: str, name: str) -> DirEntry:
    """Describe the entry `name` of `directory`; raises OSError on failure."""
    directory = os.fspath(directory)
    dir_len = len(os.fsencode(directory))
    name_len = len(os.fsencode(name))
    path = f"{directory}/{name}"
    if dir_len + name_len + 1 >= _PATH_MAX or name_len >= _FILENAME_MAX:
        raise _os_error(errno.ENAMETOOLONG, path)
    mode = os.stat(path).st_mode
    return DirEntry(
        path=path,
        name=name,
        extension=_extension(name),
        is_dir=stat.S_ISDIR(mode),
        is_reg=stat.S_ISREG(mode),
    )


def list_dir_sorted(path: str) -> list[DirEntry]:
    """List a directory: directories first, then by name.

    Raises OSError if the directory cannot be read or any entry cannot be
    described.
    """
    path = os.fspath(path)
    _check_path(path)
    entries = [read_entry(path, name) for name in _entry_names(path)]
    entries.sort(key=lambda entry: (not entry.is_dir, os.fsencode(entry.name)))
    return entries


def _split(path: str) -> tuple[str, str]:
    stripped = path.rstrip("/")
    if not stripped:
        return "/", "/"
    head, sep, base = stripped.rpartition("/")
    if not sep:
        return ".", base
    return head.rstrip("/") or "/", base


def open_file(path: str) -> DirEntry:
    """Describe a single file by looking it up in its parent directory."""
    path = os.fspath(path)
    _check_path(path)
    dir_name, base_name = _split(path)
    _check_path(dir_name)
    for name in _entry_names(dir_name):
        entry = read_entry(dir_name, name)
        if entry.name == base_name:
            return entry
    raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), path)