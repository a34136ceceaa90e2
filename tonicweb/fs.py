"""File systems rooted at a local directory, optionally without listings."""

from __future__ import annotations

import errno
import operator
import os
import posixpath
from dataclasses import dataclass
from pathlib import Path
from typing import Any


class _LocalFile:
    """An opened file or directory inside a :class:`LocalFileSystem`."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._handle = None if path.is_dir() else open(path, "rb")
        self._pending: list[os.DirEntry] | None = None

    @property
    def name(self) -> str:
        return self.path.name

    def _require_file(self):
        if self._handle is None:
            raise IsADirectoryError(errno.EISDIR, "is a directory", str(self.path))
        return self._handle

    def read(self, size: int = -1) -> bytes:
        return self._require_file().read(size)

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        return self._require_file().seek(offset, whence)

    def stat(self) -> os.stat_result:
        return self.path.stat()

    def readdir(self, count: int) -> list[os.DirEntry]:
        """Return up to ``count`` entries (all remaining when ``count`` <= 0)."""
        if self._handle is not None:
            raise NotADirectoryError(errno.ENOTDIR, "not a directory", str(self.path))
        if self._pending is None:
            with os.scandir(self.path) as entries:
                self._pending = sorted(entries, key=lambda entry: entry.name)
        if count <= 0:
            batch, self._pending = self._pending, []
        else:
            batch, self._pending = self._pending[:count], self._pending[count:]
        return batch

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()

    def __enter__(self) -> _LocalFile:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


@dataclass(frozen=True)
class LocalFileSystem:
    """Files below ``root``; names never escape the root."""

    root: str = "."

    def open(self, name: str) -> _LocalFile:
        if os.sep != "/" and os.sep in name:
            raise ValueError("invalid character in file path")
        cleaned = posixpath.normpath("/" + name.lstrip("/")).lstrip("/")
        return _LocalFile(Path(self.root or ".").joinpath(cleaned))


class NeuteredFile:
    """Wraps a file so that directory listing yields nothing."""

    def __init__(self, file: Any) -> None:
        self._file = file

    def __getattr__(self, name: str) -> Any:
        return getattr(self._file, name)

    def readdir(self, count: int) -> list:
        """Check ``count`` and report no entries, hiding the directory's contents."""
        operator.index(count)
        hidden: list = []
        return hidden

    def __enter__(self) -> NeuteredFile:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self._file.close()


@dataclass(frozen=True)
class OnlyFilesFileSystem:
    """A file system whose opened directories cannot be listed."""

    fs: Any

    def open(self, name: str) -> NeuteredFile:
        return NeuteredFile(self.fs.open(name))


def directory(root: str, list_directory: bool) -> LocalFileSystem | OnlyFilesFileSystem:
    """Return a file system at ``root``, listing directories only if asked."""
    fs = LocalFileSystem(root)
    if list_directory:
        return fs
    return OnlyFilesFileSystem(fs)