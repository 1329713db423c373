"""Filesystem collaborator used for the managed audio library."""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Protocol, runtime_checkable

from scenestore.errors import StorageIOError

log = logging.getLogger(__name__)

__all__ = ["FileSystem", "LocalFileSystem", "unique_destination", "copy_into_library"]


@runtime_checkable
class FileSystem(Protocol):
    """Capability to move audio bytes in and out of the library."""

    def copy(self, src: Path, dest: Path) -> None: ...

    def read(self, path: Path) -> bytes: ...

    def write(self, path: Path, data: bytes) -> None: ...

    def exists(self, path: Path) -> bool: ...

    def create_dir_all(self, path: Path) -> None: ...


class LocalFileSystem:
    """:class:`FileSystem` backed by the local disk."""

    def copy(self, src: Path, dest: Path) -> None:
        try:
            shutil.copy2(src, dest)
        except OSError as exc:
            raise StorageIOError(f"Failed to copy {src} to {dest}: {exc}") from exc

    def read(self, path: Path) -> bytes:
        try:
            return Path(path).read_bytes()
        except OSError as exc:
            raise StorageIOError(f"Failed to read {path}: {exc}") from exc

    def write(self, path: Path, data: bytes) -> None:
        try:
            Path(path).write_bytes(data)
        except OSError as exc:
            raise StorageIOError(f"Failed to write {path}: {exc}") from exc

    def exists(self, path: Path) -> bool:
        return os.path.exists(path)

    def create_dir_all(self, path: Path) -> None:
        try:
            Path(path).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageIOError(f"Failed to create directory {path}: {exc}") from exc


def unique_destination(fs: FileSystem, directory: Path, file_name: str) -> Path:
    """Return ``directory/file_name``, suffixing the stem with -1, -2, ... if taken."""

    candidate = Path(directory) / file_name
    stem = candidate.stem
    suffix = candidate.suffix
    counter = 1
    while fs.exists(candidate):
        candidate = Path(directory) / f"{stem}-{counter}{suffix}"
        counter += 1
    return candidate


def copy_into_library(fs: FileSystem, src: Path, library_dir: Path, file_name: str | None = None) -> Path:
    """Copy ``src`` into ``library_dir`` under a free name and return the new path."""

    fs.create_dir_all(library_dir)
    dest = unique_destination(fs, library_dir, file_name or Path(src).name)
    fs.copy(Path(src), dest)
    log.debug("Copied %s into library as %s", src, dest)
    return dest
