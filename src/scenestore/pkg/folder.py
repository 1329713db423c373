"""Build a distributable package from an authored folder.

The folder holds ``manifest.json`` at its root and every audio file at the
``archive_path`` its manifest declares.  Nothing touches a scene database.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path

from scenestore.errors import (
    MissingPackageFileError,
    PackageError,
    StorageIOError,
    UnsafeArchivePathError,
)
from scenestore.pkg import paths
from scenestore.pkg.importer import validate_manifest_paths
from scenestore.pkg.io_zip import atomic_zip, write_bytes, write_text
from scenestore.pkg.models import parse_manifest

log = logging.getLogger(__name__)

DEFAULT_PACKAGE_NAME = "soundset"

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9_-]+")


def sanitize_package_name(name: str) -> str:
    """Reduce ``name`` to ``[A-Za-z0-9_-]`` for use as an archive file stem."""

    cleaned = _UNSAFE_NAME_CHARS.sub("-", name).strip("-")
    return cleaned or DEFAULT_PACKAGE_NAME


def package_sound_set_folder(
    source: str | os.PathLike[str], output: str | os.PathLike[str] | None = None
) -> Path:
    """Zip ``source`` into a package and return the archive path.

    The manifest and every archive path are checked before any output is
    written.  Without ``output`` the archive lands next to the folder as
    ``<sanitized sound set name>.zip``.
    """

    folder = Path(source)
    if not folder.is_dir():
        raise PackageError(f"Source folder does not exist: {folder}")
    manifest_path = folder / paths.MANIFEST
    if not manifest_path.is_file():
        raise PackageError(f"No {paths.MANIFEST} in {folder}")
    try:
        manifest = parse_manifest(manifest_path.read_bytes())
    except OSError as exc:
        raise StorageIOError(f"Failed to read {manifest_path}: {exc}") from exc
    validate_manifest_paths(manifest)

    root = folder.resolve()
    files: dict[str, Path] = {}
    for element in manifest.elements:
        resolved = (root / element.archive_path).resolve()
        if not resolved.is_relative_to(root):
            raise UnsafeArchivePathError(element.archive_path, "resolves outside the source folder")
        if not resolved.is_file():
            raise MissingPackageFileError(element.archive_path, where=str(folder))
        files[element.archive_path] = resolved

    if output is not None:
        destination = Path(output)
    else:
        destination = folder.resolve().parent / f"{sanitize_package_name(manifest.soundset.name)}.zip"

    try:
        with atomic_zip(destination) as z:
            write_text(z, paths.MANIFEST, manifest.to_json())
            for archive_path in sorted(files):
                write_bytes(z, archive_path, files[archive_path].read_bytes())
    except OSError as exc:
        raise StorageIOError(f"Failed to write package {destination}: {exc}") from exc

    log.info("Packaged %s into %s (%d files)", folder, destination, len(files))
    return destination
