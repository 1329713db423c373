from __future__ import annotations

import re

from scenestore.errors import UnsafeArchivePathError

MANIFEST = "manifest.json"
AUDIO_DIR = "audio"

_DRIVE_PREFIX = re.compile(r"^[A-Za-z]:")


def audio_archive_path(file_name: str) -> str:
    return f"{AUDIO_DIR}/{file_name}"


def is_bare_file_name(name: str) -> bool:
    """True when ``name`` can sit directly under the audio directory of a package."""

    return bool(name) and name not in (".", "..") and not any(c in name for c in "/\\\x00")


def validate_archive_path(path: str) -> str:
    """Return ``path`` if it is a relative, traversal-free archive path."""

    if not path or not path.strip():
        raise UnsafeArchivePathError(path, "empty path")
    if "\x00" in path:
        raise UnsafeArchivePathError(path, "contains a NUL byte")
    if "\\" in path:
        raise UnsafeArchivePathError(path, "backslash separators are not allowed")
    if path.startswith("/"):
        raise UnsafeArchivePathError(path, "absolute paths are not allowed")
    if _DRIVE_PREFIX.match(path):
        raise UnsafeArchivePathError(path, "drive-qualified paths are not allowed")
    parts = path.split("/")
    if any(part == ".." for part in parts):
        raise UnsafeArchivePathError(path, "parent-directory segments are not allowed")
    if any(part in ("", ".") for part in parts):
        raise UnsafeArchivePathError(path, "empty or '.' segments are not allowed")
    return path
