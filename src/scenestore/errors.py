"""Exception types raised by the scene store."""

from __future__ import annotations

__all__ = [
    "StoreError",
    "NotFoundError",
    "InvalidReferenceError",
    "PlacementConflictError",
    "SchemaMigrationError",
    "StorageIOError",
    "PackageError",
    "UnsupportedFormatError",
    "UnsafeArchivePathError",
    "MissingPackageFileError",
]


class StoreError(RuntimeError):
    """Base class for every failure reported by the scene store."""


class NotFoundError(StoreError):
    """Raised when a referenced row does not exist."""

    def __init__(self, entity: str, entity_id: int):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class InvalidReferenceError(StoreError):
    """Raised when a write would break a referential rule."""


class PlacementConflictError(StoreError):
    """Raised when a clip would overlap another clip on the same track."""

    def __init__(self, track_id: int, start_ms: int, duration_ms: int, conflicting_id: int):
        self.track_id = track_id
        self.start_ms = start_ms
        self.duration_ms = duration_ms
        self.conflicting_id = conflicting_id
        super().__init__(
            f"Clip [{start_ms}, {start_ms + duration_ms}) overlaps clip {conflicting_id} "
            f"on track {track_id}"
        )


class SchemaMigrationError(StoreError):
    """Raised when a schema migration step fails. Fatal at startup."""

    def __init__(self, step: str, message: str):
        self.step = step
        super().__init__(f"Schema migration '{step}' failed: {message}")


class StorageIOError(StoreError):
    """Raised when a filesystem operation fails."""


class PackageError(StoreError):
    """Raised for malformed manifests and archives."""


class UnsupportedFormatError(PackageError):
    def __init__(self, version: object):
        self.version = version
        super().__init__(f"Unsupported package format_version: {version!r}")


class UnsafeArchivePathError(PackageError):
    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(f"Unsafe archive path {path!r}: {reason}")


class MissingPackageFileError(PackageError):
    def __init__(self, path: str, where: str = "archive"):
        self.path = path
        super().__init__(f"Audio file not found in {where}: {path}")
