# SceneStore
# Copyright © 2025 SceneStore contributors
# Licensed under CC BY-NC-SA 4.0 International
# http://creativecommons.org/licenses/by-nc-sa/4.0/

"""Public package interface for the SceneStore persistence layer."""

from scenestore.errors import (
    InvalidReferenceError,
    MissingPackageFileError,
    NotFoundError,
    PackageError,
    PlacementConflictError,
    SchemaMigrationError,
    StorageIOError,
    StoreError,
    UnsafeArchivePathError,
    UnsupportedFormatError,
)
from scenestore.pkg.folder import package_sound_set_folder
from scenestore.storage.records import (
    GLOBAL,
    AudioChannel,
    AudioElement,
    ElementGroup,
    ElementGroupMember,
    GlobalScope,
    Mood,
    Scope,
    Scoped,
    SoundSet,
    Timeline,
    TimelineElement,
    TimelineTrack,
)
from scenestore.storage.scene_store import SceneStore, open_store
from scenestore.storage.sqlite.schema import ensure_current

__version__ = "0.1.0"

__all__ = [
    "SceneStore",
    "open_store",
    "ensure_current",
    "package_sound_set_folder",
    "Scope",
    "Scoped",
    "GlobalScope",
    "GLOBAL",
    "SoundSet",
    "Mood",
    "AudioChannel",
    "AudioElement",
    "Timeline",
    "TimelineTrack",
    "TimelineElement",
    "ElementGroup",
    "ElementGroupMember",
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
