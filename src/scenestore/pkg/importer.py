from __future__ import annotations

import logging
import os
import zipfile
from pathlib import Path
from typing import TYPE_CHECKING

from scenestore.core.filesystem import unique_destination
from scenestore.core.settings import resolve_library_dir
from scenestore.errors import (
    MissingPackageFileError,
    PackageError,
    StorageIOError,
    UnsafeArchivePathError,
)
from scenestore.pkg import paths
from scenestore.pkg.io_zip import exists, read_bytes
from scenestore.pkg.models import Manifest, parse_manifest
from scenestore.storage import placement
from scenestore.storage.records import Scoped
from scenestore.storage.sqlite import channels as _channels
from scenestore.storage.sqlite import elements as _elements
from scenestore.storage.sqlite import sound_sets as _sound_sets
from scenestore.storage.sqlite import timelines as _timelines

if TYPE_CHECKING:  # pragma: no cover - typing only
    from scenestore.storage.scene_store import SceneStore

log = logging.getLogger(__name__)

IMPORTED_TIMELINE_NAME = "Timeline"


def _read_entry(z: zipfile.ZipFile, arcname: str) -> bytes:
    try:
        return read_bytes(z, arcname)
    except (zipfile.BadZipFile, OSError) as exc:
        raise PackageError(f"Failed to read {arcname} from package: {exc}") from exc


def read_package_manifest(z: zipfile.ZipFile) -> Manifest:
    """Parse and fully validate the manifest of an open package."""

    if not exists(z, paths.MANIFEST):
        raise PackageError(f"Package has no {paths.MANIFEST}")
    manifest = parse_manifest(_read_entry(z, paths.MANIFEST))
    validate_manifest_paths(manifest)
    for element in manifest.elements:
        if not exists(z, element.archive_path):
            raise MissingPackageFileError(element.archive_path)
    return manifest


def validate_manifest_paths(manifest: Manifest) -> None:
    for element in manifest.elements:
        paths.validate_archive_path(element.archive_path)
        if not paths.is_bare_file_name(element.file_name):
            raise UnsafeArchivePathError(element.file_name, "file_name must be a bare file name")


def import_sound_set(store: SceneStore, source: str | os.PathLike[str]) -> int:
    """Import the package at ``source`` as a new sound set and return its id.

    Everything is validated before the library directory or the database is
    touched.  Rows are inserted in one transaction; audio files already
    extracted into the library stay there if that transaction fails.
    """

    source_path = Path(source)
    log.info("Importing package %s", source_path)
    try:
        archive = zipfile.ZipFile(source_path, "r")
    except zipfile.BadZipFile as exc:
        raise PackageError(f"{source_path} is not a valid package: {exc}") from exc
    except OSError as exc:
        raise StorageIOError(f"Failed to open package {source_path}: {exc}") from exc

    with archive as z:
        manifest = read_package_manifest(z)
        library_dir = resolve_library_dir(store.settings_loader())
        store.fs.create_dir_all(library_dir)

        with store.connect(write=True) as conn:
            name = _sound_sets.unique_sound_set_name(conn, manifest.soundset.name)
            sound_set_id = _sound_sets.insert_sound_set(conn, name, manifest.soundset.description)

            channel_ids: dict[str, int] = {}
            for channel in manifest.channels:
                channel_ids[channel.name] = _channels.insert_channel(
                    conn,
                    sound_set_id,
                    channel.name,
                    channel.icon,
                    channel.volume,
                    channel.order_index,
                )

            # keyed by the manifest file name; the file on disk may be renamed
            element_ids: dict[str, int] = {}
            for element in manifest.elements:
                dest = unique_destination(store.fs, library_dir, element.file_name)
                store.fs.write(dest, _read_entry(z, element.archive_path))
                log.debug("Extracted %s to %s", element.archive_path, dest)
                element_ids[element.file_name] = _elements.insert_element(
                    conn,
                    Scoped(sound_set_id),
                    os.fspath(dest),
                    element.file_name,
                    element.channel_type,
                    channel_id=channel_ids.get(element.channel_name) if element.channel_name else None,
                    volume_db=element.volume_db,
                )

            dropped = 0
            for mood in manifest.moods:
                mood_id = _sound_sets.insert_mood(conn, sound_set_id, mood.name, mood.description)
                if mood.timeline is None:
                    continue
                timeline_id = _timelines.insert_timeline(
                    conn, mood_id, IMPORTED_TIMELINE_NAME, is_looping=mood.timeline.is_looping
                )
                for track in mood.timeline.tracks:
                    track_id = _timelines.insert_track(
                        conn,
                        timeline_id,
                        track.name,
                        order_index=track.order_index,
                        is_looping=mood.timeline.is_looping,
                    )
                    for clip in track.clips:
                        element_id = element_ids.get(clip.element_file_name)
                        if element_id is None:
                            dropped += 1
                            log.warning(
                                "Dropping clip at %d ms on track %r: no element named %r",
                                clip.start_time_ms,
                                track.name,
                                clip.element_file_name,
                            )
                            continue
                        placement.check_placement(
                            conn, track_id, clip.start_time_ms, clip.duration_ms
                        )
                        _timelines.insert_clip(
                            conn,
                            track_id,
                            clip.start_time_ms,
                            clip.duration_ms,
                            audio_element_id=element_id,
                        )

    log.info(
        "Imported %s as sound set %d (%r): %d elements, %d moods, %d clips dropped",
        source_path,
        sound_set_id,
        name,
        len(manifest.elements),
        len(manifest.moods),
        dropped,
    )
    return sound_set_id
