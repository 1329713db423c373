from __future__ import annotations

import logging
import os
import sqlite3
import zipfile
from pathlib import Path
from typing import TYPE_CHECKING

from scenestore.errors import NotFoundError, StorageIOError
from scenestore.pkg import paths
from scenestore.pkg.io_zip import atomic_zip, write_bytes, write_text
from scenestore.pkg.models import (
    ChannelEntry,
    ClipEntry,
    ElementEntry,
    Manifest,
    MoodEntry,
    SoundSetHeader,
    TimelineEntry,
    TrackEntry,
)
from scenestore.storage.records import AudioChannel, AudioElement, Scoped
from scenestore.storage.sqlite import channels as _channels
from scenestore.storage.sqlite import elements as _elements
from scenestore.storage.sqlite import sound_sets as _sound_sets
from scenestore.storage.sqlite import timelines as _timelines

if TYPE_CHECKING:  # pragma: no cover - typing only
    from scenestore.storage.scene_store import SceneStore

log = logging.getLogger(__name__)


def export_sound_set(
    store: SceneStore, sound_set_id: int, destination: str | os.PathLike[str]
) -> Path:
    """Write ``sound_set_id`` and its audio files to the zip at ``destination``."""

    dest = Path(destination)
    log.info("Exporting sound set %d to %s", sound_set_id, dest)
    with store.connect() as conn:
        manifest, files = build_manifest(conn, sound_set_id)

    try:
        with atomic_zip(dest) as z:
            write_text(z, paths.MANIFEST, manifest.to_json())
            for archive_path in sorted(files):
                write_bytes(z, archive_path, store.fs.read(files[archive_path]))
    except (OSError, zipfile.BadZipFile) as exc:
        raise StorageIOError(f"Failed to write package {dest}: {exc}") from exc

    log.info(
        "Exported sound set %d: %d channels, %d elements, %d moods, %d files",
        sound_set_id,
        len(manifest.channels),
        len(manifest.elements),
        len(manifest.moods),
        len(files),
    )
    return dest


def build_manifest(conn: sqlite3.Connection, sound_set_id: int) -> tuple[Manifest, dict[str, Path]]:
    """Return the manifest for a sound set and the ``archive path -> source file`` map."""

    sound_set = _sound_sets.fetch_sound_set(conn, sound_set_id)
    if sound_set is None:
        raise NotFoundError("SoundSet", sound_set_id)

    channels = _channels.list_channels(conn, sound_set_id)
    elements = _elements.list_elements(conn, Scoped(sound_set_id))
    channel_entries = [_channel_entry(channel) for channel in channels]
    channel_names = {channel.id: channel.name for channel in channels}

    element_entries: list[ElementEntry] = []
    files: dict[str, Path] = {}
    for element in sorted(elements, key=lambda e: e.id):
        entry = _element_entry(element, channel_names)
        element_entries.append(entry)
        # elements sharing a file name share one archive entry
        files.setdefault(entry.archive_path, Path(element.file_path))
    element_names = {element.id: element.file_name for element in elements}

    mood_entries = [
        MoodEntry(
            name=mood.name,
            description=mood.description,
            timeline=_timeline_entry(conn, mood.id, element_names),
        )
        for mood in _sound_sets.list_moods(conn, sound_set_id)
    ]

    manifest = Manifest(
        soundset=SoundSetHeader(name=sound_set.name, description=sound_set.description),
        channels=channel_entries,
        elements=element_entries,
        moods=mood_entries,
    )
    return manifest, files


def _channel_entry(channel: AudioChannel) -> ChannelEntry:
    return ChannelEntry(
        name=channel.name,
        icon=channel.icon,
        volume=channel.volume,
        order_index=channel.order_index,
    )


def _element_entry(element: AudioElement, channel_names: dict[int, str]) -> ElementEntry:
    archive_path = paths.validate_archive_path(paths.audio_archive_path(element.file_name))
    return ElementEntry(
        file_name=element.file_name,
        archive_path=archive_path,
        channel_name=channel_names.get(element.channel_id) if element.channel_id else None,
        channel_type=element.channel_type,
        volume_db=element.volume_db,
    )


def _timeline_entry(
    conn: sqlite3.Connection, mood_id: int, element_names: dict[int, str]
) -> TimelineEntry | None:
    timeline = _timelines.fetch_timeline_for_mood(conn, mood_id)
    if timeline is None:
        return None

    tracks: list[TrackEntry] = []
    for track in _timelines.list_tracks(conn, timeline.id):
        clips: list[ClipEntry] = []
        for clip in _timelines.list_track_clips(conn, track.id):
            file_name = element_names.get(clip.audio_element_id) if clip.audio_element_id else None
            if file_name is None:
                log.debug("Skipping clip %d on track %d: not a sound-set element", clip.id, track.id)
                continue
            clips.append(
                ClipEntry(
                    element_file_name=file_name,
                    start_time_ms=clip.start_time_ms,
                    duration_ms=clip.duration_ms,
                )
            )
        tracks.append(TrackEntry(name=track.name, order_index=track.order_index, clips=clips))
    return TimelineEntry(is_looping=timeline.is_looping, tracks=tracks)
