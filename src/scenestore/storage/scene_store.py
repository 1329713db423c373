"""
SQLite-backed scene storage.

:class:`SceneStore` is the repository every caller goes through.  It keeps no
connection open between calls: each operation opens the database, runs its
statements (writes inside one ``BEGIN IMMEDIATE`` transaction) and closes it
again.  Settings are read fresh on each call that needs them.
"""

from __future__ import annotations

import contextlib
import logging
import os
import sqlite3
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path

from scenestore.core.filesystem import FileSystem, LocalFileSystem, copy_into_library
from scenestore.core.settings import (
    AppSettings,
    default_database_path,
    read_settings,
    resolve_library_dir,
)
from scenestore.errors import InvalidReferenceError, NotFoundError, StoreError
from scenestore.pkg.paths import is_bare_file_name
from scenestore.storage import placement
from scenestore.storage.records import (
    GLOBAL,
    AudioChannel,
    AudioElement,
    ElementGroup,
    ElementGroupMember,
    Mood,
    Scope,
    Scoped,
    SoundSet,
    Timeline,
    TimelineElement,
    TimelineTrack,
)
from scenestore.storage.sqlite import channels as _channels
from scenestore.storage.sqlite import elements as _elements
from scenestore.storage.sqlite import groups as _groups
from scenestore.storage.sqlite import sound_sets as _sound_sets
from scenestore.storage.sqlite import timelines as _timelines
from scenestore.storage.sqlite.schema import ensure_current
from scenestore.storage.sqlite.utils import open_db, transaction

log = logging.getLogger(__name__)

__all__ = ["SceneStore", "open_store"]


def _require(value, entity: str, entity_id: int):
    if value is None:
        raise NotFoundError(entity, entity_id)
    return value


def _check_clip_window(start_time_ms: int, duration_ms: int) -> None:
    if start_time_ms < 0:
        raise InvalidReferenceError(f"start_time_ms must be >= 0 (got {start_time_ms})")
    if duration_ms <= 0:
        raise InvalidReferenceError(f"duration_ms must be > 0 (got {duration_ms})")


def _check_file_name(file_name: str) -> None:
    # the same name becomes the package entry audio/<file_name> on export
    if not is_bare_file_name(file_name):
        raise InvalidReferenceError(f"file_name must be a bare file name (got {file_name!r})")


@dataclass
class SceneStore:
    """Repository over one scene database file."""

    path: Path
    settings_loader: Callable[[], AppSettings] = read_settings
    fs: FileSystem = field(default_factory=LocalFileSystem)

    def __post_init__(self) -> None:
        self.path = Path(self.path)

    # ------------------------------------------------------------------
    # Connection handling

    @contextlib.contextmanager
    def connect(self, *, write: bool = False) -> Iterator[sqlite3.Connection]:
        """Open a connection for one operation; ``write`` wraps it in a transaction."""

        try:
            conn = open_db(os.fspath(self.path))
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to open scene database {self.path}: {exc}") from exc
        try:
            if write:
                with transaction(conn):
                    yield conn
            else:
                yield conn
        except sqlite3.IntegrityError as exc:
            raise InvalidReferenceError(str(exc)) from exc
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc
        finally:
            conn.close()

    def _stored_file_path(self, file_path: str | os.PathLike[str]) -> str:
        """Apply the configured file strategy and return the path to record."""

        settings = self.settings_loader()
        if not settings.copies_files:
            return os.fspath(file_path)
        library_dir = resolve_library_dir(settings)
        return os.fspath(copy_into_library(self.fs, Path(file_path), library_dir))

    # ------------------------------------------------------------------
    # Sound sets

    def create_sound_set(self, name: str, description: str = "") -> SoundSet:
        with self.connect(write=True) as conn:
            sound_set_id = _sound_sets.insert_sound_set(conn, name, description)
            return _sound_sets.fetch_sound_set(conn, sound_set_id)

    def list_sound_sets(self) -> list[SoundSet]:
        with self.connect() as conn:
            return _sound_sets.list_sound_sets(conn)

    def get_sound_set(self, sound_set_id: int) -> SoundSet:
        with self.connect() as conn:
            return _require(_sound_sets.fetch_sound_set(conn, sound_set_id), "SoundSet", sound_set_id)

    def update_sound_set(
        self, sound_set_id: int, *, name: str | None = None, description: str | None = None
    ) -> SoundSet:
        with self.connect(write=True) as conn:
            _require(_sound_sets.fetch_sound_set(conn, sound_set_id), "SoundSet", sound_set_id)
            _sound_sets.update_sound_set(conn, sound_set_id, name=name, description=description)
            return _sound_sets.fetch_sound_set(conn, sound_set_id)

    def delete_sound_set(self, sound_set_id: int) -> None:
        """Delete a sound set with its moods, channels, elements and groups."""

        with self.connect(write=True) as conn:
            if not _sound_sets.delete_sound_set(conn, sound_set_id):
                raise NotFoundError("SoundSet", sound_set_id)

    # ------------------------------------------------------------------
    # Moods

    def create_mood(self, sound_set_id: int, name: str, description: str = "") -> Mood:
        with self.connect(write=True) as conn:
            _require(_sound_sets.fetch_sound_set(conn, sound_set_id), "SoundSet", sound_set_id)
            mood_id = _sound_sets.insert_mood(conn, sound_set_id, name, description)
            return _sound_sets.fetch_mood(conn, mood_id)

    def list_moods(self, sound_set_id: int) -> list[Mood]:
        with self.connect() as conn:
            return _sound_sets.list_moods(conn, sound_set_id)

    def update_mood(
        self, mood_id: int, *, name: str | None = None, description: str | None = None
    ) -> Mood:
        with self.connect(write=True) as conn:
            _require(_sound_sets.fetch_mood(conn, mood_id), "Mood", mood_id)
            _sound_sets.update_mood(conn, mood_id, name=name, description=description)
            return _sound_sets.fetch_mood(conn, mood_id)

    def delete_mood(self, mood_id: int) -> None:
        with self.connect(write=True) as conn:
            if not _sound_sets.delete_mood(conn, mood_id):
                raise NotFoundError("Mood", mood_id)

    # ------------------------------------------------------------------
    # Audio channels

    def create_audio_channel(
        self, sound_set_id: int, name: str, icon: str = "", volume: float = 1.0
    ) -> AudioChannel:
        with self.connect(write=True) as conn:
            _require(_sound_sets.fetch_sound_set(conn, sound_set_id), "SoundSet", sound_set_id)
            channel_id = _channels.insert_channel(conn, sound_set_id, name, icon, volume)
            return _channels.fetch_channel(conn, channel_id)

    def list_audio_channels(self, sound_set_id: int) -> list[AudioChannel]:
        with self.connect() as conn:
            return _channels.list_channels(conn, sound_set_id)

    def update_audio_channel(
        self, channel_id: int, name: str, icon: str, volume: float
    ) -> AudioChannel:
        with self.connect(write=True) as conn:
            if not _channels.update_channel(conn, channel_id, name, icon, volume):
                raise NotFoundError("AudioChannel", channel_id)
            return _channels.fetch_channel(conn, channel_id)

    def reorder_audio_channel(self, channel_id: int, order_index: int) -> list[AudioChannel]:
        """Move a channel to ``order_index``; return the set's channels in new order."""

        with self.connect(write=True) as conn:
            channel = _require(_channels.fetch_channel(conn, channel_id), "AudioChannel", channel_id)
            _channels.move_channel(conn, channel_id, order_index)
            return _channels.list_channels(conn, channel.sound_set_id)

    def seed_default_channels(self, sound_set_id: int) -> list[AudioChannel]:
        with self.connect(write=True) as conn:
            _require(_sound_sets.fetch_sound_set(conn, sound_set_id), "SoundSet", sound_set_id)
            return _channels.seed_default_channels(conn, sound_set_id)

    def delete_audio_channel(self, channel_id: int) -> None:
        """Delete a channel; its elements keep existing with no channel."""

        with self.connect(write=True) as conn:
            if not _channels.delete_channel(conn, channel_id):
                raise NotFoundError("AudioChannel", channel_id)

    # ------------------------------------------------------------------
    # Audio elements

    def create_audio_element(
        self,
        sound_set_id: int,
        file_path: str | os.PathLike[str],
        file_name: str,
        channel_type: str = "ambient",
        channel_id: int | None = None,
        volume_db: float = 0.0,
    ) -> AudioElement:
        """Add an element to a sound set, copying the file first in "copy" mode."""

        _check_file_name(file_name)
        with self.connect() as conn:
            _require(_sound_sets.fetch_sound_set(conn, sound_set_id), "SoundSet", sound_set_id)
        stored_path = self._stored_file_path(file_path)
        with self.connect(write=True) as conn:
            if channel_id is not None:
                self._check_channel(conn, channel_id, sound_set_id)
            element_id = _elements.insert_element(
                conn,
                Scoped(sound_set_id),
                stored_path,
                file_name,
                channel_type,
                channel_id=channel_id,
                volume_db=volume_db,
            )
            return _elements.fetch_element(conn, element_id)

    def create_global_oneshot(
        self,
        file_path: str | os.PathLike[str],
        file_name: str,
        channel_type: str = "ambient",
        volume_db: float = 0.0,
    ) -> AudioElement:
        _check_file_name(file_name)
        stored_path = self._stored_file_path(file_path)
        with self.connect(write=True) as conn:
            element_id = _elements.insert_element(
                conn, GLOBAL, stored_path, file_name, channel_type, volume_db=volume_db
            )
            return _elements.fetch_element(conn, element_id)

    def get_audio_element(self, element_id: int) -> AudioElement:
        with self.connect() as conn:
            return _require(_elements.fetch_element(conn, element_id), "AudioElement", element_id)

    def list_audio_elements(self, sound_set_id: int) -> list[AudioElement]:
        with self.connect() as conn:
            return _elements.list_elements(conn, Scoped(sound_set_id))

    def list_global_oneshots(self) -> list[AudioElement]:
        with self.connect() as conn:
            return _elements.list_elements(conn, GLOBAL)

    def update_audio_element_channel_type(self, element_id: int, channel_type: str) -> AudioElement:
        with self.connect(write=True) as conn:
            if not _elements.update_element_fields(conn, element_id, channel_type=channel_type):
                raise NotFoundError("AudioElement", element_id)
            return _elements.fetch_element(conn, element_id)

    def update_audio_element_channel(self, element_id: int, channel_id: int | None) -> AudioElement:
        with self.connect(write=True) as conn:
            element = _require(_elements.fetch_element(conn, element_id), "AudioElement", element_id)
            if channel_id is not None:
                if element.sound_set_id is None:
                    raise InvalidReferenceError("Global one-shots cannot be assigned to a channel")
                self._check_channel(conn, channel_id, element.sound_set_id)
            _elements.update_element_fields(conn, element_id, channel_id=channel_id)
            return _elements.fetch_element(conn, element_id)

    def update_audio_element_volume(self, element_id: int, volume_db: float) -> AudioElement:
        with self.connect(write=True) as conn:
            if not _elements.update_element_fields(conn, element_id, volume_db=float(volume_db)):
                raise NotFoundError("AudioElement", element_id)
            return _elements.fetch_element(conn, element_id)

    def delete_audio_element(self, element_id: int) -> None:
        """Delete a sound-set element. Global one-shots are left untouched."""

        with self.connect(write=True) as conn:
            if not _elements.delete_element(conn, element_id, global_only=False):
                raise NotFoundError("AudioElement", element_id)

    def delete_global_oneshot(self, element_id: int) -> None:
        """Delete a global one-shot. Sound-set elements are left untouched."""

        with self.connect(write=True) as conn:
            if not _elements.delete_element(conn, element_id, global_only=True):
                raise NotFoundError("GlobalOneShot", element_id)

    @staticmethod
    def _check_channel(conn: sqlite3.Connection, channel_id: int, sound_set_id: int) -> None:
        channel = _require(_channels.fetch_channel(conn, channel_id), "AudioChannel", channel_id)
        if channel.sound_set_id != sound_set_id:
            raise InvalidReferenceError(
                f"Channel {channel_id} belongs to sound set {channel.sound_set_id}, "
                f"not {sound_set_id}"
            )

    # ------------------------------------------------------------------
    # Timelines

    def create_timeline(self, mood_id: int, name: str) -> Timeline:
        """Return the mood's timeline, creating it (with one default track) if absent."""

        with self.connect(write=True) as conn:
            existing = _timelines.fetch_timeline_for_mood(conn, mood_id)
            if existing is not None:
                log.debug("Mood %d already has timeline %d", mood_id, existing.id)
                return existing
            _require(_sound_sets.fetch_mood(conn, mood_id), "Mood", mood_id)
            timeline_id = _timelines.insert_timeline(conn, mood_id, name)
            _timelines.insert_track(conn, timeline_id, _timelines.DEFAULT_TRACK_NAME, order_index=0)
            return _timelines.fetch_timeline(conn, timeline_id)

    def list_timelines(self, mood_id: int) -> list[Timeline]:
        with self.connect() as conn:
            return _timelines.list_timelines(conn, mood_id)

    def get_timeline_for_mood(self, mood_id: int) -> Timeline | None:
        with self.connect() as conn:
            return _timelines.fetch_timeline_for_mood(conn, mood_id)

    def rename_timeline(self, timeline_id: int, name: str) -> Timeline:
        with self.connect(write=True) as conn:
            if not _timelines.rename_timeline(conn, timeline_id, name):
                raise NotFoundError("Timeline", timeline_id)
            return _timelines.fetch_timeline(conn, timeline_id)

    def update_timeline_loop(self, timeline_id: int, looping: bool) -> Timeline:
        """Set looping on the timeline and every one of its tracks."""

        with self.connect(write=True) as conn:
            if not _timelines.set_timeline_looping(conn, timeline_id, looping):
                raise NotFoundError("Timeline", timeline_id)
            return _timelines.fetch_timeline(conn, timeline_id)

    def delete_timeline(self, timeline_id: int) -> None:
        with self.connect(write=True) as conn:
            if not _timelines.delete_timeline(conn, timeline_id):
                raise NotFoundError("Timeline", timeline_id)

    # ------------------------------------------------------------------
    # Tracks

    def create_track(self, timeline_id: int, name: str | None = None) -> TimelineTrack:
        with self.connect(write=True) as conn:
            timeline = _require(_timelines.fetch_timeline(conn, timeline_id), "Timeline", timeline_id)
            if name is None:
                name = f"Track {len(_timelines.list_tracks(conn, timeline_id)) + 1}"
            track_id = _timelines.insert_track(
                conn, timeline_id, name, is_looping=timeline.is_looping
            )
            return _timelines.fetch_track(conn, track_id)

    def list_tracks(self, timeline_id: int) -> list[TimelineTrack]:
        with self.connect() as conn:
            return _timelines.list_tracks(conn, timeline_id)

    def rename_track(self, track_id: int, name: str) -> TimelineTrack:
        with self.connect(write=True) as conn:
            if not _timelines.rename_track(conn, track_id, name):
                raise NotFoundError("TimelineTrack", track_id)
            return _timelines.fetch_track(conn, track_id)

    def delete_track(self, track_id: int) -> None:
        with self.connect(write=True) as conn:
            if not _timelines.delete_track(conn, track_id):
                raise NotFoundError("TimelineTrack", track_id)

    # ------------------------------------------------------------------
    # Clips

    def add_element_to_track(
        self,
        track_id: int,
        start_time_ms: int,
        duration_ms: int,
        *,
        audio_element_id: int | None = None,
        element_group_id: int | None = None,
    ) -> TimelineElement:
        """Place an audio element or an element group (exactly one) on a track."""

        if (audio_element_id is None) == (element_group_id is None):
            raise InvalidReferenceError(
                "A clip references exactly one of audio_element_id or element_group_id"
            )
        _check_clip_window(start_time_ms, duration_ms)
        with self.connect(write=True) as conn:
            _require(_timelines.fetch_track(conn, track_id), "TimelineTrack", track_id)
            if audio_element_id is not None:
                _require(
                    _elements.fetch_element(conn, audio_element_id), "AudioElement", audio_element_id
                )
            else:
                _require(_groups.fetch_group(conn, element_group_id), "ElementGroup", element_group_id)
            placement.check_placement(conn, track_id, start_time_ms, duration_ms)
            clip_id = _timelines.insert_clip(
                conn,
                track_id,
                start_time_ms,
                duration_ms,
                audio_element_id=audio_element_id,
                element_group_id=element_group_id,
            )
            return _timelines.fetch_clip(conn, clip_id)

    def update_element_time_and_duration(
        self, clip_id: int, start_time_ms: int, duration_ms: int
    ) -> TimelineElement:
        """Reposition a clip; the clip itself is ignored by the overlap check."""

        _check_clip_window(start_time_ms, duration_ms)
        with self.connect(write=True) as conn:
            clip = _require(_timelines.fetch_clip(conn, clip_id), "TimelineElement", clip_id)
            placement.check_placement(
                conn, clip.track_id, start_time_ms, duration_ms, exclude_id=clip_id
            )
            _timelines.move_clip(conn, clip_id, start_time_ms, duration_ms)
            return _timelines.fetch_clip(conn, clip_id)

    def update_element_time(self, clip_id: int, start_time_ms: int) -> TimelineElement:
        """Move a clip keeping its duration."""

        with self.connect() as conn:
            clip = _require(_timelines.fetch_clip(conn, clip_id), "TimelineElement", clip_id)
        return self.update_element_time_and_duration(clip_id, start_time_ms, clip.duration_ms)

    def list_track_elements(self, track_id: int) -> list[TimelineElement]:
        with self.connect() as conn:
            return _timelines.list_track_clips(conn, track_id)

    def list_timeline_elements(self, timeline_id: int) -> list[TimelineElement]:
        with self.connect() as conn:
            return _timelines.list_timeline_clips(conn, timeline_id)

    def delete_timeline_element(self, clip_id: int) -> None:
        with self.connect(write=True) as conn:
            if not _timelines.delete_clip(conn, clip_id):
                raise NotFoundError("TimelineElement", clip_id)

    # ------------------------------------------------------------------
    # Element groups

    def create_element_group(self, name: str, scope: Scope = GLOBAL) -> ElementGroup:
        with self.connect(write=True) as conn:
            if isinstance(scope, Scoped):
                _require(
                    _sound_sets.fetch_sound_set(conn, scope.sound_set_id),
                    "SoundSet",
                    scope.sound_set_id,
                )
            group_id = _groups.insert_group(conn, name, scope)
            return _groups.fetch_group(conn, group_id)

    def list_element_groups(self, scope: Scope = GLOBAL) -> list[ElementGroup]:
        with self.connect() as conn:
            return _groups.list_groups(conn, scope)

    def rename_element_group(self, group_id: int, name: str) -> ElementGroup:
        with self.connect(write=True) as conn:
            if not _groups.rename_group(conn, group_id, name):
                raise NotFoundError("ElementGroup", group_id)
            return _groups.fetch_group(conn, group_id)

    def delete_element_group(self, group_id: int) -> None:
        with self.connect(write=True) as conn:
            if not _groups.delete_group(conn, group_id):
                raise NotFoundError("ElementGroup", group_id)

    def add_element_to_group(self, group_id: int, audio_element_id: int) -> ElementGroupMember:
        with self.connect(write=True) as conn:
            _require(_groups.fetch_group(conn, group_id), "ElementGroup", group_id)
            _require(_elements.fetch_element(conn, audio_element_id), "AudioElement", audio_element_id)
            member_id = _groups.insert_member(conn, group_id, audio_element_id)
            return _groups.fetch_member(conn, member_id)

    def list_group_members(self, group_id: int) -> list[ElementGroupMember]:
        with self.connect() as conn:
            return _groups.list_members(conn, group_id)

    def remove_element_from_group(self, member_id: int) -> None:
        with self.connect(write=True) as conn:
            if not _groups.delete_member(conn, member_id):
                raise NotFoundError("ElementGroupMember", member_id)

    # ------------------------------------------------------------------
    # Packages

    def export_sound_set(self, sound_set_id: int, destination: str | os.PathLike[str]) -> Path:
        from scenestore.pkg.exporter import export_sound_set

        return export_sound_set(self, sound_set_id, destination)

    def import_sound_set(self, source: str | os.PathLike[str]) -> int:
        from scenestore.pkg.importer import import_sound_set

        return import_sound_set(self, source)


def open_store(
    path: str | os.PathLike[str] | None = None,
    *,
    settings_loader: Callable[[], AppSettings] = read_settings,
    fs: FileSystem | None = None,
) -> SceneStore:
    """Create the database if needed, bring its schema current, and return a store."""

    db_path = Path(path) if path is not None else default_database_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    ensure_current(db_path)
    return SceneStore(db_path, settings_loader=settings_loader, fs=fs or LocalFileSystem())
