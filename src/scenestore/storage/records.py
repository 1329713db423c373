"""Typed records returned by the scene store."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Final, Union

__all__ = [
    "Scoped",
    "GlobalScope",
    "GLOBAL",
    "Scope",
    "scope_from_column",
    "scope_to_column",
    "CHANNEL_TYPES",
    "SoundSet",
    "Mood",
    "AudioChannel",
    "AudioElement",
    "Timeline",
    "TimelineTrack",
    "TimelineElement",
    "ElementGroup",
    "ElementGroupMember",
]

# Known values; channel_type stays an open string
CHANNEL_TYPES: Final[tuple[str, ...]] = ("music", "ambient", "effects", "creatures", "voice")


@dataclass(frozen=True)
class Scoped:
    """Owned by a single sound set."""

    sound_set_id: int


@dataclass(frozen=True)
class GlobalScope:
    """Not tied to any sound set (stored as a NULL ``sound_set_id``)."""


GLOBAL: Final = GlobalScope()

Scope = Union[Scoped, GlobalScope]


def scope_from_column(value: int | None) -> Scope:
    return GLOBAL if value is None else Scoped(int(value))


def scope_to_column(scope: Scope) -> int | None:
    if isinstance(scope, Scoped):
        return scope.sound_set_id
    if isinstance(scope, GlobalScope):
        return None
    raise TypeError(f"Unknown scope: {scope!r}")


@dataclass(frozen=True)
class SoundSet:
    id: int
    name: str
    description: str
    created_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> SoundSet:
        return cls(
            id=row["id"],
            name=row["name"],
            description=row["description"] or "",
            created_at=row["created_at"] or "",
        )


@dataclass(frozen=True)
class Mood:
    id: int
    sound_set_id: int
    name: str
    description: str
    created_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Mood:
        return cls(
            id=row["id"],
            sound_set_id=row["sound_set_id"],
            name=row["name"],
            description=row["description"] or "",
            created_at=row["created_at"] or "",
        )


@dataclass(frozen=True)
class AudioChannel:
    id: int
    sound_set_id: int
    name: str
    icon: str
    volume: float
    order_index: int

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> AudioChannel:
        return cls(
            id=row["id"],
            sound_set_id=row["sound_set_id"],
            name=row["name"],
            icon=row["icon"] or "",
            volume=float(row["volume"]),
            order_index=int(row["order_index"]),
        )


@dataclass(frozen=True)
class AudioElement:
    id: int
    scope: Scope
    channel_id: int | None
    file_path: str
    file_name: str
    channel_type: str
    volume_db: float
    created_at: str

    @property
    def sound_set_id(self) -> int | None:
        return scope_to_column(self.scope)

    @property
    def is_global(self) -> bool:
        return isinstance(self.scope, GlobalScope)

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> AudioElement:
        return cls(
            id=row["id"],
            scope=scope_from_column(row["sound_set_id"]),
            channel_id=row["channel_id"],
            file_path=row["file_path"],
            file_name=row["file_name"],
            channel_type=row["channel_type"] or "ambient",
            volume_db=float(row["volume_db"] or 0.0),
            created_at=row["created_at"] or "",
        )


@dataclass(frozen=True)
class Timeline:
    id: int
    mood_id: int
    name: str
    order_index: int
    is_looping: bool
    created_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Timeline:
        return cls(
            id=row["id"],
            mood_id=row["mood_id"],
            name=row["name"],
            order_index=int(row["order_index"]),
            is_looping=bool(row["is_looping"]),
            created_at=row["created_at"] or "",
        )


@dataclass(frozen=True)
class TimelineTrack:
    id: int
    timeline_id: int
    name: str
    order_index: int
    is_looping: bool

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> TimelineTrack:
        return cls(
            id=row["id"],
            timeline_id=row["timeline_id"],
            name=row["name"],
            order_index=int(row["order_index"]),
            is_looping=bool(row["is_looping"]),
        )


@dataclass(frozen=True)
class TimelineElement:
    """A clip: one audio element or one element group placed on a track."""

    id: int
    track_id: int
    audio_element_id: int | None
    element_group_id: int | None
    start_time_ms: int
    duration_ms: int

    @property
    def end_time_ms(self) -> int:
        return self.start_time_ms + self.duration_ms

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> TimelineElement:
        return cls(
            id=row["id"],
            track_id=row["track_id"],
            audio_element_id=row["audio_element_id"],
            element_group_id=row["element_group_id"],
            start_time_ms=int(row["start_time_ms"]),
            duration_ms=int(row["duration_ms"]),
        )


@dataclass(frozen=True)
class ElementGroup:
    id: int
    name: str
    scope: Scope
    created_at: str

    @property
    def sound_set_id(self) -> int | None:
        return scope_to_column(self.scope)

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> ElementGroup:
        return cls(
            id=row["id"],
            name=row["name"],
            scope=scope_from_column(row["sound_set_id"]),
            created_at=row["created_at"] or "",
        )


@dataclass(frozen=True)
class ElementGroupMember:
    id: int
    group_id: int
    audio_element_id: int
    order_index: int

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> ElementGroupMember:
        return cls(
            id=row["id"],
            group_id=row["group_id"],
            audio_element_id=row["audio_element_id"],
            order_index=int(row["order_index"]),
        )
