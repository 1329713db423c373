"""Timeline, track and clip helpers for the scene database."""

from __future__ import annotations

import sqlite3

from scenestore.storage.records import Timeline, TimelineElement, TimelineTrack

__all__ = [
    "DEFAULT_TRACK_NAME",
    "insert_timeline",
    "fetch_timeline",
    "fetch_timeline_for_mood",
    "list_timelines",
    "rename_timeline",
    "set_timeline_looping",
    "delete_timeline",
    "insert_track",
    "fetch_track",
    "list_tracks",
    "rename_track",
    "delete_track",
    "insert_clip",
    "fetch_clip",
    "list_track_clips",
    "list_timeline_clips",
    "move_clip",
    "delete_clip",
]

DEFAULT_TRACK_NAME = "Track 1"

_TIMELINE_COLUMNS = "id, mood_id, name, order_index, is_looping, created_at"
_TRACK_COLUMNS = "id, timeline_id, name, order_index, is_looping"
_CLIP_COLUMNS = "id, track_id, audio_element_id, element_group_id, start_time_ms, duration_ms"


# ---- Timelines --------------------------------------------------------------


def insert_timeline(
    conn: sqlite3.Connection,
    mood_id: int,
    name: str,
    *,
    order_index: int = 0,
    is_looping: bool = False,
) -> int:
    cur = conn.execute(
        "INSERT INTO timelines (mood_id, name, order_index, is_looping) VALUES (?, ?, ?, ?)",
        (mood_id, name, int(order_index), int(bool(is_looping))),
    )
    return int(cur.lastrowid)


def fetch_timeline(conn: sqlite3.Connection, timeline_id: int) -> Timeline | None:
    row = conn.execute(
        f"SELECT {_TIMELINE_COLUMNS} FROM timelines WHERE id = ?", (timeline_id,)
    ).fetchone()
    return Timeline.from_row(row) if row is not None else None


def fetch_timeline_for_mood(conn: sqlite3.Connection, mood_id: int) -> Timeline | None:
    row = conn.execute(
        f"SELECT {_TIMELINE_COLUMNS} FROM timelines WHERE mood_id = ? ORDER BY id LIMIT 1",
        (mood_id,),
    ).fetchone()
    return Timeline.from_row(row) if row is not None else None


def list_timelines(conn: sqlite3.Connection, mood_id: int) -> list[Timeline]:
    rows = conn.execute(
        f"SELECT {_TIMELINE_COLUMNS} FROM timelines WHERE mood_id = ? ORDER BY order_index, id",
        (mood_id,),
    ).fetchall()
    return [Timeline.from_row(row) for row in rows]


def rename_timeline(conn: sqlite3.Connection, timeline_id: int, name: str) -> int:
    return conn.execute(
        "UPDATE timelines SET name = ? WHERE id = ?", (name, timeline_id)
    ).rowcount


def set_timeline_looping(conn: sqlite3.Connection, timeline_id: int, looping: bool) -> int:
    """Set the loop flag on the timeline and every track under it."""

    flag = int(bool(looping))
    updated = conn.execute(
        "UPDATE timelines SET is_looping = ? WHERE id = ?", (flag, timeline_id)
    ).rowcount
    conn.execute(
        "UPDATE timeline_tracks SET is_looping = ? WHERE timeline_id = ?", (flag, timeline_id)
    )
    return updated


def delete_timeline(conn: sqlite3.Connection, timeline_id: int) -> int:
    return conn.execute("DELETE FROM timelines WHERE id = ?", (timeline_id,)).rowcount


# ---- Tracks -----------------------------------------------------------------


def insert_track(
    conn: sqlite3.Connection,
    timeline_id: int,
    name: str,
    *,
    order_index: int | None = None,
    is_looping: bool = False,
) -> int:
    if order_index is None:
        row = conn.execute(
            "SELECT COALESCE(MAX(order_index), -1) + 1 FROM timeline_tracks WHERE timeline_id = ?",
            (timeline_id,),
        ).fetchone()
        order_index = int(row[0])
    cur = conn.execute(
        "INSERT INTO timeline_tracks (timeline_id, name, order_index, is_looping) VALUES (?, ?, ?, ?)",
        (timeline_id, name, int(order_index), int(bool(is_looping))),
    )
    return int(cur.lastrowid)


def fetch_track(conn: sqlite3.Connection, track_id: int) -> TimelineTrack | None:
    row = conn.execute(
        f"SELECT {_TRACK_COLUMNS} FROM timeline_tracks WHERE id = ?", (track_id,)
    ).fetchone()
    return TimelineTrack.from_row(row) if row is not None else None


def list_tracks(conn: sqlite3.Connection, timeline_id: int) -> list[TimelineTrack]:
    rows = conn.execute(
        f"SELECT {_TRACK_COLUMNS} FROM timeline_tracks WHERE timeline_id = ? ORDER BY order_index, id",
        (timeline_id,),
    ).fetchall()
    return [TimelineTrack.from_row(row) for row in rows]


def rename_track(conn: sqlite3.Connection, track_id: int, name: str) -> int:
    return conn.execute(
        "UPDATE timeline_tracks SET name = ? WHERE id = ?", (name, track_id)
    ).rowcount


def delete_track(conn: sqlite3.Connection, track_id: int) -> int:
    return conn.execute("DELETE FROM timeline_tracks WHERE id = ?", (track_id,)).rowcount


# ---- Clips ------------------------------------------------------------------


def insert_clip(
    conn: sqlite3.Connection,
    track_id: int,
    start_time_ms: int,
    duration_ms: int,
    *,
    audio_element_id: int | None = None,
    element_group_id: int | None = None,
) -> int:
    cur = conn.execute(
        """
        INSERT INTO timeline_elements
            (track_id, audio_element_id, element_group_id, start_time_ms, duration_ms)
        VALUES (?, ?, ?, ?, ?)
        """,
        (track_id, audio_element_id, element_group_id, int(start_time_ms), int(duration_ms)),
    )
    return int(cur.lastrowid)


def fetch_clip(conn: sqlite3.Connection, clip_id: int) -> TimelineElement | None:
    row = conn.execute(
        f"SELECT {_CLIP_COLUMNS} FROM timeline_elements WHERE id = ?", (clip_id,)
    ).fetchone()
    return TimelineElement.from_row(row) if row is not None else None


def list_track_clips(conn: sqlite3.Connection, track_id: int) -> list[TimelineElement]:
    rows = conn.execute(
        f"""
        SELECT {_CLIP_COLUMNS}
          FROM timeline_elements
         WHERE track_id = ?
         ORDER BY start_time_ms, id
        """,
        (track_id,),
    ).fetchall()
    return [TimelineElement.from_row(row) for row in rows]


def list_timeline_clips(conn: sqlite3.Connection, timeline_id: int) -> list[TimelineElement]:
    rows = conn.execute(
        """
        SELECT te.id, te.track_id, te.audio_element_id, te.element_group_id,
               te.start_time_ms, te.duration_ms
          FROM timeline_elements te
          JOIN timeline_tracks tt ON tt.id = te.track_id
         WHERE tt.timeline_id = ?
         ORDER BY tt.order_index, te.start_time_ms, te.id
        """,
        (timeline_id,),
    ).fetchall()
    return [TimelineElement.from_row(row) for row in rows]


def move_clip(conn: sqlite3.Connection, clip_id: int, start_time_ms: int, duration_ms: int) -> int:
    return conn.execute(
        "UPDATE timeline_elements SET start_time_ms = ?, duration_ms = ? WHERE id = ?",
        (int(start_time_ms), int(duration_ms), clip_id),
    ).rowcount


def delete_clip(conn: sqlite3.Connection, clip_id: int) -> int:
    return conn.execute("DELETE FROM timeline_elements WHERE id = ?", (clip_id,)).rowcount
