"""Sound set and mood helpers for the scene database."""

from __future__ import annotations

import sqlite3

from scenestore.storage.records import Mood, SoundSet

__all__ = [
    "insert_sound_set",
    "fetch_sound_set",
    "list_sound_sets",
    "sound_set_name_exists",
    "unique_sound_set_name",
    "update_sound_set",
    "delete_sound_set",
    "insert_mood",
    "fetch_mood",
    "list_moods",
    "update_mood",
    "delete_mood",
]


def insert_sound_set(conn: sqlite3.Connection, name: str, description: str = "") -> int:
    cur = conn.execute(
        "INSERT INTO sound_sets (name, description) VALUES (?, ?)",
        (name, description),
    )
    return int(cur.lastrowid)


def fetch_sound_set(conn: sqlite3.Connection, sound_set_id: int) -> SoundSet | None:
    row = conn.execute(
        "SELECT id, name, description, created_at FROM sound_sets WHERE id = ?",
        (sound_set_id,),
    ).fetchone()
    return SoundSet.from_row(row) if row is not None else None


def list_sound_sets(conn: sqlite3.Connection) -> list[SoundSet]:
    rows = conn.execute(
        "SELECT id, name, description, created_at FROM sound_sets ORDER BY created_at DESC, id DESC"
    ).fetchall()
    return [SoundSet.from_row(row) for row in rows]


def sound_set_name_exists(conn: sqlite3.Connection, name: str) -> bool:
    row = conn.execute("SELECT 1 FROM sound_sets WHERE name = ? LIMIT 1", (name,)).fetchone()
    return row is not None


def unique_sound_set_name(conn: sqlite3.Connection, name: str) -> str:
    """Return ``name``, or ``name (1)``, ``name (2)``, ... whichever is free first."""

    candidate = name
    suffix = 1
    while sound_set_name_exists(conn, candidate):
        candidate = f"{name} ({suffix})"
        suffix += 1
    return candidate


def update_sound_set(
    conn: sqlite3.Connection,
    sound_set_id: int,
    *,
    name: str | None = None,
    description: str | None = None,
) -> int:
    fields = {"name": name, "description": description}
    to_update = {key: value for key, value in fields.items() if value is not None}
    if not to_update:
        return 0
    assignments = ", ".join(f"{col} = ?" for col in to_update)
    cur = conn.execute(
        f"UPDATE sound_sets SET {assignments} WHERE id = ?",
        [*to_update.values(), sound_set_id],
    )
    return cur.rowcount


def delete_sound_set(conn: sqlite3.Connection, sound_set_id: int) -> int:
    return conn.execute("DELETE FROM sound_sets WHERE id = ?", (sound_set_id,)).rowcount


# ---- Moods ------------------------------------------------------------------


def insert_mood(conn: sqlite3.Connection, sound_set_id: int, name: str, description: str = "") -> int:
    cur = conn.execute(
        "INSERT INTO moods (sound_set_id, name, description) VALUES (?, ?, ?)",
        (sound_set_id, name, description),
    )
    return int(cur.lastrowid)


def fetch_mood(conn: sqlite3.Connection, mood_id: int) -> Mood | None:
    row = conn.execute(
        "SELECT id, sound_set_id, name, description, created_at FROM moods WHERE id = ?",
        (mood_id,),
    ).fetchone()
    return Mood.from_row(row) if row is not None else None


def list_moods(conn: sqlite3.Connection, sound_set_id: int) -> list[Mood]:
    rows = conn.execute(
        """
        SELECT id, sound_set_id, name, description, created_at
          FROM moods
         WHERE sound_set_id = ?
         ORDER BY id
        """,
        (sound_set_id,),
    ).fetchall()
    return [Mood.from_row(row) for row in rows]


def update_mood(
    conn: sqlite3.Connection,
    mood_id: int,
    *,
    name: str | None = None,
    description: str | None = None,
) -> int:
    fields = {"name": name, "description": description}
    to_update = {key: value for key, value in fields.items() if value is not None}
    if not to_update:
        return 0
    assignments = ", ".join(f"{col} = ?" for col in to_update)
    cur = conn.execute(
        f"UPDATE moods SET {assignments} WHERE id = ?",
        [*to_update.values(), mood_id],
    )
    return cur.rowcount


def delete_mood(conn: sqlite3.Connection, mood_id: int) -> int:
    return conn.execute("DELETE FROM moods WHERE id = ?", (mood_id,)).rowcount
