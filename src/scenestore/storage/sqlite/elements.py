"""Audio element helpers for the scene database.

Elements are either scoped to a sound set or global one-shots (``NULL``
``sound_set_id``).  Deletes are always scoped so a global delete can never
remove a project element and vice versa.
"""

from __future__ import annotations

import sqlite3

from scenestore.storage.records import AudioElement, Scope, Scoped, scope_to_column

__all__ = [
    "insert_element",
    "fetch_element",
    "list_elements",
    "update_element_fields",
    "delete_element",
]

_COLUMNS = "id, sound_set_id, channel_id, file_path, file_name, channel_type, volume_db, created_at"


def insert_element(
    conn: sqlite3.Connection,
    scope: Scope,
    file_path: str,
    file_name: str,
    channel_type: str = "ambient",
    *,
    channel_id: int | None = None,
    volume_db: float = 0.0,
) -> int:
    cur = conn.execute(
        """
        INSERT INTO audio_elements
            (sound_set_id, channel_id, file_path, file_name, channel_type, volume_db)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (scope_to_column(scope), channel_id, file_path, file_name, channel_type, float(volume_db)),
    )
    return int(cur.lastrowid)


def fetch_element(conn: sqlite3.Connection, element_id: int) -> AudioElement | None:
    row = conn.execute(
        f"SELECT {_COLUMNS} FROM audio_elements WHERE id = ?", (element_id,)
    ).fetchone()
    return AudioElement.from_row(row) if row is not None else None


def list_elements(conn: sqlite3.Connection, scope: Scope) -> list[AudioElement]:
    if isinstance(scope, Scoped):
        rows = conn.execute(
            f"SELECT {_COLUMNS} FROM audio_elements WHERE sound_set_id = ? ORDER BY id",
            (scope.sound_set_id,),
        ).fetchall()
    else:
        rows = conn.execute(
            f"SELECT {_COLUMNS} FROM audio_elements WHERE sound_set_id IS NULL ORDER BY id"
        ).fetchall()
    return [AudioElement.from_row(row) for row in rows]


def update_element_fields(conn: sqlite3.Connection, element_id: int, **fields: object) -> int:
    """Update the whitelisted columns present in ``fields``."""

    allowed = {"channel_id", "channel_type", "volume_db", "file_name"}
    to_update = {key: value for key, value in fields.items() if key in allowed}
    if not to_update:
        return 0
    assignments = ", ".join(f"{col} = ?" for col in to_update)
    cur = conn.execute(
        f"UPDATE audio_elements SET {assignments} WHERE id = ?",
        [*to_update.values(), element_id],
    )
    return cur.rowcount


def delete_element(conn: sqlite3.Connection, element_id: int, *, global_only: bool) -> int:
    """Delete a global one-shot (``global_only``) or a sound-set element, never the other."""

    if global_only:
        sql = "DELETE FROM audio_elements WHERE id = ? AND sound_set_id IS NULL"
    else:
        sql = "DELETE FROM audio_elements WHERE id = ? AND sound_set_id IS NOT NULL"
    return conn.execute(sql, (element_id,)).rowcount
