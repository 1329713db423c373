"""Audio channel helpers for the scene database."""

from __future__ import annotations

import sqlite3
from typing import Final

from scenestore.storage.records import AudioChannel

__all__ = [
    "DEFAULT_CHANNELS",
    "insert_channel",
    "fetch_channel",
    "list_channels",
    "update_channel",
    "move_channel",
    "delete_channel",
    "seed_default_channels",
]

# (name, icon) pairs seeded into an empty sound set
DEFAULT_CHANNELS: Final[tuple[tuple[str, str], ...]] = (
    ("Music", "music"),
    ("Ambient", "wind"),
    ("Effects", "zap"),
    ("Creatures", "paw-print"),
    ("Voice", "mic"),
)

_COLUMNS = "id, sound_set_id, name, icon, volume, order_index"


def _next_order_index(conn: sqlite3.Connection, sound_set_id: int) -> int:
    row = conn.execute(
        "SELECT COALESCE(MAX(order_index), -1) + 1 FROM audio_channels WHERE sound_set_id = ?",
        (sound_set_id,),
    ).fetchone()
    return int(row[0])


def insert_channel(
    conn: sqlite3.Connection,
    sound_set_id: int,
    name: str,
    icon: str = "",
    volume: float = 1.0,
    order_index: int | None = None,
) -> int:
    if order_index is None:
        order_index = _next_order_index(conn, sound_set_id)
    cur = conn.execute(
        """
        INSERT INTO audio_channels (sound_set_id, name, icon, volume, order_index)
        VALUES (?, ?, ?, ?, ?)
        """,
        (sound_set_id, name, icon, float(volume), int(order_index)),
    )
    return int(cur.lastrowid)


def fetch_channel(conn: sqlite3.Connection, channel_id: int) -> AudioChannel | None:
    row = conn.execute(
        f"SELECT {_COLUMNS} FROM audio_channels WHERE id = ?", (channel_id,)
    ).fetchone()
    return AudioChannel.from_row(row) if row is not None else None


def list_channels(conn: sqlite3.Connection, sound_set_id: int) -> list[AudioChannel]:
    rows = conn.execute(
        f"SELECT {_COLUMNS} FROM audio_channels WHERE sound_set_id = ? ORDER BY order_index, id",
        (sound_set_id,),
    ).fetchall()
    return [AudioChannel.from_row(row) for row in rows]


def update_channel(
    conn: sqlite3.Connection, channel_id: int, name: str, icon: str, volume: float
) -> int:
    cur = conn.execute(
        "UPDATE audio_channels SET name = ?, icon = ?, volume = ? WHERE id = ?",
        (name, icon, float(volume), channel_id),
    )
    return cur.rowcount


def move_channel(conn: sqlite3.Connection, channel_id: int, order_index: int) -> None:
    """Move one channel to ``order_index`` and renumber its siblings from 0."""

    channel = fetch_channel(conn, channel_id)
    if channel is None:
        return
    siblings = [c.id for c in list_channels(conn, channel.sound_set_id) if c.id != channel_id]
    target = max(0, min(int(order_index), len(siblings)))
    siblings.insert(target, channel_id)
    conn.executemany(
        "UPDATE audio_channels SET order_index = ? WHERE id = ?",
        [(index, cid) for index, cid in enumerate(siblings)],
    )


def delete_channel(conn: sqlite3.Connection, channel_id: int) -> int:
    return conn.execute("DELETE FROM audio_channels WHERE id = ?", (channel_id,)).rowcount


def seed_default_channels(conn: sqlite3.Connection, sound_set_id: int) -> list[AudioChannel]:
    """Insert :data:`DEFAULT_CHANNELS` when the set has none; return its channels."""

    existing = list_channels(conn, sound_set_id)
    if existing:
        return existing
    for index, (name, icon) in enumerate(DEFAULT_CHANNELS):
        insert_channel(conn, sound_set_id, name, icon, 1.0, index)
    return list_channels(conn, sound_set_id)
