"""Clip placement checks for timeline tracks.

Clips occupy half-open intervals ``[start, start + duration)``.  Two clips on
the same track collide when each starts before the other ends; clips that
merely touch do not.
"""

from __future__ import annotations

import logging
import sqlite3

from scenestore.errors import PlacementConflictError

log = logging.getLogger(__name__)

__all__ = ["intervals_overlap", "find_conflict", "overlaps", "check_placement"]


def intervals_overlap(a_start: int, a_duration: int, b_start: int, b_duration: int) -> bool:
    """Return whether ``[a_start, a_start + a_duration)`` meets ``[b_start, b_start + b_duration)``."""

    return a_start < b_start + b_duration and b_start < a_start + a_duration


def find_conflict(
    conn: sqlite3.Connection,
    track_id: int,
    start_ms: int,
    duration_ms: int,
    exclude_id: int | None = None,
) -> int | None:
    """Return the id of the earliest clip on ``track_id`` the proposed clip overlaps."""

    end_ms = start_ms + duration_ms
    row = conn.execute(
        """
        SELECT id
          FROM timeline_elements
         WHERE track_id = ?
           AND start_time_ms < ?
           AND ? < start_time_ms + duration_ms
           AND (? IS NULL OR id <> ?)
         ORDER BY start_time_ms, id
         LIMIT 1
        """,
        (track_id, end_ms, start_ms, exclude_id, exclude_id),
    ).fetchone()
    return int(row[0]) if row is not None else None


def overlaps(
    conn: sqlite3.Connection,
    track_id: int,
    start_ms: int,
    duration_ms: int,
    exclude_id: int | None = None,
) -> bool:
    return find_conflict(conn, track_id, start_ms, duration_ms, exclude_id) is not None


def check_placement(
    conn: sqlite3.Connection,
    track_id: int,
    start_ms: int,
    duration_ms: int,
    exclude_id: int | None = None,
) -> None:
    """Raise :class:`PlacementConflictError` when the proposed clip overlaps another."""

    conflicting = find_conflict(conn, track_id, start_ms, duration_ms, exclude_id)
    if conflicting is not None:
        log.info(
            "Rejected clip [%d, %d) on track %d: overlaps clip %d",
            start_ms,
            start_ms + duration_ms,
            track_id,
            conflicting,
        )
        raise PlacementConflictError(track_id, start_ms, duration_ms, conflicting)
