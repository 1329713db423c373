"""
Schema creation and in-place upgrades for the scene database.

There is no schema-version table.  Every change made to the schema over the
store's history is an entry in :data:`MIGRATIONS`, each pairing a probe
("is this already applied?", answered from the live catalog) with the rewrite
that applies it.  :func:`ensure_current` runs the probes in order and applies
only what is missing, so it is safe to call on every start and on a database
written by any earlier version.

Two kinds of step exist:

- additive: ``ADD COLUMN`` with a default, ``CREATE INDEX IF NOT EXISTS``;
- rebuild: a shadow table with the new shape is created, rows are copied with
  a re-projection, the old table is dropped and the shadow renamed into place.
  Foreign keys are switched off around the rebuild and the whole copy runs in
  one transaction.

Steps are order-dependent.  The clip/track rebuild relies on timelines having
``is_looping`` and on audio elements already being scoped by sound set.
"""

from __future__ import annotations

import logging
import os
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass
from typing import Final

from scenestore.errors import SchemaMigrationError

from .utils import column_names, column_notnull, has_column, has_index, open_db, transaction

log = logging.getLogger(__name__)

__all__ = [
    "TABLES",
    "Migration",
    "MIGRATIONS",
    "create_base_schema",
    "ensure_current",
    "pending_migrations",
]


# Current shape of every table, keyed by name. Order matters for creation.
TABLES: Final[dict[str, str]] = {
    "sound_sets": """(
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        description TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",
    "moods": """(
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        sound_set_id INTEGER NOT NULL REFERENCES sound_sets(id) ON DELETE CASCADE,
        name TEXT NOT NULL,
        description TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",
    "audio_channels": """(
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        sound_set_id INTEGER NOT NULL REFERENCES sound_sets(id) ON DELETE CASCADE,
        name TEXT NOT NULL,
        icon TEXT NOT NULL DEFAULT '',
        volume REAL NOT NULL DEFAULT 1.0,
        order_index INTEGER NOT NULL DEFAULT 0,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",
    "audio_elements": """(
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        sound_set_id INTEGER REFERENCES sound_sets(id) ON DELETE CASCADE,
        channel_id INTEGER REFERENCES audio_channels(id) ON DELETE SET NULL,
        file_path TEXT NOT NULL,
        file_name TEXT NOT NULL,
        channel_type TEXT DEFAULT 'ambient',
        volume_db REAL DEFAULT 0.0,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",
    "timelines": """(
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        mood_id INTEGER NOT NULL REFERENCES moods(id) ON DELETE CASCADE,
        name TEXT NOT NULL,
        order_index INTEGER NOT NULL DEFAULT 0,
        is_looping INTEGER NOT NULL DEFAULT 0,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",
    "timeline_tracks": """(
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        timeline_id INTEGER NOT NULL REFERENCES timelines(id) ON DELETE CASCADE,
        name TEXT NOT NULL,
        order_index INTEGER NOT NULL DEFAULT 0,
        is_looping INTEGER NOT NULL DEFAULT 0,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",
    "element_groups": """(
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        sound_set_id INTEGER REFERENCES sound_sets(id) ON DELETE CASCADE,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",
    "element_group_members": """(
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        group_id INTEGER NOT NULL REFERENCES element_groups(id) ON DELETE CASCADE,
        audio_element_id INTEGER NOT NULL REFERENCES audio_elements(id) ON DELETE CASCADE,
        order_index INTEGER NOT NULL DEFAULT 0,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",
    "timeline_elements": """(
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        track_id INTEGER NOT NULL REFERENCES timeline_tracks(id) ON DELETE CASCADE,
        audio_element_id INTEGER REFERENCES audio_elements(id) ON DELETE CASCADE,
        element_group_id INTEGER REFERENCES element_groups(id) ON DELETE CASCADE,
        start_time_ms INTEGER NOT NULL DEFAULT 0,
        duration_ms INTEGER NOT NULL DEFAULT 0,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        CHECK ((audio_element_id IS NULL) <> (element_group_id IS NULL))
    )""",
}

# Tables holding a foreign key into a table that a rebuild step rewrites
DEPENDENTS: Final[dict[str, tuple[str, ...]]] = {
    "audio_elements": ("timeline_elements", "element_group_members"),
}

TIMELINE_MOOD_INDEX: Final = "idx_timelines_mood_unique"

SECONDARY_INDEXES: Final[dict[str, str]] = {
    "idx_moods_sound_set": "moods(sound_set_id)",
    "idx_audio_channels_sound_set": "audio_channels(sound_set_id, order_index)",
    "idx_audio_elements_sound_set": "audio_elements(sound_set_id)",
    "idx_timeline_tracks_timeline": "timeline_tracks(timeline_id, order_index)",
    "idx_timeline_elements_track": "timeline_elements(track_id, start_time_ms)",
    "idx_group_members_group": "element_group_members(group_id, order_index)",
}


# =============================================================================
# Migration steps
# =============================================================================


@dataclass(frozen=True)
class Migration:
    """One idempotent schema change: a catalog probe plus the rewrite."""

    name: str
    is_applied: Callable[[sqlite3.Connection], bool]
    apply: Callable[[sqlite3.Connection], None]
    # Set for rebuild steps; names the table whose FKs (and whose dependents'
    # references into it) are checked afterwards
    rebuild_table: str | None = None


def _add_column_step(name: str, table: str, column: str, definition: str) -> Migration:
    def _probe(conn: sqlite3.Connection) -> bool:
        return has_column(conn, table, column)

    def _apply(conn: sqlite3.Connection) -> None:
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")

    return Migration(name, _probe, _apply)


def _column_or(conn: sqlite3.Connection, table: str, column: str, fallback: str) -> str:
    """Return ``column`` for use in a SELECT when present, else ``fallback``."""

    return column if has_column(conn, table, column) else fallback


# -- audio elements scoped by sound set ---------------------------------------


def _audio_elements_scoped(conn: sqlite3.Connection) -> bool:
    cols = column_names(conn, "audio_elements")
    return (
        "sound_set_id" in cols
        and "mood_id" not in cols
        and not column_notnull(conn, "audio_elements", "sound_set_id")
    )


def _rebuild_audio_elements(conn: sqlite3.Connection) -> None:
    # Old rows hang off a mood (and possibly a NOT NULL sound_set_id); the
    # sound set is backfilled through the mood. Rows without a mood keep their
    # own sound_set_id, or stay global when that is NULL too. Rows pointing
    # at a mood that is gone are dropped, matching what the cascade would
    # have done, and so is anything that still references them.
    cols = column_names(conn, "audio_elements")
    if "mood_id" in cols:
        sound_set_expr = (
            "COALESCE(ae.sound_set_id, m.sound_set_id)" if "sound_set_id" in cols else "m.sound_set_id"
        )
        source = (
            "audio_elements ae LEFT JOIN moods m ON m.id = ae.mood_id"
            " WHERE ae.mood_id IS NULL OR m.id IS NOT NULL"
        )
    else:
        sound_set_expr = "ae.sound_set_id"
        source = "audio_elements ae"

    if "channel_id" in cols:
        channel_expr = (
            "CASE WHEN ae.channel_id IN (SELECT id FROM audio_channels) THEN ae.channel_id END"
        )
    else:
        channel_expr = "NULL"
    created_expr = "ae.created_at" if "created_at" in cols else "CURRENT_TIMESTAMP"

    conn.execute(f"CREATE TABLE audio_elements__new {TABLES['audio_elements']}")
    conn.execute(
        f"""
        INSERT INTO audio_elements__new
            (id, sound_set_id, channel_id, file_path, file_name, channel_type, volume_db, created_at)
        SELECT ae.id, {sound_set_expr}, {channel_expr}, ae.file_path, ae.file_name,
               COALESCE(ae.channel_type, 'ambient'), COALESCE(ae.volume_db, 0.0), {created_expr}
          FROM {source}
        """
    )
    conn.execute("DROP TABLE audio_elements")
    conn.execute("ALTER TABLE audio_elements__new RENAME TO audio_elements")
    _drop_element_dependents(conn)


def _drop_element_dependents(conn: sqlite3.Connection) -> None:
    for table in DEPENDENTS["audio_elements"]:
        if not has_column(conn, table, "audio_element_id"):
            continue
        removed = conn.execute(
            f"""
            DELETE FROM {table}
             WHERE audio_element_id IS NOT NULL
               AND audio_element_id NOT IN (SELECT id FROM audio_elements)
            """
        ).rowcount
        if removed:
            log.warning("Removed %d row(s) from %s referencing dropped audio elements", removed, table)


# -- clips placed on tracks ----------------------------------------------------


def _timeline_elements_on_tracks(conn: sqlite3.Connection) -> bool:
    cols = column_names(conn, "timeline_elements")
    required = {"track_id", "duration_ms", "element_group_id"}
    return (
        required.issubset(cols)
        and "timeline_id" not in cols
        and not column_notnull(conn, "timeline_elements", "audio_element_id")
    )


def _rebuild_timeline_elements(conn: sqlite3.Connection) -> None:
    # Clips used to hang off the timeline directly. Every timeline gets a
    # default track, each clip moves to the first track of its timeline, and
    # the element reference becomes nullable so groups can be placed too.
    cols = column_names(conn, "timeline_elements")
    conn.execute(
        """
        INSERT INTO timeline_tracks (timeline_id, name, order_index, is_looping)
        SELECT t.id, 'Track 1', 0, t.is_looping
          FROM timelines t
         WHERE NOT EXISTS (SELECT 1 FROM timeline_tracks tt WHERE tt.timeline_id = t.id)
        """
    )

    first_track = "(SELECT MIN(tt.id) FROM timeline_tracks tt WHERE tt.timeline_id = te.timeline_id)"
    if "track_id" in cols and "timeline_id" in cols:
        track_expr = f"COALESCE(te.track_id, {first_track})"
    elif "track_id" in cols:
        track_expr = "te.track_id"
    elif "timeline_id" in cols:
        track_expr = first_track
    else:
        track_expr = "NULL"

    group_expr = _column_or(conn, "timeline_elements", "element_group_id", "NULL")
    duration_expr = _column_or(conn, "timeline_elements", "duration_ms", "0")
    created_expr = _column_or(conn, "timeline_elements", "created_at", "CURRENT_TIMESTAMP")

    conn.execute(f"CREATE TABLE timeline_elements__new {TABLES['timeline_elements']}")
    conn.execute(
        f"""
        INSERT INTO timeline_elements__new
            (id, track_id, audio_element_id, element_group_id, start_time_ms, duration_ms, created_at)
        SELECT id, track_id, audio_element_id, element_group_id,
               start_time_ms, duration_ms, created_at
          FROM (
            SELECT te.id AS id,
                   {track_expr} AS track_id,
                   CASE WHEN te.audio_element_id IN (SELECT id FROM audio_elements)
                        THEN te.audio_element_id END AS audio_element_id,
                   CASE WHEN {group_expr} IN (SELECT id FROM element_groups)
                        THEN {group_expr} END AS element_group_id,
                   COALESCE(te.start_time_ms, 0) AS start_time_ms,
                   COALESCE({duration_expr}, 0) AS duration_ms,
                   {created_expr} AS created_at
              FROM timeline_elements te
          )
         WHERE track_id IN (SELECT id FROM timeline_tracks)
           AND (audio_element_id IS NULL) <> (element_group_id IS NULL)
        """
    )
    conn.execute("DROP TABLE timeline_elements")
    conn.execute("ALTER TABLE timeline_elements__new RENAME TO timeline_elements")


# -- one timeline per mood -----------------------------------------------------


def _timeline_unique_applied(conn: sqlite3.Connection) -> bool:
    return has_index(conn, TIMELINE_MOOD_INDEX)


def _enforce_timeline_unique(conn: sqlite3.Connection) -> None:
    # Oldest timeline per mood wins; the rest cascade away with their tracks.
    removed = conn.execute(
        """
        DELETE FROM timelines
         WHERE id NOT IN (SELECT MIN(id) FROM timelines GROUP BY mood_id)
        """
    ).rowcount
    if removed:
        log.warning("Removed %d duplicate timeline(s) before enforcing one per mood", removed)
    conn.execute(f"CREATE UNIQUE INDEX IF NOT EXISTS {TIMELINE_MOOD_INDEX} ON timelines(mood_id)")


# -- secondary indexes ---------------------------------------------------------


def _indexes_applied(conn: sqlite3.Connection) -> bool:
    return all(has_index(conn, name) for name in SECONDARY_INDEXES)


def _create_indexes(conn: sqlite3.Connection) -> None:
    for name, target in SECONDARY_INDEXES.items():
        conn.execute(f"CREATE INDEX IF NOT EXISTS {name} ON {target}")


MIGRATIONS: Final[tuple[Migration, ...]] = (
    _add_column_step(
        "audio_channels_icon", "audio_channels", "icon", "TEXT NOT NULL DEFAULT ''"
    ),
    _add_column_step(
        "audio_channels_order_index", "audio_channels", "order_index", "INTEGER NOT NULL DEFAULT 0"
    ),
    Migration(
        "audio_elements_scoped_by_sound_set",
        _audio_elements_scoped,
        _rebuild_audio_elements,
        rebuild_table="audio_elements",
    ),
    _add_column_step(
        "audio_elements_channel_id",
        "audio_elements",
        "channel_id",
        "INTEGER REFERENCES audio_channels(id) ON DELETE SET NULL",
    ),
    _add_column_step(
        "timelines_is_looping", "timelines", "is_looping", "INTEGER NOT NULL DEFAULT 0"
    ),
    _add_column_step(
        "timeline_tracks_is_looping", "timeline_tracks", "is_looping", "INTEGER NOT NULL DEFAULT 0"
    ),
    _add_column_step(
        "element_group_members_order_index",
        "element_group_members",
        "order_index",
        "INTEGER NOT NULL DEFAULT 0",
    ),
    Migration(
        "timeline_elements_on_tracks",
        _timeline_elements_on_tracks,
        _rebuild_timeline_elements,
        rebuild_table="timeline_elements",
    ),
    Migration("timelines_unique_per_mood", _timeline_unique_applied, _enforce_timeline_unique),
    Migration("secondary_indexes", _indexes_applied, _create_indexes),
)


# =============================================================================
# Runner
# =============================================================================


def create_base_schema(conn: sqlite3.Connection) -> None:
    """Create any missing table in its current shape. Existing tables are left alone."""

    statements = "\n".join(
        f"CREATE TABLE IF NOT EXISTS {name} {body};" for name, body in TABLES.items()
    )
    try:
        conn.executescript(f"BEGIN;\n{statements}\nCOMMIT;")
    except sqlite3.Error:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise


def pending_migrations(conn: sqlite3.Connection) -> list[str]:
    """Return the names of the steps whose probe reports them missing."""

    return [step.name for step in MIGRATIONS if not step.is_applied(conn)]


def _rebuild_violations(conn: sqlite3.Connection, table: str) -> list[sqlite3.Row]:
    """FK violations of ``table`` itself plus dependent rows pointing into it."""

    violations = conn.execute(f"PRAGMA foreign_key_check({table})").fetchall()
    for dependent in DEPENDENTS.get(table, ()):
        rows = conn.execute(f"PRAGMA foreign_key_check({dependent})").fetchall()
        # column 2 is the parent table
        violations.extend(row for row in rows if row[2] == table)
    return violations


def _run_rebuild(conn: sqlite3.Connection, step: Migration) -> None:
    conn.execute("PRAGMA foreign_keys = OFF")
    try:
        with transaction(conn):
            step.apply(conn)
            violations = _rebuild_violations(conn, step.rebuild_table)
            if violations:
                raise SchemaMigrationError(
                    step.name, f"{len(violations)} foreign key violation(s) after rebuild"
                )
    finally:
        conn.execute("PRAGMA foreign_keys = ON")


def _apply_all(conn: sqlite3.Connection) -> list[str]:
    try:
        create_base_schema(conn)
    except sqlite3.Error as exc:
        raise SchemaMigrationError("base_schema", str(exc)) from exc

    applied: list[str] = []
    for step in MIGRATIONS:
        try:
            if step.is_applied(conn):
                log.debug("Schema step %s already applied", step.name)
                continue
            log.info("Applying schema step %s", step.name)
            if step.rebuild_table is not None:
                _run_rebuild(conn, step)
            else:
                with transaction(conn):
                    step.apply(conn)
        except sqlite3.Error as exc:
            raise SchemaMigrationError(step.name, str(exc)) from exc
        applied.append(step.name)
    return applied


def ensure_current(database: str | os.PathLike[str] | sqlite3.Connection) -> list[str]:
    """Bring ``database`` to the current schema and return the steps applied.

    ``database`` is either a path or an open connection in autocommit mode.
    Raises :class:`SchemaMigrationError` on any catalog or DDL failure.
    """

    if isinstance(database, sqlite3.Connection):
        return _apply_all(database)

    try:
        conn = open_db(os.fspath(database))
    except sqlite3.Error as exc:
        raise SchemaMigrationError("open", str(exc)) from exc
    try:
        applied = _apply_all(conn)
    finally:
        conn.close()
    if applied:
        log.info("Schema upgraded: %s", ", ".join(applied))
    return applied
