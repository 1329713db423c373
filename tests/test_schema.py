import sqlite3
from pathlib import Path

import pytest

from scenestore.errors import SchemaMigrationError
from scenestore.storage.scene_store import SceneStore
from scenestore.storage.sqlite.schema import (
    MIGRATIONS,
    TABLES,
    TIMELINE_MOOD_INDEX,
    ensure_current,
    pending_migrations,
)
from scenestore.storage.sqlite.utils import column_names, column_notnull, has_index, open_db

# Shape written by the first releases: elements hang off moods, clips off
# timelines, and nothing loops.
LEGACY_SCHEMA = """
CREATE TABLE sound_sets (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    description TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
CREATE TABLE moods (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    sound_set_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    description TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (sound_set_id) REFERENCES sound_sets(id) ON DELETE CASCADE
);
CREATE TABLE audio_channels (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    sound_set_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    volume REAL NOT NULL DEFAULT 1.0,
    FOREIGN KEY (sound_set_id) REFERENCES sound_sets(id) ON DELETE CASCADE
);
CREATE TABLE audio_elements (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    mood_id INTEGER NOT NULL,
    file_path TEXT NOT NULL,
    file_name TEXT NOT NULL,
    channel_type TEXT DEFAULT 'ambient',
    volume_db REAL DEFAULT 0.0,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (mood_id) REFERENCES moods(id) ON DELETE CASCADE
);
CREATE TABLE timelines (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    mood_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    order_index INTEGER NOT NULL DEFAULT 0,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (mood_id) REFERENCES moods(id) ON DELETE CASCADE
);
CREATE TABLE timeline_elements (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timeline_id INTEGER NOT NULL,
    audio_element_id INTEGER NOT NULL,
    start_time_ms INTEGER NOT NULL DEFAULT 0,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (timeline_id) REFERENCES timelines(id) ON DELETE CASCADE,
    FOREIGN KEY (audio_element_id) REFERENCES audio_elements(id) ON DELETE CASCADE
);
"""


def _make_legacy_db(tmp_path: Path) -> Path:
    path = tmp_path / "legacy.db"
    conn = sqlite3.connect(path)
    conn.executescript(LEGACY_SCHEMA)
    conn.executescript(
        """
        INSERT INTO sound_sets (id, name) VALUES (1, 'Forest');
        INSERT INTO moods (id, sound_set_id, name) VALUES (1, 1, 'Calm'), (2, 1, 'Storm');
        INSERT INTO audio_channels (id, sound_set_id, name) VALUES (1, 1, 'Ambient');
        INSERT INTO audio_elements (id, mood_id, file_path, file_name)
            VALUES (1, 1, '/a/birds.wav', 'birds.wav'),
                   (2, 99, '/a/lost.wav', 'lost.wav');
        INSERT INTO timelines (id, mood_id, name) VALUES (1, 1, 'Calm A'), (2, 1, 'Calm B'), (3, 2, 'Storm');
        INSERT INTO timeline_elements (id, timeline_id, audio_element_id, start_time_ms)
            VALUES (1, 1, 1, 250),
                   (2, 2, 1, 0),
                   (3, 1, 2, 4000);
        """
    )
    conn.commit()
    conn.close()
    return path


def test_fresh_database_is_current_after_one_run(tmp_path):
    path = tmp_path / "scene.db"

    ensure_current(path)

    assert ensure_current(path) == []
    conn = open_db(str(path))
    try:
        assert pending_migrations(conn) == []
        assert has_index(conn, TIMELINE_MOOD_INDEX)
    finally:
        conn.close()


def test_legacy_database_is_upgraded(tmp_path):
    path = _make_legacy_db(tmp_path)

    applied = ensure_current(path)

    # tables missing entirely are created in their current shape, so their
    # column steps have nothing to do
    assert applied == [
        "audio_channels_icon",
        "audio_channels_order_index",
        "audio_elements_scoped_by_sound_set",
        "timelines_is_looping",
        "timeline_elements_on_tracks",
        "timelines_unique_per_mood",
        "secondary_indexes",
    ]
    conn = open_db(str(path))
    try:
        assert {"icon", "order_index"} <= set(column_names(conn, "audio_channels"))
        assert "mood_id" not in column_names(conn, "audio_elements")
        assert not column_notnull(conn, "audio_elements", "sound_set_id")
        assert "timeline_id" not in column_names(conn, "timeline_elements")

        elements = conn.execute(
            "SELECT id, sound_set_id, channel_id FROM audio_elements ORDER BY id"
        ).fetchall()
        assert [tuple(row) for row in elements] == [(1, 1, None)]

        # oldest timeline per mood survives
        timelines = conn.execute("SELECT id FROM timelines ORDER BY id").fetchall()
        assert [row[0] for row in timelines] == [1, 3]

        tracks = conn.execute(
            "SELECT timeline_id, name, order_index FROM timeline_tracks ORDER BY timeline_id"
        ).fetchall()
        assert [tuple(row) for row in tracks] == [(1, "Track 1", 0), (3, "Track 1", 0)]

        clips = conn.execute(
            """
            SELECT te.id, tt.timeline_id, te.audio_element_id, te.start_time_ms, te.duration_ms
              FROM timeline_elements te JOIN timeline_tracks tt ON tt.id = te.track_id
            """
        ).fetchall()
        assert [tuple(row) for row in clips] == [(1, 1, 1, 250, 0)]

        assert conn.execute("PRAGMA foreign_key_check").fetchall() == []
        assert conn.execute("PRAGMA integrity_check").fetchone()[0] == "ok"
    finally:
        conn.close()


def test_second_run_changes_nothing(tmp_path):
    path = _make_legacy_db(tmp_path)
    ensure_current(path)
    with sqlite3.connect(path) as conn:
        before = conn.execute("SELECT type, name, sql FROM sqlite_master ORDER BY name").fetchall()

    assert ensure_current(path) == []

    with sqlite3.connect(path) as conn:
        after = conn.execute("SELECT type, name, sql FROM sqlite_master ORDER BY name").fetchall()
    assert after == before


def test_rebuilt_tables_keep_cascades(tmp_path):
    path = _make_legacy_db(tmp_path)
    ensure_current(path)
    store = SceneStore(path)

    store.delete_sound_set(1)

    with sqlite3.connect(path) as conn:
        for table in ("moods", "audio_elements", "timelines", "timeline_tracks", "timeline_elements"):
            assert conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0] == 0, table


def test_unique_timeline_index_blocks_duplicates(tmp_path):
    path = _make_legacy_db(tmp_path)
    ensure_current(path)

    conn = open_db(str(path))
    try:
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute("INSERT INTO timelines (mood_id, name) VALUES (1, 'Again')")
    finally:
        conn.close()


def test_probes_are_independent_of_rewrites(tmp_path):
    path = _make_legacy_db(tmp_path)
    conn = open_db(str(path))
    try:
        by_name = {step.name: step for step in MIGRATIONS}
        assert not by_name["audio_channels_icon"].is_applied(conn)
        assert not by_name["audio_elements_scoped_by_sound_set"].is_applied(conn)
        assert not by_name["timeline_elements_on_tracks"].is_applied(conn)
        assert not by_name["timelines_unique_per_mood"].is_applied(conn)
    finally:
        conn.close()


def test_unreadable_database_fails_with_migration_error(tmp_path):
    path = tmp_path / "broken.db"
    path.write_bytes(b"this is not a sqlite database" * 100)

    with pytest.raises(SchemaMigrationError):
        ensure_current(path)


# Intermediate shape: mood_id already nullable next to a nullable sound_set_id,
# every other table current.
INTERMEDIATE_ELEMENTS = """
CREATE TABLE audio_elements (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    mood_id INTEGER REFERENCES moods(id) ON DELETE CASCADE,
    sound_set_id INTEGER REFERENCES sound_sets(id) ON DELETE CASCADE,
    file_path TEXT NOT NULL,
    file_name TEXT NOT NULL,
    channel_type TEXT DEFAULT 'ambient',
    volume_db REAL DEFAULT 0.0,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""


def _make_intermediate_db(tmp_path: Path) -> Path:
    path = tmp_path / "intermediate.db"
    conn = sqlite3.connect(path)
    for name, body in TABLES.items():
        if name != "audio_elements":
            conn.execute(f"CREATE TABLE {name} {body}")
    conn.executescript(INTERMEDIATE_ELEMENTS)
    conn.executescript(
        """
        INSERT INTO sound_sets (id, name) VALUES (1, 'Forest');
        INSERT INTO moods (id, sound_set_id, name) VALUES (1, 1, 'Calm');
        INSERT INTO audio_elements (id, mood_id, sound_set_id, file_path, file_name)
            VALUES (1, NULL, 1, '/a/rain.wav', 'rain.wav'),
                   (2, NULL, NULL, '/a/thunder.wav', 'thunder.wav'),
                   (3, 1, NULL, '/a/birds.wav', 'birds.wav'),
                   (4, 99, NULL, '/a/lost.wav', 'lost.wav');
        INSERT INTO timelines (id, mood_id, name) VALUES (1, 1, 'Calm');
        INSERT INTO timeline_tracks (id, timeline_id, name) VALUES (1, 1, 'Track 1');
        INSERT INTO timeline_elements (id, track_id, audio_element_id, start_time_ms, duration_ms)
            VALUES (1, 1, 1, 0, 100),
                   (2, 1, 4, 500, 100);
        INSERT INTO element_groups (id, name, sound_set_id) VALUES (1, 'Hits', 1);
        INSERT INTO element_group_members (id, group_id, audio_element_id)
            VALUES (1, 1, 2),
                   (2, 1, 4);
        """
    )
    conn.commit()
    conn.close()
    return path


def test_nullable_mood_rows_survive_the_rebuild(tmp_path):
    path = _make_intermediate_db(tmp_path)

    assert "audio_elements_scoped_by_sound_set" in ensure_current(path)

    conn = open_db(str(path))
    try:
        elements = conn.execute("SELECT id, sound_set_id FROM audio_elements ORDER BY id").fetchall()
        assert [tuple(row) for row in elements] == [(1, 1), (2, None), (3, 1)]

        # dependents of the dropped element go with it
        clips = conn.execute("SELECT id FROM timeline_elements ORDER BY id").fetchall()
        assert [row[0] for row in clips] == [1]
        members = conn.execute("SELECT id FROM element_group_members ORDER BY id").fetchall()
        assert [row[0] for row in members] == [1]

        assert conn.execute("PRAGMA foreign_key_check").fetchall() == []
    finally:
        conn.close()

    store = SceneStore(path)
    assert [e.id for e in store.list_global_oneshots()] == [2]
    assert [e.id for e in store.list_audio_elements(1)] == [1, 3]
