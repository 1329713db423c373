import sqlite3
from pathlib import Path

import pytest

from scenestore.core.settings import AppSettings
from scenestore.errors import (
    InvalidReferenceError,
    NotFoundError,
    PlacementConflictError,
)
from scenestore.storage.records import GLOBAL, Scoped
from scenestore.storage.scene_store import open_store


def _make_store(tmp_path: Path, strategy: str = "reference"):
    library = tmp_path / "library"
    return open_store(
        tmp_path / "scene.db",
        settings_loader=lambda: AppSettings(audio_file_strategy=strategy, library_path=str(library)),
    )


def _make_scene(store):
    sound_set = store.create_sound_set("Tavern", "Busy inn")
    mood = store.create_mood(sound_set.id, "Evening")
    channel = store.create_audio_channel(sound_set.id, "Ambient", "wind", 0.8)
    element = store.create_audio_element(
        sound_set.id, "/sounds/crowd.ogg", "crowd.ogg", "ambient", channel_id=channel.id
    )
    timeline = store.create_timeline(mood.id, "Evening timeline")
    track = store.list_tracks(timeline.id)[0]
    return sound_set, mood, channel, element, timeline, track


def _count(store, table: str) -> int:
    with sqlite3.connect(store.path) as conn:
        return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]


def test_create_timeline_returns_existing_timeline(tmp_path):
    store = _make_store(tmp_path)
    sound_set = store.create_sound_set("Forest")
    mood = store.create_mood(sound_set.id, "Calm")

    first = store.create_timeline(mood.id, "First")
    second = store.create_timeline(mood.id, "Second")

    assert second.id == first.id
    assert second.name == "First"
    assert len(store.list_timelines(mood.id)) == 1
    tracks = store.list_tracks(first.id)
    assert [track.name for track in tracks] == ["Track 1"]


def test_create_timeline_requires_mood(tmp_path):
    store = _make_store(tmp_path)
    with pytest.raises(NotFoundError):
        store.create_timeline(999, "Orphan")


def test_update_timeline_loop_reaches_every_track(tmp_path):
    store = _make_store(tmp_path)
    _, mood, _, _, timeline, _ = _make_scene(store)
    store.create_track(timeline.id)

    updated = store.update_timeline_loop(timeline.id, True)

    assert updated.is_looping
    assert all(track.is_looping for track in store.list_tracks(timeline.id))
    added = store.create_track(timeline.id)
    assert added.is_looping
    assert added.name == "Track 3"

    store.update_timeline_loop(timeline.id, False)
    assert not any(track.is_looping for track in store.list_tracks(timeline.id))
    assert store.get_timeline_for_mood(mood.id).is_looping is False


def test_add_element_to_track_rejects_overlap(tmp_path):
    store = _make_store(tmp_path)
    _, _, _, element, _, track = _make_scene(store)

    store.add_element_to_track(track.id, 0, 1000, audio_element_id=element.id)
    with pytest.raises(PlacementConflictError):
        store.add_element_to_track(track.id, 500, 1000, audio_element_id=element.id)

    touching = store.add_element_to_track(track.id, 1000, 500, audio_element_id=element.id)
    assert touching.start_time_ms == 1000
    assert [clip.start_time_ms for clip in store.list_track_elements(track.id)] == [0, 1000]


def test_clips_on_separate_tracks_may_share_time(tmp_path):
    store = _make_store(tmp_path)
    _, _, _, element, timeline, track = _make_scene(store)
    second = store.create_track(timeline.id, "Effects")

    store.add_element_to_track(track.id, 0, 1000, audio_element_id=element.id)
    store.add_element_to_track(second.id, 0, 1000, audio_element_id=element.id)

    assert len(store.list_timeline_elements(timeline.id)) == 2


def test_moving_clip_onto_its_own_slot_is_allowed(tmp_path):
    store = _make_store(tmp_path)
    _, _, _, element, _, track = _make_scene(store)
    first = store.add_element_to_track(track.id, 0, 1000, audio_element_id=element.id)
    second = store.add_element_to_track(track.id, 2000, 1000, audio_element_id=element.id)

    same = store.update_element_time_and_duration(first.id, 0, 1000)
    assert (same.start_time_ms, same.duration_ms) == (0, 1000)
    grown = store.update_element_time_and_duration(first.id, 0, 2000)
    assert grown.end_time_ms == 2000

    with pytest.raises(PlacementConflictError):
        store.update_element_time_and_duration(second.id, 1500, 1000)
    with pytest.raises(PlacementConflictError):
        store.update_element_time(second.id, 1999)

    moved = store.update_element_time(second.id, 2500)
    assert (moved.start_time_ms, moved.duration_ms) == (2500, 1000)


def test_clip_must_reference_exactly_one_target(tmp_path):
    store = _make_store(tmp_path)
    sound_set, _, _, element, _, track = _make_scene(store)
    group = store.create_element_group("Footsteps", Scoped(sound_set.id))

    with pytest.raises(InvalidReferenceError):
        store.add_element_to_track(track.id, 0, 100)
    with pytest.raises(InvalidReferenceError):
        store.add_element_to_track(
            track.id, 0, 100, audio_element_id=element.id, element_group_id=group.id
        )

    clip = store.add_element_to_track(track.id, 0, 100, element_group_id=group.id)
    assert clip.audio_element_id is None
    assert clip.element_group_id == group.id


def test_clip_window_is_validated(tmp_path):
    store = _make_store(tmp_path)
    _, _, _, element, _, track = _make_scene(store)

    with pytest.raises(InvalidReferenceError):
        store.add_element_to_track(track.id, -1, 100, audio_element_id=element.id)
    with pytest.raises(InvalidReferenceError):
        store.add_element_to_track(track.id, 0, 0, audio_element_id=element.id)
    with pytest.raises(NotFoundError):
        store.add_element_to_track(track.id, 0, 100, audio_element_id=12345)


def test_global_and_scoped_deletes_do_not_cross(tmp_path):
    store = _make_store(tmp_path)
    sound_set, _, _, element, _, _ = _make_scene(store)
    oneshot = store.create_global_oneshot("/sounds/thunder.wav", "thunder.wav", "effects")

    assert oneshot.is_global
    assert [e.id for e in store.list_global_oneshots()] == [oneshot.id]

    with pytest.raises(NotFoundError):
        store.delete_global_oneshot(element.id)
    with pytest.raises(NotFoundError):
        store.delete_audio_element(oneshot.id)
    assert store.get_audio_element(element.id).sound_set_id == sound_set.id
    assert store.get_audio_element(oneshot.id).is_global

    store.delete_global_oneshot(oneshot.id)
    store.delete_audio_element(element.id)
    assert store.list_global_oneshots() == []
    assert store.list_audio_elements(sound_set.id) == []


def test_delete_sound_set_cascades(tmp_path):
    store = _make_store(tmp_path)
    sound_set, _, _, element, _, track = _make_scene(store)
    group = store.create_element_group("Glasses", Scoped(sound_set.id))
    store.add_element_to_group(group.id, element.id)
    store.add_element_to_track(track.id, 0, 1000, audio_element_id=element.id)
    global_group = store.create_element_group("Weather")
    oneshot = store.create_global_oneshot("/sounds/thunder.wav", "thunder.wav")
    store.add_element_to_group(global_group.id, oneshot.id)

    store.delete_sound_set(sound_set.id)

    for table in (
        "moods",
        "audio_channels",
        "timelines",
        "timeline_tracks",
        "timeline_elements",
    ):
        assert _count(store, table) == 0, table
    assert [e.id for e in store.list_global_oneshots()] == [oneshot.id]
    assert [g.id for g in store.list_element_groups(GLOBAL)] == [global_group.id]
    assert len(store.list_group_members(global_group.id)) == 1
    assert _count(store, "audio_elements") == 1
    assert _count(store, "element_groups") == 1
    with pytest.raises(NotFoundError):
        store.get_sound_set(sound_set.id)


def test_delete_mood_removes_its_timeline(tmp_path):
    store = _make_store(tmp_path)
    sound_set, mood, _, element, timeline, track = _make_scene(store)
    store.add_element_to_track(track.id, 0, 500, audio_element_id=element.id)

    store.delete_mood(mood.id)

    assert store.list_moods(sound_set.id) == []
    assert store.list_tracks(timeline.id) == []
    assert _count(store, "timeline_elements") == 0
    assert len(store.list_audio_elements(sound_set.id)) == 1


def test_delete_track_removes_its_clips(tmp_path):
    store = _make_store(tmp_path)
    _, _, _, element, timeline, track = _make_scene(store)
    clip = store.add_element_to_track(track.id, 0, 500, audio_element_id=element.id)

    store.delete_track(track.id)

    assert store.list_timeline_elements(timeline.id) == []
    with pytest.raises(NotFoundError):
        store.delete_timeline_element(clip.id)


def test_deleting_channel_keeps_elements(tmp_path):
    store = _make_store(tmp_path)
    sound_set, _, channel, element, _, _ = _make_scene(store)

    store.delete_audio_channel(channel.id)

    assert store.get_audio_element(element.id).channel_id is None
    assert store.list_audio_channels(sound_set.id) == []


def test_element_channel_must_belong_to_same_sound_set(tmp_path):
    store = _make_store(tmp_path)
    _, _, channel, element, _, _ = _make_scene(store)
    other_set = store.create_sound_set("Dungeon")
    foreign = store.create_audio_channel(other_set.id, "Drips")

    with pytest.raises(InvalidReferenceError):
        store.update_audio_element_channel(element.id, foreign.id)

    assert store.update_audio_element_channel(element.id, None).channel_id is None
    assert store.update_audio_element_channel(element.id, channel.id).channel_id == channel.id
    assert store.update_audio_element_channel_type(element.id, "music").channel_type == "music"
    assert store.update_audio_element_volume(element.id, -6.5).volume_db == -6.5


def test_reference_strategy_stores_path_verbatim(tmp_path):
    store = _make_store(tmp_path)
    sound_set = store.create_sound_set("Harbor")

    element = store.create_audio_element(sound_set.id, "/elsewhere/gulls.mp3", "gulls.mp3")

    assert element.file_path == "/elsewhere/gulls.mp3"
    assert not (tmp_path / "library").exists()


def test_copy_strategy_copies_into_library(tmp_path):
    store = _make_store(tmp_path, strategy="copy")
    sound_set = store.create_sound_set("Harbor")
    source = tmp_path / "incoming" / "gulls.mp3"
    source.parent.mkdir()
    source.write_bytes(b"gulls")

    first = store.create_audio_element(sound_set.id, source, "gulls.mp3")
    second = store.create_global_oneshot(source, "gulls.mp3")

    library = tmp_path / "library"
    assert Path(first.file_path) == library / "gulls.mp3"
    assert Path(second.file_path) == library / "gulls-1.mp3"
    assert Path(second.file_path).read_bytes() == b"gulls"
    assert source.exists()


def test_seed_and_reorder_channels(tmp_path):
    store = _make_store(tmp_path)
    sound_set = store.create_sound_set("Keep")

    seeded = store.seed_default_channels(sound_set.id)
    assert [c.name for c in seeded] == ["Music", "Ambient", "Effects", "Creatures", "Voice"]
    assert [c.order_index for c in seeded] == [0, 1, 2, 3, 4]
    assert store.seed_default_channels(sound_set.id) == seeded

    voice = seeded[-1]
    reordered = store.reorder_audio_channel(voice.id, 0)
    assert [c.name for c in reordered] == ["Voice", "Music", "Ambient", "Effects", "Creatures"]
    assert [c.order_index for c in reordered] == [0, 1, 2, 3, 4]

    renamed = store.update_audio_channel(voice.id, "Narration", "mic", 0.5)
    assert (renamed.name, renamed.volume) == ("Narration", 0.5)
    added = store.create_audio_channel(sound_set.id, "Extra")
    assert added.order_index == 5


def test_group_members_keep_insertion_order(tmp_path):
    store = _make_store(tmp_path)
    sound_set, _, _, element, _, _ = _make_scene(store)
    other = store.create_audio_element(sound_set.id, "/sounds/door.ogg", "door.ogg")
    group = store.create_element_group("Entrance", Scoped(sound_set.id))

    store.add_element_to_group(group.id, other.id)
    member = store.add_element_to_group(group.id, element.id)

    members = store.list_group_members(group.id)
    assert [m.audio_element_id for m in members] == [other.id, element.id]
    assert [m.order_index for m in members] == [0, 1]

    store.remove_element_from_group(member.id)
    assert [m.audio_element_id for m in store.list_group_members(group.id)] == [other.id]
    assert store.rename_element_group(group.id, "Doors").name == "Doors"
    assert [g.name for g in store.list_element_groups(Scoped(sound_set.id))] == ["Doors"]
    assert store.list_element_groups(GLOBAL) == []


def test_updates_and_missing_rows(tmp_path):
    store = _make_store(tmp_path)
    sound_set, mood, _, _, timeline, track = _make_scene(store)

    assert store.update_sound_set(sound_set.id, name="Inn").name == "Inn"
    assert store.update_sound_set(sound_set.id, description="Quiet").name == "Inn"
    assert store.update_mood(mood.id, description="Late").description == "Late"
    assert store.rename_timeline(timeline.id, "Night").name == "Night"
    assert store.rename_track(track.id, "Crowd").name == "Crowd"

    with pytest.raises(NotFoundError):
        store.create_mood(999, "Nowhere")
    with pytest.raises(NotFoundError):
        store.update_mood(999, name="x")
    with pytest.raises(NotFoundError):
        store.delete_sound_set(999)
    with pytest.raises(NotFoundError):
        store.create_track(999)


def test_list_sound_sets_newest_first(tmp_path):
    store = _make_store(tmp_path)
    first = store.create_sound_set("One")
    second = store.create_sound_set("Two")

    assert [s.id for s in store.list_sound_sets()] == [second.id, first.id]


def test_element_file_name_must_be_bare(tmp_path):
    store = _make_store(tmp_path)
    sound_set = store.create_sound_set("Drums")

    for bad in ("drums/x.wav", "drums\\x.wav", "..", ""):
        with pytest.raises(InvalidReferenceError):
            store.create_audio_element(sound_set.id, "/sounds/x.wav", bad)
        with pytest.raises(InvalidReferenceError):
            store.create_global_oneshot("/sounds/x.wav", bad)

    assert _count(store, "audio_elements") == 0
