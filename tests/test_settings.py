import json
import logging
from pathlib import Path

from scenestore.core.settings import (
    AppSettings,
    default_database_path,
    read_settings,
    resolve_library_dir,
    write_settings,
)


def _clear_env(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.delenv("SCENESTORE_FILE_STRATEGY", raising=False)
    monkeypatch.delenv("SCENESTORE_LIBRARY_PATH", raising=False)
    monkeypatch.delenv("SCENESTORE_SETTINGS", raising=False)
    monkeypatch.setenv("SCENESTORE_DATA_DIR", str(tmp_path / "data"))


def test_missing_file_yields_defaults(tmp_path, monkeypatch):
    _clear_env(monkeypatch, tmp_path)

    settings = read_settings(tmp_path / "nope.json")

    assert settings == AppSettings()
    assert not settings.copies_files
    assert resolve_library_dir(settings) == tmp_path / "data" / "library"
    assert default_database_path() == tmp_path / "data" / "scene_store.db"


def test_file_values_are_read_and_normalised(tmp_path, monkeypatch):
    _clear_env(monkeypatch, tmp_path)
    path = tmp_path / "settings.json"
    path.write_text(
        json.dumps({"audio_file_strategy": " Copy ", "library_path": str(tmp_path / "lib"), "theme": "dark"}),
        encoding="utf-8",
    )

    settings = read_settings(path)

    assert settings.audio_file_strategy == "copy"
    assert settings.copies_files
    assert resolve_library_dir(settings) == tmp_path / "lib"


def test_environment_overrides_file(tmp_path, monkeypatch):
    _clear_env(monkeypatch, tmp_path)
    path = tmp_path / "settings.json"
    write_settings(AppSettings(audio_file_strategy="reference", library_path="/from/file"), path)
    monkeypatch.setenv("SCENESTORE_FILE_STRATEGY", "copy")
    monkeypatch.setenv("SCENESTORE_LIBRARY_PATH", str(tmp_path / "env-lib"))
    monkeypatch.setenv("SCENESTORE_SETTINGS", str(path))

    settings = read_settings()

    assert settings.audio_file_strategy == "copy"
    assert settings.library_path == str(tmp_path / "env-lib")


def test_invalid_file_falls_back_with_warning(tmp_path, monkeypatch, caplog):
    _clear_env(monkeypatch, tmp_path)
    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    invalid = tmp_path / "invalid.json"
    invalid.write_text(json.dumps({"audio_file_strategy": "symlink"}), encoding="utf-8")

    with caplog.at_level(logging.WARNING, logger="scenestore.core.settings"):
        assert read_settings(broken) == AppSettings()
        assert read_settings(invalid) == AppSettings()

    assert len([r for r in caplog.records if r.levelno == logging.WARNING]) == 2


def test_write_settings_round_trips(tmp_path, monkeypatch):
    _clear_env(monkeypatch, tmp_path)
    path = tmp_path / "nested" / "settings.json"

    written = write_settings(AppSettings(audio_file_strategy="copy", library_path="/lib"), path)

    assert written == path
    assert read_settings(path) == AppSettings(audio_file_strategy="copy", library_path="/lib")
    assert not path.with_suffix(".json.tmp").exists()
