"""Application settings consumed by the scene store.

Settings live in a small JSON file under the user's application-data
directory.  They are read fresh on each call that needs them; nothing here
caches across calls.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from scenestore.errors import StorageIOError

log = logging.getLogger(__name__)

__all__ = [
    "AppSettings",
    "FileStrategy",
    "app_data_dir",
    "default_settings_path",
    "default_database_path",
    "read_settings",
    "write_settings",
    "resolve_library_dir",
]

APP_NAME = "SceneStore"
SETTINGS_ENV = "SCENESTORE_SETTINGS"
FILE_STRATEGY_ENV = "SCENESTORE_FILE_STRATEGY"
LIBRARY_PATH_ENV = "SCENESTORE_LIBRARY_PATH"
DATA_DIR_ENV = "SCENESTORE_DATA_DIR"

FileStrategy = Literal["reference", "copy"]


class AppSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    audio_file_strategy: FileStrategy = "reference"
    library_path: str = ""

    @field_validator("audio_file_strategy", mode="before")
    def _normalise_strategy(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @property
    def copies_files(self) -> bool:
        return self.audio_file_strategy == "copy"


def app_data_dir(app_name: str = APP_NAME) -> Path:
    """Return the per-user data directory (``SCENESTORE_DATA_DIR`` wins)."""

    override = os.environ.get(DATA_DIR_ENV)
    if override:
        return Path(override).expanduser()

    home = Path.home()
    if sys.platform.startswith("darwin"):
        return home / "Library" / "Application Support" / app_name
    if os.name == "nt":
        return Path(os.environ.get("APPDATA", home / "AppData" / "Roaming")) / app_name
    return Path(os.environ.get("XDG_DATA_HOME", home / ".local" / "share")) / app_name


def default_settings_path() -> Path:
    override = os.environ.get(SETTINGS_ENV)
    if override:
        return Path(override).expanduser()
    return app_data_dir() / "settings.json"


def default_database_path() -> Path:
    return app_data_dir() / "scene_store.db"


def _safe_read_json(path: Path) -> dict:
    if not path.exists():
        return {}
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        log.warning("Ignoring unreadable settings file %s: %s", path, exc)
        return {}
    return payload if isinstance(payload, dict) else {}


def read_settings(path: str | os.PathLike[str] | None = None) -> AppSettings:
    """Load settings from ``path`` (or the default location) plus env overrides.

    A missing or invalid file yields defaults rather than an error.
    """

    settings_path = Path(path) if path is not None else default_settings_path()
    payload = _safe_read_json(settings_path)

    strategy = os.environ.get(FILE_STRATEGY_ENV)
    if strategy:
        payload["audio_file_strategy"] = strategy
    library = os.environ.get(LIBRARY_PATH_ENV)
    if library:
        payload["library_path"] = library

    try:
        return AppSettings.model_validate(payload)
    except ValidationError as exc:
        log.warning("Invalid settings in %s, using defaults: %s", settings_path, exc)
        return AppSettings()


def write_settings(settings: AppSettings, path: str | os.PathLike[str] | None = None) -> Path:
    """Persist ``settings`` atomically and return the file path."""

    settings_path = Path(path) if path is not None else default_settings_path()
    tmp = settings_path.with_suffix(settings_path.suffix + ".tmp")
    try:
        settings_path.parent.mkdir(parents=True, exist_ok=True)
        tmp.write_text(json.dumps(settings.model_dump(), indent=2, sort_keys=True), encoding="utf-8")
        os.replace(tmp, settings_path)
    except OSError as exc:
        raise StorageIOError(f"Failed to write settings to {settings_path}: {exc}") from exc
    return settings_path


def resolve_library_dir(settings: AppSettings) -> Path:
    """Return the managed audio library directory for ``settings``."""

    if settings.library_path.strip():
        return Path(settings.library_path.strip()).expanduser()
    return app_data_dir() / "library"
