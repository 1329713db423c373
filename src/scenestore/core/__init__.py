"""Ambient services for the scene store: logging, settings and filesystem access."""

from scenestore.core.filesystem import FileSystem, LocalFileSystem
from scenestore.core.logging_config import get_log_directory, setup_logging
from scenestore.core.settings import (
    AppSettings,
    FileStrategy,
    default_database_path,
    read_settings,
    resolve_library_dir,
    write_settings,
)

__all__ = [
    "AppSettings",
    "FileStrategy",
    "FileSystem",
    "LocalFileSystem",
    "default_database_path",
    "get_log_directory",
    "read_settings",
    "resolve_library_dir",
    "setup_logging",
    "write_settings",
]
