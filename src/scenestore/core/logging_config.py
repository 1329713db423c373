# SceneStore
# Copyright © 2025 SceneStore contributors
# Licensed under CC BY-NC-SA 4.0 International
# http://creativecommons.org/licenses/by-nc-sa/4.0/

"""Logging configuration with file rotation."""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

PACKAGE_LOGGER = "scenestore"


def setup_logging(
    app_name: str = "SceneStore",
    console_level: int = logging.INFO,
    log_dir: Path | None = None,
) -> Path:
    """
    Configure logging with file rotation.

    Creates two log files:
    - scenestore.log: DEBUG+ messages from the package (10 MB per file, 5 rotations)
    - errors.log: ERROR+ messages from any logger (5 MB per file, 3 rotations)

    Args:
        app_name: Application name for the default log directory
        console_level: Minimum level for console output (default: INFO)
        log_dir: Explicit log directory, overriding the platform default

    Returns:
        Path to the log directory
    """
    log_dir = Path(log_dir) if log_dir is not None else _get_log_directory(app_name)
    log_dir.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.INFO)
    # Calling twice must not stack handlers
    for handler in list(root_logger.handlers):
        if isinstance(handler, RotatingFileHandler):
            root_logger.removeHandler(handler)
            handler.close()

    detailed_formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    simple_formatter = logging.Formatter("%(levelname)-8s | %(name)s | %(message)s")

    store_logger = logging.getLogger(PACKAGE_LOGGER)
    store_logger.setLevel(logging.DEBUG)
    for handler in list(store_logger.handlers):
        store_logger.removeHandler(handler)
        handler.close()

    app_log_path = log_dir / "scenestore.log"
    app_handler = RotatingFileHandler(
        app_log_path,
        maxBytes=10 * 1024 * 1024,  # 10 MB
        backupCount=5,
        encoding="utf-8",
    )
    app_handler.setLevel(logging.DEBUG)
    app_handler.setFormatter(detailed_formatter)
    store_logger.addHandler(app_handler)

    error_log_path = log_dir / "errors.log"
    error_handler = RotatingFileHandler(
        error_log_path,
        maxBytes=5 * 1024 * 1024,  # 5 MB
        backupCount=3,
        encoding="utf-8",
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(detailed_formatter)
    root_logger.addHandler(error_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(simple_formatter)
    store_logger.addHandler(console_handler)

    log = logging.getLogger(__name__)
    log.info("%s logging initialized", app_name)
    log.info("Log directory: %s", log_dir)
    log.debug("Platform: %s, Python: %s", sys.platform, sys.version.split()[0])

    return log_dir


def _get_log_directory(app_name: str) -> Path:
    """
    Get platform-specific log directory.

    - Windows: %LOCALAPPDATA%\\AppName\\logs
    - macOS: ~/Library/Logs/AppName
    - Linux: ~/.local/share/AppName/logs
    """
    home = Path.home()

    if sys.platform == "win32":
        base = Path(os.environ.get("LOCALAPPDATA", home / "AppData" / "Local"))
        return base / app_name / "logs"

    elif sys.platform == "darwin":
        return home / "Library" / "Logs" / app_name

    else:
        xdg_data_home = os.environ.get("XDG_DATA_HOME", home / ".local" / "share")
        return Path(xdg_data_home) / app_name / "logs"


def get_log_directory(app_name: str = "SceneStore") -> Path:
    """Get the log directory path without setting up logging."""
    return _get_log_directory(app_name)
