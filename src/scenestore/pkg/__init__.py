"""Portable sound set packages (zip archive with ``manifest.json``)."""

from __future__ import annotations

from scenestore.pkg.exporter import export_sound_set
from scenestore.pkg.folder import package_sound_set_folder, sanitize_package_name
from scenestore.pkg.importer import import_sound_set
from scenestore.pkg.models import FORMAT_VERSION, Manifest, parse_manifest

__all__ = [
    "FORMAT_VERSION",
    "Manifest",
    "parse_manifest",
    "export_sound_set",
    "import_sound_set",
    "package_sound_set_folder",
    "sanitize_package_name",
]
