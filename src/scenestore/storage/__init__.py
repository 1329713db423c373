"""Persistent storage for scenes: schema, repository and placement checks."""

from __future__ import annotations

from scenestore.storage.placement import intervals_overlap, overlaps
from scenestore.storage.scene_store import SceneStore, open_store

__all__ = ["SceneStore", "open_store", "intervals_overlap", "overlaps"]
