"""SQLite helpers for the scene database, one module per entity family."""

from __future__ import annotations

__all__: list[str] = []
