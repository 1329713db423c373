"""
Utility helpers for SQLite-backed scene storage.

Connection helpers, pragmas, and the transaction context manager.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any, cast

__all__ = [
    "open_db",
    "set_pragmas",
    "transaction",
    "has_table",
    "column_names",
    "has_column",
    "column_notnull",
    "has_index",
]


# ---- Connections ------------------------------------------------------------


def open_db(
    path: str,
    *,
    mode: str = "rwc",
    foreign_keys: bool = True,
    pragmas: Mapping[str, object] | None = None,
) -> sqlite3.Connection:
    """
    Open a SQLite database with predictable defaults.

    mode: "ro" (read-only), "rw", "rwc" (create if needed). Default: "rwc".
    The connection runs in autocommit mode; writes that must be atomic go
    through :func:`transaction`.
    """
    if path == ":memory:":
        conn = sqlite3.connect(":memory:", isolation_level=None)
    else:
        uri = f"file:{path}?mode={mode}"
        conn = sqlite3.connect(uri, uri=True, isolation_level=None, timeout=30.0)
    conn.row_factory = sqlite3.Row
    opts: dict[str, object] = {"foreign_keys": foreign_keys, "busy_timeout_ms": 30_000}
    opts.update(pragmas or {})
    set_pragmas(conn, opts)
    return conn


def _to_int(value: object) -> int:
    """Best-effort conversion to ``int`` for pragmatic pragmas."""

    return int(cast(Any, value))


def set_pragmas(conn: sqlite3.Connection, opts: Mapping[str, object]) -> None:
    """Apply selected pragmas.

    Only keys present in ``opts`` are applied. Supported keys include
    ``foreign_keys``, ``journal_mode``, ``synchronous`` and ``busy_timeout_ms``.
    """

    norm = {str(key).lower(): value for key, value in opts.items()}
    for key, value in norm.items():
        if key == "foreign_keys":
            conn.execute(f"PRAGMA foreign_keys={'ON' if value else 'OFF'}")
        elif key == "journal_mode":
            conn.execute(f"PRAGMA journal_mode={value}")
        elif key == "synchronous":
            conn.execute(f"PRAGMA synchronous={value}")
        elif key == "busy_timeout_ms":
            conn.execute(f"PRAGMA busy_timeout={_to_int(value)}")


# ---- Transactions -----------------------------------------------------------


@contextmanager
def transaction(
    conn: sqlite3.Connection,
    *,
    begin: str = "BEGIN IMMEDIATE",
) -> Iterator[sqlite3.Connection]:
    """
    Transaction wrapper that commits on success and rolls back on error.
    Uses BEGIN IMMEDIATE by default to reduce write contention.
    """

    conn.execute(begin)
    try:
        yield conn
        conn.execute("COMMIT")
    except BaseException:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise


# ---- Catalog introspection --------------------------------------------------


def has_table(conn: sqlite3.Connection, table: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (table,)
    ).fetchone()
    return row is not None


def column_names(conn: sqlite3.Connection, table: str) -> list[str]:
    """Return the column names of ``table`` (empty when it does not exist)."""

    return [row[1] for row in conn.execute("SELECT * FROM pragma_table_info(?)", (table,))]


def has_column(conn: sqlite3.Connection, table: str, column: str) -> bool:
    return column in column_names(conn, table)


def column_notnull(conn: sqlite3.Connection, table: str, column: str) -> bool:
    """Return whether ``column`` carries a NOT NULL constraint."""

    for row in conn.execute("SELECT * FROM pragma_table_info(?)", (table,)):
        if row[1] == column:
            return bool(row[3])
    return False


def has_index(conn: sqlite3.Connection, index: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'index' AND name = ?", (index,)
    ).fetchone()
    return row is not None
