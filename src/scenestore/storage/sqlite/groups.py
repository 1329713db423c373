"""Element group helpers for the scene database."""

from __future__ import annotations

import sqlite3

from scenestore.storage.records import ElementGroup, ElementGroupMember, Scope, Scoped, scope_to_column

__all__ = [
    "insert_group",
    "fetch_group",
    "list_groups",
    "rename_group",
    "delete_group",
    "insert_member",
    "fetch_member",
    "list_members",
    "delete_member",
]


def insert_group(conn: sqlite3.Connection, name: str, scope: Scope) -> int:
    cur = conn.execute(
        "INSERT INTO element_groups (name, sound_set_id) VALUES (?, ?)",
        (name, scope_to_column(scope)),
    )
    return int(cur.lastrowid)


def fetch_group(conn: sqlite3.Connection, group_id: int) -> ElementGroup | None:
    row = conn.execute(
        "SELECT id, name, sound_set_id, created_at FROM element_groups WHERE id = ?",
        (group_id,),
    ).fetchone()
    return ElementGroup.from_row(row) if row is not None else None


def list_groups(conn: sqlite3.Connection, scope: Scope) -> list[ElementGroup]:
    if isinstance(scope, Scoped):
        rows = conn.execute(
            """
            SELECT id, name, sound_set_id, created_at
              FROM element_groups
             WHERE sound_set_id = ?
             ORDER BY created_at DESC, id DESC
            """,
            (scope.sound_set_id,),
        ).fetchall()
    else:
        rows = conn.execute(
            """
            SELECT id, name, sound_set_id, created_at
              FROM element_groups
             WHERE sound_set_id IS NULL
             ORDER BY created_at DESC, id DESC
            """
        ).fetchall()
    return [ElementGroup.from_row(row) for row in rows]


def rename_group(conn: sqlite3.Connection, group_id: int, name: str) -> int:
    return conn.execute(
        "UPDATE element_groups SET name = ? WHERE id = ?", (name, group_id)
    ).rowcount


def delete_group(conn: sqlite3.Connection, group_id: int) -> int:
    return conn.execute("DELETE FROM element_groups WHERE id = ?", (group_id,)).rowcount


# ---- Members ----------------------------------------------------------------


def insert_member(conn: sqlite3.Connection, group_id: int, audio_element_id: int) -> int:
    """Append ``audio_element_id`` to the end of the group."""

    row = conn.execute(
        "SELECT COALESCE(MAX(order_index), -1) + 1 FROM element_group_members WHERE group_id = ?",
        (group_id,),
    ).fetchone()
    cur = conn.execute(
        """
        INSERT INTO element_group_members (group_id, audio_element_id, order_index)
        VALUES (?, ?, ?)
        """,
        (group_id, audio_element_id, int(row[0])),
    )
    return int(cur.lastrowid)


def fetch_member(conn: sqlite3.Connection, member_id: int) -> ElementGroupMember | None:
    row = conn.execute(
        "SELECT id, group_id, audio_element_id, order_index FROM element_group_members WHERE id = ?",
        (member_id,),
    ).fetchone()
    return ElementGroupMember.from_row(row) if row is not None else None


def list_members(conn: sqlite3.Connection, group_id: int) -> list[ElementGroupMember]:
    rows = conn.execute(
        """
        SELECT id, group_id, audio_element_id, order_index
          FROM element_group_members
         WHERE group_id = ?
         ORDER BY order_index, id
        """,
        (group_id,),
    ).fetchall()
    return [ElementGroupMember.from_row(row) for row in rows]


def delete_member(conn: sqlite3.Connection, member_id: int) -> int:
    return conn.execute(
        "DELETE FROM element_group_members WHERE id = ?", (member_id,)
    ).rowcount
