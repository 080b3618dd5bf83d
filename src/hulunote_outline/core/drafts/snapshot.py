"""Last-known node list per note, for opening a note while the backend is unreachable."""

import dataclasses
import json
import sqlite3

from hulunote_outline.models.node import Node


def save_note_snapshot(
    conn: sqlite3.Connection,
    *,
    database_id: str,
    note_id: str,
    nodes: list[Node],
    saved_ms: int,
) -> None:
    if not database_id.strip() or not note_id.strip():
        return
    conn.execute(
        """INSERT OR REPLACE INTO note_snapshots (database_id, note_id, saved_ms, nodes_json)
           VALUES (?, ?, ?, ?)""",
        (database_id, note_id, saved_ms, json.dumps([dataclasses.asdict(n) for n in nodes])),
    )
    conn.commit()


def load_note_snapshot(
    conn: sqlite3.Connection, *, database_id: str, note_id: str
) -> list[Node] | None:
    row = conn.execute(
        "SELECT nodes_json FROM note_snapshots WHERE database_id = ? AND note_id = ?",
        (database_id, note_id),
    ).fetchone()
    if row is None:
        return None
    return [Node(**item) for item in json.loads(row[0])]

