"""Durable local overlay of unsynced node edits.

Every ``write`` commits to SQLite before returning, so an edit that reached the store
survives a crash or reload. A draft stays ``dirty`` until the backend acknowledges the
request carrying its latest sequence number; acknowledged drafts are kept, not deleted.
"""

import dataclasses
import sqlite3
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

from loguru import logger

from hulunote_outline.core.database.schema import migrate_schema
from hulunote_outline.models.node import DRAFT_FIELDS, Draft, Node, RouteContext
from hulunote_outline.util import now_ms

_COLUMNS = (
    "node_id, database_id, note_id, content, parent_id, sort_order, is_display, is_delete, "
    "properties, dirty, seq, acked_seq, retry_count, next_retry_at_ms, updated_ms, synced_ms, "
    "last_error"
)

# Draft field -> column name.
_FIELD_COLUMNS = {name: name for name in DRAFT_FIELDS} | {"order": "sort_order"}


def _to_column(name: str, value: Any) -> Any:
    if name in ("is_display", "is_delete") and value is not None:
        return int(bool(value))
    if name == "order" and value is not None:
        return float(value)
    return value


def _row_to_draft(row: tuple) -> Draft:
    return Draft(
        node_id=row[0], database_id=row[1], note_id=row[2], content=row[3],
        parent_id=row[4], order=row[5],
        is_display=None if row[6] is None else bool(row[6]),
        is_delete=None if row[7] is None else bool(row[7]),
        properties=row[8], dirty=bool(row[9]), seq=row[10], acked_seq=row[11],
        retry_count=row[12], next_retry_at_ms=row[13], updated_ms=row[14],
        synced_ms=row[15], last_error=row[16],
    )


class DraftStore:
    """SQLite-backed draft records keyed by node id."""

    def __init__(self, conn: sqlite3.Connection, *, clock: Callable[[], int] = now_ms) -> None:
        self.conn = conn
        self._clock = clock
        migrate_schema(conn)

    @classmethod
    def open(cls, path: str | Path, **kwargs: Any) -> "DraftStore":
        """Open (and create if needed) a draft database file."""
        db_path = Path(path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return cls(sqlite3.connect(str(db_path)), **kwargs)

    def close(self) -> None:
        self.conn.close()

    def read(self, node_id: str) -> Draft | None:
        row = self.conn.execute(
            f"SELECT {_COLUMNS} FROM drafts WHERE node_id = ?", (node_id,)
        ).fetchone()
        return _row_to_draft(row) if row else None

    def write(self, node_id: str, fields: dict[str, Any], *, route: RouteContext) -> Draft:
        """Merge ``fields`` into the node's draft, mark it dirty, and persist before returning."""
        unknown = set(fields) - set(DRAFT_FIELDS)
        if unknown:
            msg = f"Unknown draft fields: {sorted(unknown)!r}"
            raise ValueError(msg)
        if not route.is_set:
            logger.warning("Draft for {} written without a route; it cannot sync yet", node_id)

        now = self._clock()
        try:
            existing = self.read(node_id)
            if existing is None:
                self.conn.execute(
                    "INSERT INTO drafts (node_id, database_id, note_id, dirty, seq, updated_ms) "
                    "VALUES (?, ?, ?, 1, 0, ?)",
                    (node_id, route.database_id, route.note_id, now),
                )
            assignments = [f"{_FIELD_COLUMNS[name]} = ?" for name in fields]
            assignments += ["dirty = 1", "seq = seq + 1", "updated_ms = ?"]
            values = [_to_column(name, value) for name, value in fields.items()]
            self.conn.execute(
                f"UPDATE drafts SET {', '.join(assignments)} WHERE node_id = ?",
                (*values, now, node_id),
            )
            row = self.conn.execute(
                f"SELECT {_COLUMNS} FROM drafts WHERE node_id = ?", (node_id,)
            ).fetchone()
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise

        return _row_to_draft(row)

    def ack(self, node_id: str, backend_ts: int, *, seq: int) -> bool:
        """Record a backend acknowledgement for the request that carried ``seq``.

        Clears ``dirty`` only when no local edit happened after that request was built.
        Returns True if the draft is now clean.
        """
        draft = self.read(node_id)
        if draft is None:
            return True
        clean = seq >= draft.seq
        self.conn.execute(
            "UPDATE drafts SET dirty = ?, acked_seq = MAX(acked_seq, ?), "
            "synced_ms = MAX(synced_ms, ?), retry_count = 0, next_retry_at_ms = 0, "
            "last_error = NULL WHERE node_id = ?",
            (0 if clean else 1, seq, backend_ts, node_id),
        )
        self.conn.commit()
        return clean

    def mark_failed(self, node_id: str, *, delay_ms: int, error: str) -> Draft | None:
        """Bump the retry schedule after a failed request. The draft itself is kept."""
        if self.read(node_id) is None:
            return None
        self.conn.execute(
            "UPDATE drafts SET retry_count = retry_count + 1, next_retry_at_ms = ?, "
            "last_error = ? WHERE node_id = ?",
            (self._clock() + delay_ms, error, node_id),
        )
        self.conn.commit()
        return self.read(node_id)

    def all_dirty(self, *, note_id: str | None = None) -> list[str]:
        query = "SELECT node_id FROM drafts WHERE dirty = 1"
        params: list[str] = []
        if note_id is not None:
            query += " AND note_id = ?"
            params.append(note_id)
        query += " ORDER BY updated_ms, node_id"
        return [r[0] for r in self.conn.execute(query, params).fetchall()]

    def rename(self, old_id: str, new_id: str) -> None:
        """Move a draft from a temporary id to the backend id, and rewrite parent references."""
        try:
            self.conn.execute("DELETE FROM drafts WHERE node_id = ?", (new_id,))
            self.conn.execute("UPDATE drafts SET node_id = ? WHERE node_id = ?", (new_id, old_id))
            self.conn.execute(
                "UPDATE drafts SET parent_id = ? WHERE parent_id = ?", (new_id, old_id)
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise

    def overlay(self, nodes: Iterable[Node], *, note_id: str) -> list[Node]:
        """Apply dirty drafts on top of backend nodes; drafts win for the fields they cover.

        Dirty drafts for nodes the backend does not know yet (local creations) are
        materialized when they carry a parent and an order.
        """
        rows = self.conn.execute(
            f"SELECT {_COLUMNS} FROM drafts WHERE dirty = 1 AND note_id = ?", (note_id,)
        ).fetchall()
        drafts = {d.node_id: d for d in map(_row_to_draft, rows)}

        out: list[Node] = []
        for node in nodes:
            draft = drafts.pop(node.id, None)
            out.append(dataclasses.replace(node, **draft.fields()) if draft else node)

        for draft in drafts.values():
            if draft.parent_id is None or draft.order is None:
                continue
            out.append(
                Node(
                    id=draft.node_id,
                    note_id=note_id,
                    parent_id=draft.parent_id,
                    order=draft.order,
                    content=draft.content or "",
                    is_display=True if draft.is_display is None else draft.is_display,
                    is_delete=bool(draft.is_delete),
                    updated_at=draft.updated_ms,
                    properties=draft.properties,
                )
            )
        return out
