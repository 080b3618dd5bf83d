"""SQLite schema creation and migration for the local draft store."""

import sqlite3

SCHEMA_VERSION = 1

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS drafts (
    node_id TEXT PRIMARY KEY,
    database_id TEXT NOT NULL,
    note_id TEXT NOT NULL,
    content TEXT,
    parent_id TEXT,
    sort_order REAL,
    is_display INTEGER,
    is_delete INTEGER,
    properties TEXT,
    dirty INTEGER NOT NULL DEFAULT 1,
    seq INTEGER NOT NULL DEFAULT 0,
    acked_seq INTEGER NOT NULL DEFAULT 0,
    retry_count INTEGER NOT NULL DEFAULT 0,
    next_retry_at_ms INTEGER NOT NULL DEFAULT 0,
    updated_ms INTEGER NOT NULL DEFAULT 0,
    synced_ms INTEGER NOT NULL DEFAULT 0,
    last_error TEXT
);

CREATE INDEX IF NOT EXISTS idx_drafts_note ON drafts(database_id, note_id);
CREATE INDEX IF NOT EXISTS idx_drafts_dirty ON drafts(dirty, next_retry_at_ms);

CREATE TABLE IF NOT EXISTS note_snapshots (
    database_id TEXT NOT NULL,
    note_id TEXT NOT NULL,
    saved_ms INTEGER NOT NULL,
    nodes_json TEXT NOT NULL,
    PRIMARY KEY (database_id, note_id)
);

CREATE TABLE IF NOT EXISTS metadata (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""


def create_schema(conn: sqlite3.Connection) -> None:
    """Create all tables and indexes."""
    conn.executescript(_SCHEMA_SQL)
    conn.execute(
        "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)",
        ("schema_version", str(SCHEMA_VERSION)),
    )
    conn.commit()


def get_schema_version(conn: sqlite3.Connection) -> int | None:
    """Return the current schema version, or None if metadata table doesn't exist."""
    try:
        row = conn.execute(
            "SELECT value FROM metadata WHERE key = 'schema_version'"
        ).fetchone()
    except sqlite3.OperationalError:
        return None
    return int(row[0]) if row else None


def migrate_schema(conn: sqlite3.Connection) -> None:
    """Create or migrate the database schema to the latest version."""
    version = get_schema_version(conn)
    if version is None or version < SCHEMA_VERSION:
        # Tables are created IF NOT EXISTS; existing rows are kept.
        create_schema(conn)
    elif version > SCHEMA_VERSION:
        msg = f"Draft database schema v{version} is newer than supported v{SCHEMA_VERSION}"
        raise RuntimeError(msg)


def get_metadata(conn: sqlite3.Connection, key: str) -> str | None:
    row = conn.execute("SELECT value FROM metadata WHERE key = ?", (key,)).fetchone()
    return row[0] if row else None


def set_metadata(conn: sqlite3.Connection, key: str, value: str) -> None:
    conn.execute("INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)", (key, value))
    conn.commit()
