"""Database migrations with schema_version tracking."""

from __future__ import annotations

import sqlite3

MIGRATIONS: list[str] = [
    # Version 1: asset registry
    """
    CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER NOT NULL,
        applied_at TEXT DEFAULT (datetime('now'))
    );

    CREATE TABLE IF NOT EXISTS assets (
        id TEXT PRIMARY KEY,
        filename TEXT NOT NULL,
        mime_type TEXT NOT NULL DEFAULT '',
        size_bytes INTEGER NOT NULL DEFAULT 0,
        category TEXT NOT NULL DEFAULT 'video',
        classification TEXT NOT NULL DEFAULT 'unknown',
        forensic_stage TEXT NOT NULL DEFAULT 'none',
        op_state TEXT NOT NULL DEFAULT 'not_started',
        op_handle TEXT,
        op_message TEXT,
        analysis_content TEXT,
        tech_json TEXT,
        sync_offset_frames INTEGER NOT NULL DEFAULT 0,
        duration_ms INTEGER,
        relative_path TEXT,
        indexed_at TEXT DEFAULT (datetime('now')),
        updated_at TEXT DEFAULT (datetime('now'))
    );
    CREATE INDEX IF NOT EXISTS idx_assets_op_state ON assets(op_state);
    CREATE INDEX IF NOT EXISTS idx_assets_classification ON assets(category, classification);
    """,
]


def get_schema_version(conn: sqlite3.Connection) -> int:
    """Get the current schema version, or 0 if no schema exists."""
    try:
        row = conn.execute(
            "SELECT MAX(version) FROM schema_version"
        ).fetchone()
        return row[0] or 0 if row else 0
    except sqlite3.OperationalError:
        return 0


def migrate(conn: sqlite3.Connection) -> int:
    """Run pending migrations. Returns the final schema version."""
    current = get_schema_version(conn)

    for i, sql in enumerate(MIGRATIONS, start=1):
        if i <= current:
            continue
        conn.executescript(sql)
        conn.execute("INSERT INTO schema_version (version) VALUES (?)", (i,))
        conn.commit()

    return len(MIGRATIONS)
