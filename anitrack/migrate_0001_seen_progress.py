"""
Migration 1: seen_progress table.

This is the layout databases had before schema versioning existed, so those
databases already contain it and the statements are no-ops for them.
Released step - do not edit, add a new migrate_NNNN file instead.
"""
from sqlalchemy import text

VERSION = 1
DESCRIPTION = "seen_progress table"

STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS seen_progress (
        ani_id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        last_episode TEXT NOT NULL,
        last_seen_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_seen_progress_seen_at ON seen_progress(last_seen_at DESC)",
]


def upgrade(conn):
    for statement in STATEMENTS:
        conn.execute(text(statement))
