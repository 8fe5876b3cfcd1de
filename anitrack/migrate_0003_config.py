"""
Migration 3: config table for runtime tunables.
Released step - do not edit, add a new migrate_NNNN file instead.
"""
from sqlalchemy import text

VERSION = 3
DESCRIPTION = "config table"

CREATE_TABLE_SQL = """
CREATE TABLE config (
    id INTEGER NOT NULL PRIMARY KEY,
    "key" VARCHAR NOT NULL UNIQUE,
    value TEXT,
    module VARCHAR,
    data_type VARCHAR,
    updated_at DATETIME,
    description VARCHAR
)
"""


def upgrade(conn):
    conn.execute(text(CREATE_TABLE_SQL))
