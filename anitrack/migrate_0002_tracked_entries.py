"""
Migration 2: seen_progress -> tracked_entries.

Renames the columns to show_id / episode_label / updated_at, adds the
nullable episode_ordinal column and back-fills it from the label. RFC 3339
timestamps written by older releases are converted to the UTC layout the
store uses.
Released step - do not edit, add a new migrate_NNNN file instead.
"""
from datetime import datetime, timezone
import logging
import re

from sqlalchemy import text

from anitrack.database import SQLITE_DATETIME_FORMAT
from anitrack.utils.episode_labels import parse_episode_ordinal

logger = logging.getLogger(__name__)

VERSION = 2
DESCRIPTION = "tracked_entries table with episode ordinal"

CREATE_TABLE_SQL = """
CREATE TABLE tracked_entries (
    show_id VARCHAR NOT NULL PRIMARY KEY,
    title TEXT NOT NULL,
    episode_label VARCHAR NOT NULL,
    episode_ordinal FLOAT,
    updated_at DATETIME NOT NULL
)
"""

_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def convert_legacy_timestamp(raw: str) -> str:
    """RFC 3339 (possibly nanosecond precision) -> naive UTC store text"""
    try:
        # fromisoformat only takes microseconds
        value = datetime.fromisoformat(_FRACTION_RE.sub(r"\1", raw.strip()).replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        logger.warning(f"Unparseable legacy timestamp {raw!r}, using migration time")
        value = datetime.now(timezone.utc)
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.strftime(SQLITE_DATETIME_FORMAT)


def upgrade(conn):
    conn.execute(text(CREATE_TABLE_SQL))

    rows = conn.execute(
        text("SELECT ani_id, title, last_episode, last_seen_at FROM seen_progress")
    ).fetchall()
    for ani_id, title, last_episode, last_seen_at in rows:
        conn.execute(
            text(
                "INSERT INTO tracked_entries (show_id, title, episode_label, episode_ordinal, updated_at) "
                "VALUES (:show_id, :title, :episode_label, :episode_ordinal, :updated_at)"
            ),
            {
                "show_id": ani_id,
                "title": title,
                "episode_label": last_episode.strip(),
                "episode_ordinal": parse_episode_ordinal(last_episode),
                "updated_at": convert_legacy_timestamp(last_seen_at),
            },
        )
    if rows:
        logger.info(f"✓ Carried over {len(rows)} entries from seen_progress")

    conn.execute(text("DROP TABLE seen_progress"))
    conn.execute(text("CREATE INDEX ix_tracked_entries_updated_at ON tracked_entries (updated_at)"))
