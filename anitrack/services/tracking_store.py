"""
Tracking Store - durable per-show watch progress

One row per show (show_id primary key), upserted last-write-wins. The schema
is evolved by the migrate_NNNN_*.py step modules next to this package, applied
one version at a time.
"""
from datetime import timedelta
import importlib
import logging
from pathlib import Path
from types import ModuleType
from typing import List, Optional

from sqlalchemy import func, insert, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from anitrack.database import create_store_engine, make_session_factory, utcnow
from anitrack.errors import MigrationError, StoreError
from anitrack.models.schema_version import SchemaVersion
from anitrack.models.tracked_entry import TrackedEntry
from anitrack.utils.episode_labels import parse_episode_ordinal

logger = logging.getLogger(__name__)

PACKAGE_DIR = Path(__file__).resolve().parent.parent
PACKAGE_NAME = "anitrack"


def discover_migrations() -> List[ModuleType]:
    """Imports every migrate_*.py step, ordered by VERSION"""
    steps = []
    for file_path in sorted(PACKAGE_DIR.glob("migrate_*.py")):
        module = importlib.import_module(f"{PACKAGE_NAME}.{file_path.stem}")
        if not hasattr(module, "VERSION") or not hasattr(module, "upgrade"):
            raise MigrationError(f"Migration {file_path.name} lacks VERSION/upgrade()")
        steps.append(module)

    steps.sort(key=lambda step: step.VERSION)
    versions = [step.VERSION for step in steps]
    if versions != list(range(1, len(steps) + 1)):
        raise MigrationError(f"Migration versions must be contiguous from 1, found {versions}")
    return steps


def latest_schema_version() -> int:
    return len(discover_migrations())


def _stored_version(conn):
    return conn.execute(select(func.max(SchemaVersion.version))).scalar()


class TrackingStore:
    """Per-show progress table plus its schema version"""

    def __init__(self, url: Optional[str] = None, engine: Optional[Engine] = None):
        try:
            self.engine = engine or create_store_engine(url)
            self.SessionLocal = make_session_factory(self.engine)
            self.schema_version = self._bootstrap_version()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to open tracking store: {e}") from e
        logger.debug(f"Tracking store opened at schema version {self.schema_version}")

    def _bootstrap_version(self) -> int:
        with self.engine.begin() as conn:
            SchemaVersion.__table__.create(conn, checkfirst=True)
            version = _stored_version(conn)
            if version is None:
                conn.execute(insert(SchemaVersion).values(version=0))
                version = 0
        return int(version)

    def close(self):
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Migration
    # ------------------------------------------------------------------

    def migrate(self, target: Optional[int] = None) -> int:
        """
        Applies the steps between the stored version and target (default: latest).

        Each step and its version bump share one transaction, so a crash
        leaves the version at the last fully applied step.
        """
        steps = discover_migrations()
        latest = len(steps)
        target = latest if target is None else target

        if target > latest:
            raise MigrationError(f"Unknown schema version {target} (latest is {latest})")
        if self.schema_version > latest:
            raise MigrationError(
                f"Database schema version {self.schema_version} is newer than this release ({latest})"
            )

        for step in steps:
            if step.VERSION <= self.schema_version or step.VERSION > target:
                continue
            try:
                with self.engine.begin() as conn:
                    stored = _stored_version(conn)
                    if stored >= step.VERSION:
                        # Another process got here first
                        self.schema_version = stored
                        continue
                    step.upgrade(conn)
                    conn.execute(
                        update(SchemaVersion)
                        .where(SchemaVersion.version == stored)
                        .values(version=step.VERSION)
                    )
            except SQLAlchemyError as e:
                logger.error(f"✗ Migration {step.VERSION} failed: {e}")
                raise MigrationError(f"Migration {step.VERSION} ({step.DESCRIPTION}) failed: {e}") from e

            self.schema_version = step.VERSION
            logger.info(f"✓ Applied migration {step.VERSION}: {step.DESCRIPTION}")

        return self.schema_version

    # ------------------------------------------------------------------
    # Progress rows
    # ------------------------------------------------------------------

    def upsert(self, entry: TrackedEntry) -> TrackedEntry:
        """
        Inserts or replaces the row for entry.show_id.

        updated_at is always assigned here, strictly after every stored
        timestamp; the caller's value is ignored.
        """
        label = (entry.episode_label or "").strip()
        values = {
            "show_id": entry.show_id,
            "title": entry.title,
            "episode_label": label,
            "episode_ordinal": parse_episode_ordinal(label),
        }
        try:
            with self.SessionLocal() as db, db.begin():
                now = utcnow()
                newest = db.query(func.max(TrackedEntry.updated_at)).scalar()
                if newest is not None and now <= newest:
                    now = newest + timedelta(microseconds=1)
                values["updated_at"] = now

                if self.engine.dialect.name == "sqlite":
                    stmt = sqlite_insert(TrackedEntry.__table__).values(**values)
                    stmt = stmt.on_conflict_do_update(
                        index_elements=[TrackedEntry.__table__.c.show_id],
                        set_={
                            "title": stmt.excluded.title,
                            "episode_label": stmt.excluded.episode_label,
                            "episode_ordinal": stmt.excluded.episode_ordinal,
                            "updated_at": stmt.excluded.updated_at,
                        },
                    )
                    db.execute(stmt)
                else:
                    db.merge(TrackedEntry(**values))
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to save progress for {entry.show_id}: {e}") from e

        logger.info(f"✓ Saved progress: {entry.title} | episode {label}")
        return self.get(entry.show_id)

    def get(self, show_id: str) -> Optional[TrackedEntry]:
        try:
            with self.SessionLocal() as db:
                return db.get(TrackedEntry, show_id)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read progress for {show_id}: {e}") from e

    def latest(self) -> Optional[TrackedEntry]:
        try:
            with self.SessionLocal() as db:
                return (
                    db.query(TrackedEntry)
                    .order_by(TrackedEntry.updated_at.desc(), TrackedEntry.show_id)
                    .first()
                )
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read latest progress: {e}") from e

    def list_by_recency(self) -> List[TrackedEntry]:
        try:
            with self.SessionLocal() as db:
                return (
                    db.query(TrackedEntry)
                    .order_by(TrackedEntry.updated_at.desc(), TrackedEntry.show_id)
                    .all()
                )
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to list progress: {e}") from e

    def delete(self, show_id: str) -> bool:
        """Removes the row; True if one existed"""
        try:
            with self.SessionLocal() as db, db.begin():
                deleted = db.query(TrackedEntry).filter_by(show_id=show_id).delete()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to delete {show_id}: {e}") from e

        if deleted:
            logger.info(f"✓ Deleted tracked entry {show_id}")
        return deleted > 0
