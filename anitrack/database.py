from datetime import datetime, timezone
import logging
import os
from pathlib import Path
from typing import Optional

from sqlalchemy import DateTime, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.types import TypeDecorator

from anitrack.utils.paths import database_file_path


logger = logging.getLogger(__name__)


# Short lock wait so a second anitrack process blocks briefly instead of failing
BUSY_TIMEOUT_MS = 3000

# Same text layout SQLAlchemy's SQLite DateTime uses; migrations write it by hand
SQLITE_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S.%f"


# Central Base definition
Base = declarative_base()


class UTCDateTime(TypeDecorator):
    """Stores naive UTC, hands back timezone-aware UTC datetimes"""
    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_database_url() -> str:
    """ANITRACK_DATABASE_URL wins, else the per-user SQLite file"""
    url = os.getenv("ANITRACK_DATABASE_URL")
    if url:
        return url
    return f"sqlite:///{database_file_path()}"


def _ensure_sqlite_parent(url: str):
    parsed = make_url(url)
    database = parsed.database
    if not database or database == ":memory:":
        return
    parent = Path(database).expanduser().parent
    if not parent.exists():
        parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"📂 Created database directory: {parent}")


def create_store_engine(url: Optional[str] = None, busy_timeout_ms: int = BUSY_TIMEOUT_MS) -> Engine:
    """
    Creates the engine for the tracking store.

    SQLite connections get a busy timeout and WAL journaling. pysqlite's own
    transaction handling is switched off and BEGIN is emitted explicitly, so
    DDL inside a migration step commits or rolls back together with the
    schema version bump.
    """
    url = url or get_database_url()

    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True, pool_recycle=3600)

    _ensure_sqlite_parent(url)

    if make_url(url).database in (None, "", ":memory:"):
        # In-memory SQLite for tests
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(url, connect_args={"check_same_thread": False})

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)}")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


def make_session_factory(engine: Engine):
    return sessionmaker(autoflush=False, expire_on_commit=False, bind=engine)
