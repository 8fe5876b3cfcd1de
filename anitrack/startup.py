from dataclasses import dataclass
from datetime import timedelta
import logging
import os
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from anitrack.errors import StoreError
from anitrack.models.config import Config
from anitrack.services.change_detector import TieBreak
from anitrack.services.tracking_store import TrackingStore


logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# key, value, module, data_type, description
DEFAULT_CONFIGS = [
    ("log_level", "WARNING", "core", "string", "Console log level (DEBUG, INFO, WARNING, ERROR)"),

    ("journal_window_slack", "30", "detection", "integer",
     "Seconds added around a session when matching journal lines"),
    ("journal_tie_break", TieBreak.MOST_RECENT.value, "detection", "string",
     "Journal fallback policy: most_recent or unique"),

    ("metadata_timeout", "6", "metadata", "float", "Seconds per AllAnime request"),
    ("metadata_attempts", "3", "metadata", "integer", "Attempts per AllAnime request"),
    ("metadata_backoff", "1", "metadata", "float", "Seconds between AllAnime attempts"),
    ("metadata_wait_timeout", "3", "metadata", "float",
     "Seconds to wait for the episode list before planning without it"),
    ("translation_mode", "", "metadata", "string", "sub or dub for show lookups; empty uses ANI_CLI_MODE"),
]


@dataclass
class Settings:
    log_level: str = "WARNING"
    journal_window_slack: timedelta = timedelta(seconds=30)
    journal_tie_break: TieBreak = TieBreak.MOST_RECENT
    metadata_timeout: float = 6.0
    metadata_attempts: int = 3
    metadata_backoff: float = 1.0
    metadata_wait_timeout: float = 3.0
    translation_mode: Optional[str] = None


def init_config(store: TrackingStore):
    """Initialize default configs"""
    try:
        with store.SessionLocal() as db, db.begin():
            for key, value, module, data_type, description in DEFAULT_CONFIGS:
                existing = db.query(Config).filter_by(key=key).first()
                if not existing:
                    db.add(Config(
                        key=key,
                        value=value,
                        module=module,
                        data_type=data_type,
                        description=description,
                    ))
                    logger.info(f"✓ Added config: {key}")
    except SQLAlchemyError as e:
        raise StoreError(f"Failed to seed config: {e}") from e


def _config_values(store: TrackingStore) -> dict:
    try:
        with store.SessionLocal() as db:
            rows = db.query(Config).all()
    except SQLAlchemyError as e:
        raise StoreError(f"Failed to read config: {e}") from e

    values = {}
    for row in rows:
        try:
            values[row.key] = row.typed_value
        except ValueError as e:
            logger.warning(f"Ignoring config {row.key}={row.value!r}: {e}")
    return values


def load_settings(store: TrackingStore) -> Settings:
    """Settings from the config table; ANITRACK_LOG_LEVEL overrides log_level"""
    values = _config_values(store)
    settings = Settings()

    log_level = (os.getenv("ANITRACK_LOG_LEVEL") or values.get("log_level") or settings.log_level).upper()
    if log_level in LOG_LEVELS:
        settings.log_level = log_level
    else:
        logger.warning(f"Unknown log level {log_level!r}, keeping {settings.log_level}")

    slack = values.get("journal_window_slack")
    if isinstance(slack, int) and slack >= 0:
        settings.journal_window_slack = timedelta(seconds=slack)

    try:
        settings.journal_tie_break = TieBreak(values.get("journal_tie_break") or settings.journal_tie_break)
    except ValueError:
        logger.warning(f"Unknown journal_tie_break {values.get('journal_tie_break')!r}, using most_recent")

    for key in ("metadata_timeout", "metadata_backoff", "metadata_wait_timeout"):
        value = values.get(key)
        if isinstance(value, float) and value >= 0:
            setattr(settings, key, value)

    attempts = values.get("metadata_attempts")
    if isinstance(attempts, int) and attempts >= 1:
        settings.metadata_attempts = attempts

    mode = (values.get("translation_mode") or "").strip()
    settings.translation_mode = mode or None
    return settings


def open_store(url: Optional[str] = None) -> TrackingStore:
    """Opens the tracking store, migrates it to the latest schema and seeds config"""
    store = TrackingStore(url)
    try:
        version = store.migrate()
        init_config(store)
    except StoreError:
        store.close()
        raise
    logger.debug(f"✓ Tracking store ready (schema version {version})")
    return store
