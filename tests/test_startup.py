from datetime import timedelta

from anitrack.models.config import Config
from anitrack.services.change_detector import TieBreak
from anitrack.startup import DEFAULT_CONFIGS, init_config, load_settings, open_store


def set_config(store, key, value):
    with store.SessionLocal() as db, db.begin():
        db.query(Config).filter_by(key=key).update({"value": value})


def test_open_store_seeds_defaults(db_url):
    store = open_store(db_url)
    try:
        with store.SessionLocal() as db:
            keys = {row.key for row in db.query(Config).all()}
        assert keys == {key for key, *_ in DEFAULT_CONFIGS}
    finally:
        store.close()


def test_init_config_keeps_user_values(store):
    init_config(store)
    set_config(store, "metadata_attempts", "5")
    init_config(store)
    assert load_settings(store).metadata_attempts == 5


def test_default_settings(store):
    init_config(store)
    settings = load_settings(store)
    assert settings.log_level == "WARNING"
    assert settings.journal_window_slack == timedelta(seconds=30)
    assert settings.journal_tie_break == TieBreak.MOST_RECENT
    assert settings.translation_mode is None


def test_settings_from_rows_and_env(store, monkeypatch):
    init_config(store)
    set_config(store, "journal_tie_break", "unique")
    set_config(store, "journal_window_slack", "120")
    set_config(store, "translation_mode", "dub")
    monkeypatch.setenv("ANITRACK_LOG_LEVEL", "debug")

    settings = load_settings(store)
    assert settings.journal_tie_break == TieBreak.UNIQUE
    assert settings.journal_window_slack == timedelta(minutes=2)
    assert settings.translation_mode == "dub"
    assert settings.log_level == "DEBUG"


def test_bad_values_keep_defaults(store):
    init_config(store)
    set_config(store, "metadata_timeout", "soon")
    set_config(store, "journal_tie_break", "coin_flip")
    set_config(store, "log_level", "LOUD")

    settings = load_settings(store)
    assert settings.metadata_timeout == 6.0
    assert settings.journal_tie_break == TieBreak.MOST_RECENT
    assert settings.log_level == "WARNING"
