import pytest

from anitrack.services.tracking_store import TrackingStore


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keeps every test away from the real ani-cli history and data dirs"""
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setenv("XDG_STATE_HOME", str(tmp_path / "state"))
    for name in (
        "ANI_CLI_HIST_DIR",
        "ANITRACK_DATABASE_URL",
        "ANI_TRACK_ANI_CLI_BIN",
        "ANI_CLI_MODE",
        "ANITRACK_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "anitrack.db"


@pytest.fixture
def db_url(db_path):
    return f"sqlite:///{db_path}"


@pytest.fixture
def store(db_url):
    store = TrackingStore(db_url)
    store.migrate()
    yield store
    store.close()
