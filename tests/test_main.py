import pytest

from anitrack import main as cli
from anitrack.models.tracked_entry import TrackedEntry


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    monkeypatch.setattr(cli, "setup_logging", lambda *args, **kwargs: None)
    monkeypatch.setattr(cli, "change_log_level_runtime", lambda level: True)


def test_default_command_is_list():
    assert cli.parse_args([]).command == "list"
    assert cli.parse_args(["next", "--show", "x"]).show_id == "x"


def test_list_empty(db_url, capsys):
    assert cli.main(["--database", db_url]) == 0
    assert "No tracked shows yet" in capsys.readouterr().out


def test_list_shows_entries_most_recent_first(db_url, store, capsys):
    store.upsert(TrackedEntry.build("a", "Alpha", "3"))
    store.upsert(TrackedEntry.build("b", "Beta", "13.5"))

    assert cli.main(["--database", db_url, "list"]) == 0
    out = capsys.readouterr().out.splitlines()
    assert "Beta | episode 13.5" in out[0]
    assert "Alpha | episode 3" in out[1]


def test_delete_with_yes(db_url, store, capsys):
    store.upsert(TrackedEntry.build("a", "Alpha", "3"))
    assert cli.main(["--database", db_url, "delete", "a", "--yes"]) == 0
    assert store.get("a") is None
    assert "Deleted Alpha" in capsys.readouterr().out


def test_delete_declined_keeps_entry(db_url, store, monkeypatch):
    store.upsert(TrackedEntry.build("a", "Alpha", "3"))
    monkeypatch.setattr("builtins.input", lambda prompt: "n")
    assert cli.main(["--database", db_url, "delete", "a"]) == 0
    assert store.get("a") is not None


def test_delete_unknown_show(db_url, capsys):
    assert cli.main(["--database", db_url, "delete", "nope", "--yes"]) == 1
    assert "no tracked entry" in capsys.readouterr().err


def test_action_without_tracked_entry(db_url, capsys):
    assert cli.main(["--database", db_url, "replay"]) == 0
    assert "anitrack start" in capsys.readouterr().out
