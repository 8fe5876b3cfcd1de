from anitrack.utils.episode_labels import (
    episode_labels_match,
    format_episode_label,
    history_log_key,
    normalize_title_for_match,
    parse_episode_ordinal,
    parse_title_and_total_eps,
    sanitize_title_for_search,
    sort_episode_labels,
)
from anitrack.utils.paths import ani_cli_history_file, database_file_path


def test_ordinals():
    assert parse_episode_ordinal("12") == 12.0
    assert parse_episode_ordinal(" 13.5 ") == 13.5
    assert parse_episode_ordinal("OVA") is None
    assert parse_episode_ordinal("nan") is None
    assert parse_episode_ordinal("") is None


def test_format_episode_label():
    assert format_episode_label(13.0) == "13"
    assert format_episode_label(13.25) == "13.25"
    assert format_episode_label(-1) is None


def test_labels_match_numerically():
    assert episode_labels_match("01", "1")
    assert episode_labels_match("13.50", "13.5")
    assert not episode_labels_match("OVA", "1")


def test_sort_puts_words_last():
    assert sort_episode_labels(["10", "2", "SP", "1.5"]) == ["1.5", "2", "10", "SP"]


def test_titles():
    assert parse_title_and_total_eps("Naruto (220 episodes)") == ("Naruto", 220)
    assert parse_title_and_total_eps("Naruto(220 episodes)") == ("Naruto", 220)
    assert parse_title_and_total_eps("Naruto") == ("Naruto", None)
    assert sanitize_title_for_search("One Piece (1100 episodes)") == "One Piece"
    assert sanitize_title_for_search("86 (Eighty-Six)") == "86 (Eighty-Six)"
    assert normalize_title_for_match("Re:Zero - Starting Life (25 episodes)") == "re zero starting life"
    assert history_log_key("Dr. Stone (24 episodes)", "5") == "Dr Stone 5"


def test_history_file_location(monkeypatch, tmp_path):
    monkeypatch.setenv("XDG_STATE_HOME", str(tmp_path / "state"))
    assert ani_cli_history_file() == tmp_path / "state" / "ani-cli" / "ani-hsts"
    monkeypatch.setenv("ANI_CLI_HIST_DIR", str(tmp_path / "custom"))
    assert ani_cli_history_file() == tmp_path / "custom" / "ani-hsts"


def test_database_file_in_data_dir(monkeypatch, tmp_path):
    monkeypatch.setattr("platform.system", lambda: "Linux")
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    assert database_file_path() == tmp_path / "data" / "anitrack" / "anitrack.db"
