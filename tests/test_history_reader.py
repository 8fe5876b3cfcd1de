from anitrack.models.history import HistoryLine
from anitrack.services.history_reader import parse_history, parse_history_line, read_snapshot, write_seed


def test_tab_delimited_line():
    line = parse_history_line("12\tabc123\tFrieren (28 episodes)\n")
    assert line == HistoryLine("12", "abc123", "Frieren (28 episodes)")


def test_space_delimited_line_keeps_rest_as_title():
    line = parse_history_line("3 xyz Spy x Family Season 2")
    assert line.episode_label == "3"
    assert line.show_id == "xyz"
    assert line.title == "Spy x Family Season 2"


def test_malformed_lines_are_counted():
    snapshot = parse_history("1\tid1\tOne\nnonsense\n\n2 only\n13.5\tid2\tTwo\n")
    assert len(snapshot) == 2
    assert snapshot.skipped_lines == 2
    assert snapshot.get("id2").episode_label == "13.5"


def test_last_line_for_a_show_wins_and_moves_last():
    snapshot = parse_history("1\ta\tA\n1\tb\tB\n2\ta\tA\n")
    assert snapshot.get("a").episode_label == "2"
    assert [line.show_id for line in snapshot.ordered()] == ["b", "a"]


def test_missing_file_is_empty_snapshot(tmp_path):
    snapshot = read_snapshot(tmp_path / "nope" / "ani-hsts")
    assert len(snapshot) == 0
    assert snapshot.warnings == []


def test_skipped_lines_produce_warning(tmp_path):
    path = tmp_path / "ani-hsts"
    path.write_text("1\ta\tA\ngarbage\n", encoding="utf-8")
    snapshot = read_snapshot(path)
    assert "a" in snapshot
    assert snapshot.skipped_lines == 1
    assert len(snapshot.warnings) == 1


def test_seed_is_readable_back(tmp_path):
    path = tmp_path / "ani-hsts"
    seed = HistoryLine("4", "show", "Some Show (12 episodes)")
    write_seed(path, seed)
    assert read_snapshot(path).get("show") == seed


def test_only_scopes_to_one_show():
    snapshot = parse_history("1\ta\tA\n5\tb\tB\n")
    scoped = snapshot.only("b")
    assert len(scoped) == 1
    assert "a" not in scoped
    assert len(snapshot.only("missing")) == 0
