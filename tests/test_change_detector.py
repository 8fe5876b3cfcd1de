from datetime import datetime, timedelta, timezone

from anitrack.models.history import ChangeKind, HistoryLine, HistorySnapshot, LogLine
from anitrack.services.change_detector import ChangeDetector, TieBreak, diff_snapshots
from anitrack.services.journal_reader import parse_journal_line

NOW = datetime(2026, 2, 25, 17, 0, tzinfo=timezone.utc)


def snap(*lines):
    return HistorySnapshot.from_lines(HistoryLine(*line) for line in lines)


def detector(tie_break=TieBreak.MOST_RECENT):
    return ChangeDetector(clock=lambda: NOW, tie_break=tie_break)


def log(minutes_ago, message):
    return LogLine(NOW - timedelta(minutes=minutes_ago), message)


def test_single_changed_show():
    before = snap(("1", "x", "Title"), ("4", "y", "Other"))
    after = snap(("1", "x", "Title"), ("5", "y", "Other"))
    change = detector().detect(before, after)
    assert change.kind == ChangeKind.CHANGED
    assert (change.show_id, change.episode_label, change.source) == ("y", "5", "history")


def test_new_show_counts_as_change():
    change = detector().detect(snap(), snap(("1", "x", "Title")))
    assert change.is_changed
    assert change.show_id == "x"


def test_title_change_alone_counts():
    change = detector().detect(snap(("1", "x", "Old")), snap(("1", "x", "New")))
    assert change.is_changed
    assert change.title == "New"


def test_two_changes_are_ambiguous():
    change = detector().detect(snap(), snap(("1", "x", "A"), ("2", "y", "B")))
    assert change.kind == ChangeKind.AMBIGUOUS
    assert set(change.candidates) == {"x", "y"}


def test_unchanged_without_journal():
    same = snap(("1", "x", "A"))
    assert detector().detect(same, same).kind == ChangeKind.UNCHANGED
    assert diff_snapshots(same, same) == []


def test_journal_fallback_matches_title_and_episode():
    same = snap(("12", "x", "Shingeki no Kyojin (25 episodes)"), ("3", "y", "Frieren"))
    excerpt = [log(2, "Shingeki no Kyojin 12")]
    change = detector().detect(same, same, excerpt)
    assert change.is_changed
    assert change.show_id == "x"
    assert change.source == "journal"


def test_journal_key_ignores_punctuation_and_glued_parenthetical():
    same = snap(("7", "x", "Re:Zero(50 episodes)"))
    change = detector().detect(same, same, [log(1, "ReZero 7")])
    assert change.show_id == "x"


def test_journal_lines_outside_window_are_ignored():
    same = snap(("12", "x", "Naruto"))
    excerpt = [log(30, "Naruto 12")]
    assert detector().detect(same, same, excerpt, window=timedelta(minutes=10)).kind == ChangeKind.UNCHANGED


def test_most_recent_policy_prefers_newest_line():
    same = snap(("1", "x", "Alpha"), ("2", "y", "Beta"))
    excerpt = [log(5, "Alpha 1"), log(1, "Beta 2")]
    change = detector(TieBreak.MOST_RECENT).detect(same, same, excerpt)
    assert change.show_id == "y"


def test_unique_policy_refuses_two_shows():
    same = snap(("1", "x", "Alpha"), ("2", "y", "Beta"))
    excerpt = [log(5, "Alpha 1"), log(1, "Beta 2")]
    assert detector(TieBreak.UNIQUE).detect(same, same, excerpt).kind == ChangeKind.UNCHANGED


def test_unique_policy_accepts_repeated_lines_for_one_show():
    same = snap(("1", "x", "Alpha"), ("2", "y", "Beta"))
    excerpt = [log(5, "Alpha 1"), log(1, "Alpha 1")]
    change = detector(TieBreak.UNIQUE).detect(same, same, excerpt)
    assert change.show_id == "x"


def test_parse_short_unix_journal_line():
    line = parse_journal_line("1772039324.974245 fedora ani-cli[407433]: Shingeki no Kyojin 0")
    assert line.message == "Shingeki no Kyojin 0"
    assert line.timestamp == datetime.fromtimestamp(1772039324, tz=timezone.utc).replace(microsecond=974245)
    assert parse_journal_line("-- No entries --") is None
