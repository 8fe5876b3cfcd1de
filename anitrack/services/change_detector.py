"""
Change Detector - what did ani-cli just record?

Primary signal is the difference between two history snapshots taken around
one session. When the history did not change, the journal lines ani-cli
wrote during the session are matched against the shows in the history.
"""
from datetime import datetime, timedelta, timezone
from enum import Enum
import logging
from typing import Callable, Dict, List, Optional, Sequence

from anitrack.models.history import HistoryLine, HistorySnapshot, LogLine, WatchedChange
from anitrack.utils.episode_labels import history_log_key, normalize_log_key

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = timedelta(minutes=10)


class TieBreak(str, Enum):
    """How the journal fallback settles several matching log lines"""
    MOST_RECENT = "most_recent"  # newest matching line wins
    UNIQUE = "unique"  # every match must point at the same show


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def diff_snapshots(before: HistorySnapshot, after: HistorySnapshot) -> List[HistoryLine]:
    """Lines of after that are new or differ from before, newest last"""
    changed = []
    for line in after.ordered():
        previous = before.get(line.show_id)
        if previous is None or previous.episode_label != line.episode_label or previous.title != line.title:
            changed.append(line)
    return changed


class ChangeDetector:
    def __init__(
        self,
        clock: Callable[[], datetime] = _utcnow,
        tie_break: TieBreak = TieBreak.MOST_RECENT,
    ):
        self.clock = clock
        self.tie_break = TieBreak(tie_break)

    def detect(
        self,
        before: HistorySnapshot,
        after: HistorySnapshot,
        log_excerpt: Optional[Sequence[LogLine]] = None,
        window: timedelta = DEFAULT_WINDOW,
    ) -> WatchedChange:
        changed = diff_snapshots(before, after)
        if len(changed) == 1:
            logger.debug(f"History changed for {changed[0].show_id}")
            return WatchedChange.changed(changed[0], source="history")
        if len(changed) > 1:
            ids = [line.show_id for line in changed]
            logger.warning(f"History changed for {len(ids)} shows at once: {', '.join(ids)}")
            return WatchedChange.ambiguous(ids)

        if log_excerpt is None:
            # No journal on this host
            return WatchedChange.unchanged()
        return self._detect_from_journal(after, log_excerpt, window)

    def _detect_from_journal(
        self,
        after: HistorySnapshot,
        log_excerpt: Sequence[LogLine],
        window: timedelta,
    ) -> WatchedChange:
        if not len(after):
            return WatchedChange.unchanged()

        now = self.clock()
        earliest = now - window
        recent = [line for line in log_excerpt if earliest <= line.timestamp <= now]
        if not recent:
            return WatchedChange.unchanged()

        # Newest history line wins for a shared key
        by_key: Dict[str, HistoryLine] = {}
        for entry in after.ordered():
            by_key[history_log_key(entry.title, entry.episode_label)] = entry

        newest_first = sorted(recent, key=lambda line: line.timestamp, reverse=True)
        matches = []
        for log_line in newest_first:
            entry = by_key.get(normalize_log_key(log_line.message))
            if entry is not None:
                matches.append(entry)

        if not matches:
            return WatchedChange.unchanged()

        if self.tie_break == TieBreak.MOST_RECENT:
            match = matches[0]
        else:
            show_ids = {entry.show_id for entry in matches}
            if len(show_ids) != 1:
                logger.info(f"Journal points at {len(show_ids)} shows, not picking one")
                return WatchedChange.unchanged()
            match = matches[0]

        logger.info(f"✓ Journal fallback matched {match.title} episode {match.episode_label}")
        return WatchedChange.changed(match, source="journal")
