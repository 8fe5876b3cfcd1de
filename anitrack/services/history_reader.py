"""
ani-cli history file reader

ani-cli keeps one line per show: "<episode>\t<id>\t<title>". Some setups
write spaces instead of tabs; both shapes are accepted and anything else is
skipped with a warning.
"""
import logging
from pathlib import Path
from typing import Optional

from anitrack.models.history import HistoryLine, HistorySnapshot

logger = logging.getLogger(__name__)


def parse_history_line(line: str) -> Optional[HistoryLine]:
    trimmed = line.strip()
    if not trimmed:
        return None

    if "\t" in trimmed:
        parts = trimmed.split("\t", 2)
        if len(parts) != 3:
            return None
        episode, show_id, title = (part.strip() for part in parts)
    else:
        # Space separated fallback: title is everything after the second token
        parts = trimmed.split()
        if len(parts) < 3:
            return None
        episode, show_id = parts[0], parts[1]
        title = " ".join(parts[2:])

    if not episode or not show_id or not title:
        return None
    return HistoryLine(episode_label=episode, show_id=show_id, title=title)


def parse_history(raw: str) -> HistorySnapshot:
    snapshot = HistorySnapshot()
    for line in raw.splitlines():
        entry = parse_history_line(line)
        if entry is not None:
            snapshot.add(entry)
        elif line.strip():
            snapshot.skipped_lines += 1
    return snapshot


def read_snapshot(path: Path) -> HistorySnapshot:
    """Reads the whole history file; a missing file is an empty snapshot"""
    path = Path(path)
    if not path.exists():
        return HistorySnapshot()

    try:
        raw = path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        warning = f"failed to read ani-cli history at {path}: {e}"
        logger.warning(warning)
        return HistorySnapshot(warnings=[warning])

    snapshot = parse_history(raw)
    if snapshot.skipped_lines:
        warning = f"ignored {snapshot.skipped_lines} malformed line(s) in {path}"
        logger.warning(warning)
        snapshot.warnings.append(warning)
    return snapshot


def write_seed(path: Path, line: HistoryLine):
    """Writes a one-line history file used to prime ani-cli's continue mode"""
    Path(path).write_text(line.to_history_text(), encoding="utf-8")
