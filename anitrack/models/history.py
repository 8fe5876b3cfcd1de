from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional


@dataclass(frozen=True)
class HistoryLine:
    """One ani-cli history line: episode, show id, title"""
    episode_label: str
    show_id: str
    title: str

    def to_history_text(self) -> str:
        return f"{self.episode_label}\t{self.show_id}\t{self.title}\n"


@dataclass
class HistorySnapshot:
    """Ordered show_id -> HistoryLine mapping read from a history file"""
    lines: Dict[str, HistoryLine] = field(default_factory=dict)
    skipped_lines: int = 0
    warnings: List[str] = field(default_factory=list)

    @classmethod
    def from_lines(cls, lines: Iterable[HistoryLine]) -> "HistorySnapshot":
        snapshot = cls()
        for line in lines:
            snapshot.add(line)
        return snapshot

    def add(self, line: HistoryLine):
        # Later lines win and move to the most recent position
        self.lines.pop(line.show_id, None)
        self.lines[line.show_id] = line

    def get(self, show_id: str) -> Optional[HistoryLine]:
        return self.lines.get(show_id)

    def ordered(self) -> List[HistoryLine]:
        return list(self.lines.values())

    def only(self, show_id: str) -> "HistorySnapshot":
        line = self.lines.get(show_id)
        return HistorySnapshot(
            lines={show_id: line} if line else {},
            skipped_lines=self.skipped_lines,
            warnings=list(self.warnings),
        )

    def __len__(self):
        return len(self.lines)

    def __contains__(self, show_id):
        return show_id in self.lines


@dataclass(frozen=True)
class LogLine:
    timestamp: datetime
    message: str


class ChangeKind(str, Enum):
    UNCHANGED = "unchanged"
    CHANGED = "changed"
    AMBIGUOUS = "ambiguous"


@dataclass(frozen=True)
class WatchedChange:
    kind: ChangeKind
    show_id: Optional[str] = None
    episode_label: Optional[str] = None
    title: Optional[str] = None
    source: Optional[str] = None  # "history" | "journal"
    candidates: tuple = ()

    @classmethod
    def unchanged(cls) -> "WatchedChange":
        return cls(ChangeKind.UNCHANGED)

    @classmethod
    def changed(cls, line: HistoryLine, source: str = "history") -> "WatchedChange":
        return cls(
            ChangeKind.CHANGED,
            show_id=line.show_id,
            episode_label=line.episode_label,
            title=line.title,
            source=source,
        )

    @classmethod
    def ambiguous(cls, show_ids: Iterable[str]) -> "WatchedChange":
        return cls(ChangeKind.AMBIGUOUS, candidates=tuple(show_ids))

    @property
    def is_changed(self) -> bool:
        return self.kind == ChangeKind.CHANGED

    def __repr__(self):
        if self.is_changed:
            return f"<WatchedChange changed {self.show_id} ep {self.episode_label} ({self.source})>"
        return f"<WatchedChange {self.kind.value}>"
