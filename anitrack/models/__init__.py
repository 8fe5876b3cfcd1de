from anitrack.models.config import Config
from anitrack.models.history import ChangeKind, HistoryLine, HistorySnapshot, LogLine, WatchedChange
from anitrack.models.navigation import Action, NavError, NavErrorKind, NavigationPlan
from anitrack.models.schema_version import SchemaVersion
from anitrack.models.tracked_entry import TrackedEntry

__all__ = [
    "Config",
    "ChangeKind",
    "HistoryLine",
    "HistorySnapshot",
    "LogLine",
    "WatchedChange",
    "Action",
    "NavError",
    "NavErrorKind",
    "NavigationPlan",
    "SchemaVersion",
    "TrackedEntry",
]
