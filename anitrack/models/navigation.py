from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from anitrack.models.history import HistoryLine


class Action(str, Enum):
    NEXT = "next"
    PREVIOUS = "previous"
    REPLAY = "replay"
    SELECT = "select"


class NavErrorKind(str, Enum):
    NO_TRACKED_ENTRY = "no_tracked_entry"
    NO_MORE_EPISODES = "no_more_episodes"
    UNRESOLVABLE_EPISODE = "unresolvable_episode"


@dataclass(frozen=True)
class NavError:
    """Navigation could not produce a plan"""
    kind: NavErrorKind
    message: str


@dataclass(frozen=True)
class NavigationPlan:
    """What to launch for an action; never mutated once built"""
    action: Action
    show_id: str
    title: str
    target_episode_label: str
    launch_args: Tuple[str, ...]
    is_fallback: bool = False
    seed: Optional[HistoryLine] = None

    @property
    def uses_seed(self) -> bool:
        return self.seed is not None

    def __repr__(self):
        mode = "fallback" if self.is_fallback else ("seeded" if self.seed else "direct")
        return f"<NavigationPlan {self.action.value} {self.show_id} -> {self.target_episode_label} [{mode}]>"
