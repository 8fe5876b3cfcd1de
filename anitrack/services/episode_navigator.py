"""
Episode Navigator - turns tracked progress plus an action into a launch plan

Pure computation. An advisory episode list (from the metadata service) is
preferred when it contains the stored label; otherwise the label's ordinal is
used. Failures come back as NavError values.
"""
import logging
import math
from typing import List, Optional, Sequence, Union

from anitrack.models.history import HistoryLine
from anitrack.models.navigation import Action, NavError, NavErrorKind, NavigationPlan
from anitrack.models.tracked_entry import TrackedEntry
from anitrack.utils.episode_labels import (
    find_episode_index,
    format_episode_label,
    is_effective_integer,
    parse_episode_ordinal,
    parse_title_and_total_eps,
    sanitize_title_for_search,
)

logger = logging.getLogger(__name__)

CONTINUE_FLAG = "-c"
SELECT_FLAG = "-S"
EPISODE_FLAG = "-e"

NO_NEXT_MESSAGE = "No more episodes available."
NO_PREVIOUS_MESSAGE = "No previous episode available."
NO_TRACKED_MESSAGE = "No last seen entry yet. Run `anitrack start` first."

Target = Union[str, NavError]


def _index_in(label: str, episodes: Optional[Sequence[str]]) -> Optional[int]:
    if not episodes:
        return None
    return find_episode_index(label, list(episodes))


def next_target(label: str, title: str, episodes: Optional[Sequence[str]] = None) -> Target:
    idx = _index_in(label, episodes)
    if idx is not None:
        if idx + 1 < len(episodes):
            return episodes[idx + 1]
        return NavError(NavErrorKind.NO_MORE_EPISODES, NO_NEXT_MESSAGE)

    current = parse_episode_ordinal(label)
    if current is None:
        return NavError(
            NavErrorKind.UNRESOLVABLE_EPISODE,
            f"Cannot work out the episode after {label!r} without an episode list.",
        )

    total = parse_title_and_total_eps(title)[1]
    if total is not None and current >= total:
        return NavError(NavErrorKind.NO_MORE_EPISODES, NO_NEXT_MESSAGE)

    if is_effective_integer(current):
        return format_episode_label(round(current) + 1)
    # 13.5 -> 14
    return format_episode_label(math.ceil(current))


def previous_target(label: str, episodes: Optional[Sequence[str]] = None) -> Target:
    idx = _index_in(label, episodes)
    if idx is not None:
        if idx > 0:
            return episodes[idx - 1]
        return NavError(NavErrorKind.NO_MORE_EPISODES, NO_PREVIOUS_MESSAGE)

    current = parse_episode_ordinal(label)
    if current is None:
        return NavError(
            NavErrorKind.UNRESOLVABLE_EPISODE,
            f"Cannot work out the episode before {label!r} without an episode list.",
        )
    if current <= 0:
        return NavError(NavErrorKind.NO_MORE_EPISODES, NO_PREVIOUS_MESSAGE)

    if is_effective_integer(current):
        return format_episode_label(round(current) - 1)
    # 13.5 -> 13
    return format_episode_label(math.floor(current))


def previous_seed(label: str, episodes: Optional[Sequence[str]] = None) -> Optional[str]:
    """History episode that makes continue mode play the previous episode"""
    idx = _index_in(label, episodes)
    if idx is not None:
        return episodes[idx - 2] if idx > 1 else None

    target = previous_target(label)
    if isinstance(target, NavError):
        return None
    value = parse_episode_ordinal(target)
    if value is not None and value > 1:
        return format_episode_label(value - 1)
    return None


def replay_seed(label: str, episodes: Optional[Sequence[str]] = None) -> Optional[str]:
    """History episode that makes continue mode play label again"""
    idx = _index_in(label, episodes)
    if idx is not None:
        return episodes[idx - 1] if idx > 0 else None

    current = parse_episode_ordinal(label)
    if current is None or not is_effective_integer(current):
        return None
    if current > 1:
        return format_episode_label(round(current) - 1)
    return None


def needs_show_selector(plan: NavigationPlan) -> bool:
    """True when the plan would search by title and a -S index is not yet known"""
    if plan.uses_seed or SELECT_FLAG in plan.launch_args:
        return False
    return plan.is_fallback or plan.action == Action.SELECT


class EpisodeNavigator:
    """Builds NavigationPlans for next / previous / replay / select"""

    def plan(
        self,
        entry: Optional[TrackedEntry],
        action: Action,
        resolved_episode_list: Optional[List[str]] = None,
        select_nth: Optional[int] = None,
    ) -> Union[NavigationPlan, NavError]:
        if entry is None:
            return NavError(NavErrorKind.NO_TRACKED_ENTRY, NO_TRACKED_MESSAGE)

        action = Action(action)
        episodes = resolved_episode_list or None
        label = (entry.episode_label or "").strip()

        if action == Action.NEXT:
            return self._plan_next(entry, label, episodes)
        if action == Action.PREVIOUS:
            return self._plan_previous(entry, label, episodes, select_nth)
        if action == Action.REPLAY:
            return self._plan_replay(entry, label, episodes, select_nth)
        return self._plan_select(entry, label, select_nth)

    def _seeded(self, entry: TrackedEntry, action: Action, target: str, seed_episode: str) -> NavigationPlan:
        return NavigationPlan(
            action=action,
            show_id=entry.show_id,
            title=entry.title,
            target_episode_label=target,
            launch_args=(CONTINUE_FLAG,),
            seed=HistoryLine(episode_label=seed_episode, show_id=entry.show_id, title=entry.title),
        )

    def _fallback(
        self,
        entry: TrackedEntry,
        action: Action,
        target: str,
        select_nth: Optional[int],
    ) -> NavigationPlan:
        # Explicit show selector keeps ani-cli off the open-ended search prompt
        args = self._selector_args(entry, select_nth)
        if target:
            args += (EPISODE_FLAG, target)
        return NavigationPlan(
            action=action,
            show_id=entry.show_id,
            title=entry.title,
            target_episode_label=target,
            launch_args=args,
            is_fallback=True,
        )

    @staticmethod
    def _selector_args(entry: TrackedEntry, select_nth: Optional[int]) -> tuple:
        args = ()
        if select_nth is not None:
            args += (SELECT_FLAG, str(select_nth))
        return args + (sanitize_title_for_search(entry.title),)

    def _plan_next(self, entry, label, episodes):
        target = next_target(label, entry.title, episodes)
        if isinstance(target, NavError):
            return target
        # Continue mode plays the episode after the seeded one
        return self._seeded(entry, Action.NEXT, target, label)

    def _plan_previous(self, entry, label, episodes, select_nth):
        target = previous_target(label, episodes)
        if isinstance(target, NavError):
            return target
        seed_episode = previous_seed(label, episodes)
        if seed_episode is not None:
            return self._seeded(entry, Action.PREVIOUS, target, seed_episode)
        return self._fallback(entry, Action.PREVIOUS, target, select_nth)

    def _plan_replay(self, entry, label, episodes, select_nth):
        seed_episode = replay_seed(label, episodes) if label else None
        if seed_episode is not None:
            return self._seeded(entry, Action.REPLAY, label, seed_episode)
        logger.debug(f"Replay of {entry.show_id} episode {label!r} uses the show selector fallback")
        return self._fallback(entry, Action.REPLAY, label, select_nth)

    def _plan_select(self, entry, label, select_nth):
        return NavigationPlan(
            action=Action.SELECT,
            show_id=entry.show_id,
            title=entry.title,
            target_episode_label=label,
            launch_args=self._selector_args(entry, select_nth),
        )
