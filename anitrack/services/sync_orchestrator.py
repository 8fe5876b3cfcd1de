"""
Sync Orchestrator - one user action from tracked state to durable progress

    IDLE -> RESOLVING -> PLANNING -> LAUNCHING -> AWAITING_EXIT
         -> DETECTING -> COMMITTING -> DONE

Every other outcome ends in REPORTED with a SyncStatus explaining why. The
store is written in exactly one place (_commit) and only after ani-cli
exited successfully.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
import logging
from pathlib import Path
from typing import Callable, List, Optional

from anitrack.errors import AnitrackError, MetadataUnavailable, StoreError
from anitrack.models.history import ChangeKind, HistorySnapshot, WatchedChange
from anitrack.models.navigation import Action, NavError, NavErrorKind, NavigationPlan
from anitrack.models.tracked_entry import TrackedEntry
from anitrack.services.change_detector import ChangeDetector
from anitrack.services.episode_list_worker import EpisodeListWorker
from anitrack.services.episode_navigator import NO_TRACKED_MESSAGE, EpisodeNavigator, needs_show_selector
from anitrack.services.history_reader import read_snapshot
from anitrack.services.journal_reader import JournalReader
from anitrack.services.metadata_client import MetadataClient
from anitrack.services.session_runner import ExitOutcome, SessionRunner, resolve_ani_cli_bin
from anitrack.services.tracking_store import TrackingStore
from anitrack.utils.episode_labels import parse_title_and_total_eps
from anitrack.utils.paths import ani_cli_history_file

logger = logging.getLogger(__name__)

DEFAULT_JOURNAL_SLACK = timedelta(seconds=30)
DEFAULT_EPISODE_LIST_TIMEOUT = 3.0


class SyncState(str, Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    PLANNING = "planning"
    LAUNCHING = "launching"
    AWAITING_EXIT = "awaiting_exit"
    DETECTING = "detecting"
    COMMITTING = "committing"
    DONE = "done"
    REPORTED = "reported"


TRANSITIONS = {
    SyncState.IDLE: {SyncState.RESOLVING, SyncState.LAUNCHING},
    SyncState.RESOLVING: {SyncState.PLANNING, SyncState.REPORTED},
    SyncState.PLANNING: {SyncState.LAUNCHING, SyncState.REPORTED},
    SyncState.LAUNCHING: {SyncState.AWAITING_EXIT, SyncState.REPORTED},
    SyncState.AWAITING_EXIT: {SyncState.DETECTING, SyncState.REPORTED},
    SyncState.DETECTING: {SyncState.COMMITTING, SyncState.REPORTED},
    SyncState.COMMITTING: {SyncState.DONE, SyncState.REPORTED},
    SyncState.DONE: set(),
    SyncState.REPORTED: set(),
}


class SyncStatus(str, Enum):
    DONE = "done"
    NO_CHANGE = "no_change"
    NO_TRACKED_ENTRY = "no_tracked_entry"
    NO_MORE_EPISODES = "no_more_episodes"
    UNRESOLVABLE_EPISODE = "unresolvable_episode"
    AMBIGUOUS = "ambiguous"
    SESSION_FAILED = "session_failed"
    STORE_ERROR = "store_error"


NAV_ERROR_STATUS = {
    NavErrorKind.NO_TRACKED_ENTRY: SyncStatus.NO_TRACKED_ENTRY,
    NavErrorKind.NO_MORE_EPISODES: SyncStatus.NO_MORE_EPISODES,
    NavErrorKind.UNRESOLVABLE_EPISODE: SyncStatus.UNRESOLVABLE_EPISODE,
}

SUCCESS_STATUSES = {SyncStatus.DONE, SyncStatus.NO_CHANGE}


class InvalidTransition(AnitrackError):
    """Orchestrator asked to move between states the table does not allow"""


@dataclass
class SyncResult:
    status: SyncStatus
    message: str
    entry: Optional[TrackedEntry] = None
    plan: Optional[NavigationPlan] = None
    change: Optional[WatchedChange] = None
    warnings: List[str] = field(default_factory=list)
    trace: List[SyncState] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status in SUCCESS_STATUSES


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncOrchestrator:
    def __init__(
        self,
        store: TrackingStore,
        runner: Optional[SessionRunner] = None,
        navigator: Optional[EpisodeNavigator] = None,
        detector: Optional[ChangeDetector] = None,
        journal: Optional[JournalReader] = None,
        metadata: Optional[MetadataClient] = None,
        worker: Optional[EpisodeListWorker] = None,
        history_path: Optional[Path] = None,
        command: Optional[str] = None,
        clock: Callable[[], datetime] = _utcnow,
        journal_slack: timedelta = DEFAULT_JOURNAL_SLACK,
        episode_list_timeout: float = DEFAULT_EPISODE_LIST_TIMEOUT,
    ):
        self.store = store
        self.runner = runner or SessionRunner()
        self.navigator = navigator or EpisodeNavigator()
        self.clock = clock
        self.detector = detector or ChangeDetector(clock=clock)
        self.journal = journal
        self.metadata = metadata
        self.worker = worker
        self.history_path = history_path
        self.command = command
        self.journal_slack = journal_slack
        self.episode_list_timeout = episode_list_timeout

        self.state = SyncState.IDLE
        self.trace: List[SyncState] = []
        self.warnings: List[str] = []

    # ------------------------------------------------------------------
    # State machine plumbing
    # ------------------------------------------------------------------

    def _begin(self):
        self.state = SyncState.IDLE
        self.trace = [SyncState.IDLE]
        self.warnings = []

    def _to(self, new_state: SyncState):
        if new_state not in TRANSITIONS[self.state]:
            raise InvalidTransition(f"{self.state.value} -> {new_state.value}")
        logger.debug(f"Sync state {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.trace.append(new_state)

    def _report(self, status: SyncStatus, message: str, **details) -> SyncResult:
        self._to(SyncState.REPORTED)
        if status in SUCCESS_STATUSES:
            logger.info(message)
        else:
            logger.warning(f"✗ {status.value}: {message}")
        return SyncResult(status, message, warnings=list(self.warnings), trace=list(self.trace), **details)

    def _commit(
        self,
        outcome: ExitOutcome,
        new_entry: TrackedEntry,
        status: SyncStatus,
        message: str,
        plan: Optional[NavigationPlan] = None,
        change: Optional[WatchedChange] = None,
    ) -> SyncResult:
        """The only path that writes progress"""
        if not outcome.success:
            raise InvalidTransition("refusing to commit after an unsuccessful session")
        self._to(SyncState.COMMITTING)
        try:
            saved = self.store.upsert(new_entry)
        except StoreError as e:
            return self._report(SyncStatus.STORE_ERROR, str(e), plan=plan, change=change)

        self._to(SyncState.DONE)
        logger.info(f"✓ {message}")
        return SyncResult(
            status, message, entry=saved, plan=plan, change=change,
            warnings=list(self.warnings), trace=list(self.trace),
        )

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def _history_file(self) -> Path:
        return Path(self.history_path) if self.history_path else ani_cli_history_file()

    def _read_history(self) -> HistorySnapshot:
        snapshot = read_snapshot(self._history_file())
        self.warnings.extend(snapshot.warnings)
        return snapshot

    def _episode_list(self, entry: TrackedEntry) -> Optional[List[str]]:
        """Advisory episode list; None when unavailable within the wait budget"""
        if self.worker is not None:
            self.worker.request(entry.show_id, parse_title_and_total_eps(entry.title)[1])
            result = self.worker.wait_for(entry.show_id, self.episode_list_timeout)
            if result is None:
                self.warnings.append(f"episode list for {entry.show_id} not ready, using episode numbers")
                return None
            self.warnings.extend(result.warnings)
            return result.episodes

        if self.metadata is not None:
            try:
                return self.metadata.fetch_episode_labels_for(entry) or None
            except MetadataUnavailable as e:
                warning = f"episode list unavailable for {entry.show_id}: {e}"
                logger.warning(warning)
                self.warnings.append(warning)
        return None

    def _journal_excerpt(self, started: datetime, finished: datetime):
        if self.journal is None:
            return None
        return self.journal.read(started - self.journal_slack, finished + self.journal_slack)

    def _launch(self, args, seed=None) -> ExitOutcome:
        self._to(SyncState.LAUNCHING)
        command = self.command or resolve_ani_cli_bin()
        logger.info(f"Launching {command} {' '.join(args)}".rstrip())
        self._to(SyncState.AWAITING_EXIT)
        return self.runner.run(command, args, seed=seed)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def run_action(self, action: Action, show_id: Optional[str] = None) -> SyncResult:
        """next / previous / replay / select for the latest (or given) show"""
        self._begin()
        action = Action(action)

        self._to(SyncState.RESOLVING)
        try:
            entry = self.store.get(show_id) if show_id else self.store.latest()
        except StoreError as e:
            return self._report(SyncStatus.STORE_ERROR, str(e))
        if entry is None:
            message = f"No tracked entry for {show_id}." if show_id else NO_TRACKED_MESSAGE
            return self._report(SyncStatus.NO_TRACKED_ENTRY, message)

        episodes = None if action == Action.SELECT else self._episode_list(entry)

        self._to(SyncState.PLANNING)
        plan = self.navigator.plan(entry, action, episodes)
        if isinstance(plan, NavError):
            return self._report(NAV_ERROR_STATUS[plan.kind], plan.message, entry=entry)

        if needs_show_selector(plan) and self.metadata is not None:
            resolution = self.metadata.resolve_select_nth(entry)
            self.warnings.extend(resolution.warnings)
            if resolution.index is not None:
                plan = self.navigator.plan(entry, action, episodes, select_nth=resolution.index)

        # Fallback launches write the real history file; read it before
        before = None if plan.uses_seed else self._read_history().only(entry.show_id)

        started = self.clock()
        outcome = self._launch(plan.launch_args, seed=plan.seed)
        finished = self.clock()

        if not outcome.success:
            return self._report(
                SyncStatus.SESSION_FAILED,
                f"ani-cli session did not finish cleanly ({outcome.describe()}); progress left unchanged.",
                entry=entry,
                plan=plan,
            )

        self._to(SyncState.DETECTING)
        if plan.uses_seed:
            after = outcome.seeded_history or HistorySnapshot()
            self.warnings.extend(after.warnings)
            change = self.detector.detect(HistorySnapshot.from_lines([plan.seed]), after.only(entry.show_id))
        else:
            after = self._read_history().only(entry.show_id)
            change = self.detector.detect(
                before,
                after,
                self._journal_excerpt(started, finished),
                window=(finished - started) + self.journal_slack,
            )

        if change.kind == ChangeKind.AMBIGUOUS:
            return self._report(
                SyncStatus.AMBIGUOUS,
                f"Several shows changed at once ({', '.join(change.candidates)}); not updating.",
                entry=entry, plan=plan, change=change,
            )

        if change.is_changed:
            new_entry = TrackedEntry.build(change.show_id, change.title or entry.title, change.episode_label)
            return self._commit(
                outcome, new_entry, SyncStatus.DONE,
                f"Updated {new_entry.title}: episode {new_entry.episode_label}",
                plan=plan, change=change,
            )

        # A fallback launch writes the global history, which may already have
        # held the played episode; the line it ends with is the progress
        line = None if plan.uses_seed else after.get(entry.show_id)
        if line is not None and line.episode_label != entry.episode_label:
            new_entry = TrackedEntry.build(entry.show_id, line.title or entry.title, line.episode_label)
            return self._commit(
                outcome, new_entry, SyncStatus.DONE,
                f"Updated {new_entry.title}: episode {new_entry.episode_label}",
                plan=plan, change=change,
            )

        # Clean exit without a new episode: keep the show on top of the list
        current = TrackedEntry.build(entry.show_id, entry.title, entry.episode_label)
        return self._commit(
            outcome, current, SyncStatus.NO_CHANGE,
            f"No new episode recorded; {entry.title} stays at episode {entry.episode_label}",
            plan=plan, change=change,
        )

    def start(self) -> SyncResult:
        """Plain ani-cli session; whatever it records becomes tracked progress"""
        self._begin()
        before = self._read_history()

        started = self.clock()
        outcome = self._launch(())
        finished = self.clock()

        if not outcome.success:
            return self._report(
                SyncStatus.SESSION_FAILED,
                f"ani-cli session did not finish cleanly ({outcome.describe()}); nothing recorded.",
            )

        self._to(SyncState.DETECTING)
        after = self._read_history()
        change = self.detector.detect(
            before,
            after,
            self._journal_excerpt(started, finished),
            window=(finished - started) + self.journal_slack,
        )

        if change.kind == ChangeKind.AMBIGUOUS:
            return self._report(
                SyncStatus.AMBIGUOUS,
                f"Several shows changed at once ({', '.join(change.candidates)}); not updating.",
                change=change,
            )
        if not change.is_changed:
            return self._report(SyncStatus.NO_CHANGE, "No new episode recorded.", change=change)

        new_entry = TrackedEntry.build(change.show_id, change.title, change.episode_label)
        return self._commit(
            outcome, new_entry, SyncStatus.DONE,
            f"Tracking {new_entry.title}: episode {new_entry.episode_label}",
            change=change,
        )

    # ------------------------------------------------------------------
    # Presentation helpers
    # ------------------------------------------------------------------

    def list_entries(self) -> List[TrackedEntry]:
        return self.store.list_by_recency()

    def delete(self, show_id: str) -> bool:
        deleted = self.store.delete(show_id)
        if not deleted:
            logger.info(f"No tracked entry for {show_id}, nothing deleted")
        return deleted
