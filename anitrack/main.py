import argparse
import logging
import os
import sys
from typing import List, Optional

from anitrack import __version__
from anitrack.errors import StoreError
from anitrack.models.navigation import Action
from anitrack.services.change_detector import ChangeDetector
from anitrack.services.episode_list_worker import EpisodeListWorker
from anitrack.services.journal_reader import JournalReader
from anitrack.services.metadata_client import MetadataClient
from anitrack.services.sync_orchestrator import SyncOrchestrator, SyncResult, SyncStatus
from anitrack.services.tracking_store import TrackingStore
from anitrack.startup import LOG_LEVELS, Settings, load_settings, open_store
from anitrack.utils.logger import change_log_level_runtime, setup_logging


logger = logging.getLogger(__name__)

ACTION_COMMANDS = {
    "next": Action.NEXT,
    "previous": Action.PREVIOUS,
    "replay": Action.REPLAY,
    "select": Action.SELECT,
}

# Statuses that explain why nothing happened rather than report a failure
INFORMATIONAL_STATUSES = {SyncStatus.NO_TRACKED_ENTRY, SyncStatus.NO_MORE_EPISODES}


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="anitrack", description="Watch progress companion for ani-cli")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--database", default=None, help="SQLAlchemy URL (default: ANITRACK_DATABASE_URL or the data dir)")
    parser.add_argument("--log-level", default=None, choices=[level.lower() for level in LOG_LEVELS] + list(LOG_LEVELS))
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("start", help="Search and watch with ani-cli, then track what was played")

    for name, action in ACTION_COMMANDS.items():
        action_parser = subparsers.add_parser(name, help=f"{action.value.capitalize()} for the most recent show")
        action_parser.add_argument("--show", dest="show_id", default=None, help="Show id instead of the most recent one")

    subparsers.add_parser("list", help="Tracked shows, most recent first")

    delete_parser = subparsers.add_parser("delete", help="Stop tracking a show")
    delete_parser.add_argument("show_id")
    delete_parser.add_argument("--yes", "-y", action="store_true", help="Do not ask for confirmation")

    args = parser.parse_args(argv)
    if args.command is None:
        args.command = "list"
    return args


def build_orchestrator(store: TrackingStore, settings: Settings):
    metadata = MetadataClient(
        timeout=settings.metadata_timeout,
        attempts=settings.metadata_attempts,
        backoff=settings.metadata_backoff,
        mode=settings.translation_mode,
    )
    worker = EpisodeListWorker(metadata.fetch_episode_labels)
    orchestrator = SyncOrchestrator(
        store,
        detector=ChangeDetector(tie_break=settings.journal_tie_break),
        journal=JournalReader(),
        metadata=metadata,
        worker=worker,
        journal_slack=settings.journal_window_slack,
        episode_list_timeout=settings.metadata_wait_timeout,
    )
    return orchestrator, worker


def print_result(result: SyncResult) -> int:
    for warning in result.warnings:
        print(f"warning: {warning}", file=sys.stderr)

    if result.ok or result.status in INFORMATIONAL_STATUSES:
        print(result.message)
        return 0
    print(f"error: {result.message}", file=sys.stderr)
    return 1


def print_entries(orchestrator: SyncOrchestrator) -> int:
    entries = orchestrator.list_entries()
    if not entries:
        print("No tracked shows yet. Run `anitrack start` first.")
        return 0

    for idx, entry in enumerate(entries, start=1):
        seen = entry.updated_at.astimezone().strftime("%Y-%m-%d %H:%M")
        print(f"{idx:>3}. {entry.title} | episode {entry.episode_label} | {seen} | {entry.show_id}")
    return 0


def confirm(prompt: str) -> bool:
    try:
        answer = input(prompt)
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def delete_entry(orchestrator: SyncOrchestrator, show_id: str, assume_yes: bool) -> int:
    entry = orchestrator.store.get(show_id)
    if entry is None:
        print(f"error: no tracked entry for {show_id}", file=sys.stderr)
        return 1

    if not assume_yes and not confirm(f"Stop tracking {entry.title} (episode {entry.episode_label})? [y/N] "):
        print("Cancelled.")
        return 0

    orchestrator.delete(show_id)
    print(f"Deleted {entry.title}.")
    return 0


def run_command(args: argparse.Namespace, store: TrackingStore, settings: Settings) -> int:
    if args.command == "list":
        return print_entries(SyncOrchestrator(store))

    if args.command == "delete":
        return delete_entry(SyncOrchestrator(store), args.show_id, args.yes)

    orchestrator, worker = build_orchestrator(store, settings)
    worker.start()
    try:
        if args.command == "start":
            result = orchestrator.start()
        else:
            result = orchestrator.run_action(ACTION_COMMANDS[args.command], show_id=args.show_id)
    finally:
        worker.stop()

    logger.debug(f"Sync trace: {' -> '.join(state.value for state in result.trace)}")
    return print_result(result)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    initial_level = (args.log_level or os.getenv("ANITRACK_LOG_LEVEL") or "WARNING").upper()
    setup_logging(initial_level if initial_level in LOG_LEVELS else "WARNING")

    try:
        store = open_store(args.database)
    except StoreError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    try:
        settings = load_settings(store)
        if args.log_level:
            settings.log_level = args.log_level.upper()
        change_log_level_runtime(settings.log_level)
        return run_command(args, store, settings)
    except StoreError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Interrupted.", file=sys.stderr)
        return 130
    finally:
        store.close()


if __name__ == "__main__":
    raise SystemExit(main())
