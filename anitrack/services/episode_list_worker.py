import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from anitrack.errors import MetadataUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EpisodeListRequest:
    show_id: str
    total_hint: Optional[int] = None


@dataclass
class EpisodeListResult:
    show_id: str
    episodes: Optional[List[str]] = None
    warnings: List[str] = field(default_factory=list)


class EpisodeListWorker:
    """
    Background fetcher for episode lists.

    One pending request at a time: a new request replaces one that has not
    been picked up yet. Results come back through a queue so the foreground
    never waits unless it asks to.
    """

    def __init__(self, fetch: Callable[[str, Optional[int]], List[str]]):
        """
        fetch: (show_id, total_hint) -> episode labels, may raise MetadataUnavailable
        """
        self.fetch = fetch
        self.running = False
        self.thread = None
        self.results: "queue.Queue[EpisodeListResult]" = queue.Queue()
        self._pending: Optional[EpisodeListRequest] = None
        self._wakeup = threading.Condition()

    def start(self):
        """Start worker thread"""
        if self.running:
            logger.warning("Episode list worker already running")
            return

        self.running = True
        self.thread = threading.Thread(target=self._worker_loop, name="episode-list-worker", daemon=True)
        self.thread.start()
        logger.debug("✓ Episode list worker started")

    def stop(self):
        """Stop worker"""
        with self._wakeup:
            self.running = False
            self._pending = None
            self._wakeup.notify_all()
        if self.thread:
            self.thread.join(timeout=5)
        logger.debug("Episode list worker stopped")

    def request(self, show_id: str, total_hint: Optional[int] = None):
        with self._wakeup:
            if self._pending is not None:
                logger.debug(f"Episode list request for {self._pending.show_id} superseded by {show_id}")
            self._pending = EpisodeListRequest(show_id, total_hint)
            self._wakeup.notify()

    def poll(self) -> Optional[EpisodeListResult]:
        """Next finished result, or None right away"""
        try:
            return self.results.get_nowait()
        except queue.Empty:
            return None

    def wait_for(self, show_id: str, timeout: float) -> Optional[EpisodeListResult]:
        """
        Blocks up to timeout seconds for the result of show_id.

        Results for other shows (left over from superseded requests) are
        dropped.
        """
        deadline = time.monotonic() + max(0.0, timeout)
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            try:
                result = self.results.get(timeout=remaining)
            except queue.Empty:
                return None
            if result.show_id == show_id:
                return result
            logger.debug(f"Dropping stale episode list for {result.show_id}")

    def _next_request(self) -> Optional[EpisodeListRequest]:
        with self._wakeup:
            while self.running and self._pending is None:
                self._wakeup.wait()
            request, self._pending = self._pending, None
            return request

    def _worker_loop(self):
        """Main worker loop"""
        while self.running:
            request = self._next_request()
            if request is None:
                break
            self.results.put(self._process(request))

    def _process(self, request: EpisodeListRequest) -> EpisodeListResult:
        try:
            episodes = self.fetch(request.show_id, request.total_hint)
        except MetadataUnavailable as e:
            warning = f"episode list unavailable for {request.show_id}: {e}"
            logger.warning(warning)
            return EpisodeListResult(request.show_id, None, [warning])
        except Exception as e:
            # Advisory data; a broken fetch must not kill the thread
            logger.error(f"Episode list worker error: {e}")
            return EpisodeListResult(request.show_id, None, [f"episode list lookup crashed: {e}"])
        return EpisodeListResult(request.show_id, episodes or None)
