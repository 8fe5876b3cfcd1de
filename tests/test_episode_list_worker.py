import threading

from anitrack.errors import MetadataUnavailable
from anitrack.services.episode_list_worker import EpisodeListWorker


def test_pending_request_is_superseded():
    fetching = threading.Event()
    release = threading.Event()
    fetched = []

    def fetch(show_id, total_hint):
        fetched.append(show_id)
        if show_id == "a":
            fetching.set()
            release.wait(5)
        return [f"{show_id}-1"]

    worker = EpisodeListWorker(fetch)
    worker.start()
    try:
        worker.request("a")
        assert fetching.wait(5)
        worker.request("b")
        worker.request("c", total_hint=12)
        release.set()

        result = worker.wait_for("c", timeout=5)
        assert result.episodes == ["c-1"]
        assert fetched == ["a", "c"]
    finally:
        worker.stop()


def test_poll_does_not_block():
    worker = EpisodeListWorker(lambda show_id, hint: ["1"])
    assert worker.poll() is None


def test_poll_returns_finished_result():
    worker = EpisodeListWorker(lambda show_id, hint: ["1", "2"])
    worker.start()
    try:
        worker.request("x")
        assert worker.wait_for("x", timeout=5).episodes == ["1", "2"]
        worker.request("y")
        result = worker.wait_for("y", timeout=5)
        assert result.show_id == "y"
        assert worker.poll() is None
    finally:
        worker.stop()


def test_metadata_failure_becomes_warning():
    def fetch(show_id, hint):
        raise MetadataUnavailable("offline")

    worker = EpisodeListWorker(fetch)
    worker.start()
    try:
        worker.request("x")
        result = worker.wait_for("x", timeout=5)
        assert result.episodes is None
        assert "offline" in result.warnings[0]
    finally:
        worker.stop()


def test_wait_for_times_out_without_worker_thread():
    worker = EpisodeListWorker(lambda show_id, hint: ["1"])
    worker.request("x")
    assert worker.wait_for("x", timeout=0.05) is None


def test_stop_joins_thread():
    worker = EpisodeListWorker(lambda show_id, hint: [])
    worker.start()
    worker.stop()
    assert not worker.thread.is_alive()
