from pathlib import Path
import signal
import stat

import pytest

from anitrack.models.history import HistoryLine
from anitrack.services.session_runner import (
    CancelRequest,
    ExitOutcome,
    SessionCancelled,
    SessionRunner,
    resolve_ani_cli_bin,
)


def fake_ani_cli(tmp_path, body):
    script = tmp_path / "fake-ani-cli"
    script.write_text("#!/bin/sh\n" + body + "\n", encoding="utf-8")
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(script)


def runner():
    return SessionRunner(interactive=False)


def test_clean_exit_is_success(tmp_path):
    outcome = runner().run(fake_ani_cli(tmp_path, "exit 0"), ["-c"])
    assert outcome.success
    assert outcome.returncode == 0
    assert not outcome.signaled
    assert outcome.seeded_history is None


def test_nonzero_exit_is_failure(tmp_path):
    outcome = runner().run(fake_ani_cli(tmp_path, "exit 3"))
    assert not outcome.success
    assert outcome.returncode == 3
    assert not outcome.signaled
    assert "3" in outcome.describe()


def test_signaled_child_is_reported(tmp_path):
    outcome = runner().run(fake_ani_cli(tmp_path, "kill -TERM $$"))
    assert not outcome.success
    assert outcome.signaled
    assert outcome.returncode == -signal.SIGTERM


def test_missing_binary_is_launch_error(tmp_path):
    outcome = runner().run(str(tmp_path / "does-not-exist"), ["-c"])
    assert not outcome.success
    assert outcome.launch_error
    assert "does-not-exist" in outcome.launch_error


def test_seed_dir_is_passed_and_removed(tmp_path):
    marker = tmp_path / "marker"
    body = (
        f'echo "$ANI_CLI_HIST_DIR" > "{marker}"\n'
        f'printf "%s\\n" "$*" >> "{marker}"\n'
        "printf '2\\tshow-1\\tTitle\\n' > \"$ANI_CLI_HIST_DIR/ani-hsts\""
    )
    seed = HistoryLine("1", "show-1", "Title")

    outcome = runner().run(fake_ani_cli(tmp_path, body), ["-c"], seed=seed)

    assert outcome.success
    hist_dir, args = marker.read_text(encoding="utf-8").splitlines()
    assert args == "-c"
    assert not Path(hist_dir).exists()
    assert outcome.seeded_history.get("show-1").episode_label == "2"


def test_seed_file_unchanged_reads_back_seed(tmp_path):
    seed = HistoryLine("5", "show-1", "Title")
    outcome = runner().run(fake_ani_cli(tmp_path, "exit 0"), seed=seed)
    assert outcome.seeded_history.get("show-1") == seed


def test_extra_env_reaches_child(tmp_path):
    marker = tmp_path / "marker"
    outcome = runner().run(
        fake_ani_cli(tmp_path, f'echo "$ANI_CLI_MODE" > "{marker}"'),
        env={"ANI_CLI_MODE": "dub"},
    )
    assert outcome.success
    assert marker.read_text(encoding="utf-8").strip() == "dub"


def test_signal_handlers_are_restored(tmp_path):
    before_int = signal.getsignal(signal.SIGINT)
    before_term = signal.getsignal(signal.SIGTERM)
    runner().run(fake_ani_cli(tmp_path, "exit 1"))
    runner().run(str(tmp_path / "missing"))
    assert signal.getsignal(signal.SIGINT) is before_int
    assert signal.getsignal(signal.SIGTERM) is before_term


def test_binary_override(monkeypatch):
    assert resolve_ani_cli_bin() == "ani-cli"
    monkeypatch.setenv("ANI_TRACK_ANI_CLI_BIN", "/opt/ani-cli")
    assert resolve_ani_cli_bin() == "/opt/ani-cli"


def test_outcome_from_returncode():
    assert ExitOutcome.from_returncode(0).success
    assert ExitOutcome.from_returncode(-9).signaled


def test_terminate_while_waiting_cancels_session(tmp_path):
    before_term = signal.getsignal(signal.SIGTERM)
    marker = tmp_path / "still-running"
    body = f'sleep 0.3\nkill -TERM $PPID\nsleep 5\ntouch "{marker}"'

    outcome = runner().run(fake_ani_cli(tmp_path, body))

    assert outcome.cancelled
    assert not outcome.success
    assert outcome.returncode is not None
    assert not marker.exists()
    assert signal.getsignal(signal.SIGTERM) is before_term


def test_terminate_right_after_launch_cancels_session(tmp_path):
    before_term = signal.getsignal(signal.SIGTERM)

    outcome = runner().run(fake_ani_cli(tmp_path, "kill -TERM $PPID\nsleep 5"))

    assert outcome.cancelled
    assert not outcome.success
    assert signal.getsignal(signal.SIGTERM) is before_term


def test_cancel_request_waits_until_armed():
    request = CancelRequest()
    request(signal.SIGTERM, None)
    assert request.received == signal.SIGTERM

    with pytest.raises(SessionCancelled):
        request.arm()

    request = CancelRequest()
    request.arm()
    with pytest.raises(SessionCancelled):
        request(signal.SIGTERM, None)


def test_child_gets_default_interrupt_handler(tmp_path):
    # The parent swallows SIGINT; ani-cli must still be interruptible
    outcome = runner().run(fake_ani_cli(tmp_path, "kill -INT $$\nexit 0"))
    assert outcome.signaled
    assert outcome.returncode == -signal.SIGINT
