"""
Session Runner - hands the terminal to ani-cli for one playback session

Every resource touched around the child (signal handlers, terminal mode,
terminal foreground group, seeded history directory) is acquired through a
context manager on an ExitStack, so it is released whether the child exits,
fails to start, or the session is cancelled.
"""
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass
import logging
import os
from pathlib import Path
import signal
import subprocess
import tempfile
import threading
from typing import Dict, Iterator, Optional, Sequence

try:
    import termios
except ImportError:  # Windows has no termios; sessions run without terminal handoff
    termios = None

from anitrack.models.history import HistoryLine, HistorySnapshot
from anitrack.services.history_reader import read_snapshot, write_seed
from anitrack.utils.paths import HISTORY_FILE_NAME

logger = logging.getLogger(__name__)

ANI_CLI_BIN_ENV = "ANI_TRACK_ANI_CLI_BIN"
HIST_DIR_ENV = "ANI_CLI_HIST_DIR"
DEFAULT_BINARY = "ani-cli"


def resolve_ani_cli_bin() -> str:
    value = os.environ.get(ANI_CLI_BIN_ENV)
    return value if value else DEFAULT_BINARY


@dataclass
class ExitOutcome:
    success: bool
    signaled: bool = False
    returncode: Optional[int] = None
    cancelled: bool = False
    launch_error: Optional[str] = None
    seeded_history: Optional[HistorySnapshot] = None

    @classmethod
    def from_returncode(cls, returncode: Optional[int]) -> "ExitOutcome":
        return cls(
            success=returncode == 0,
            signaled=returncode is not None and returncode < 0,
            returncode=returncode,
        )

    def describe(self) -> str:
        if self.launch_error:
            return self.launch_error
        if self.cancelled:
            return "session cancelled"
        if self.signaled:
            return f"ani-cli killed by signal {-self.returncode}"
        return f"ani-cli exited with status {self.returncode}"


class SessionCancelled(Exception):
    """Raised inside the waiting parent when it is asked to terminate"""


class CancelRequest:
    """
    SIGTERM handler for one session.

    Until arm() the request is only remembered, so a signal landing inside
    subprocess.Popen cannot abandon a half-started child. Once armed, the
    handler raises SessionCancelled in the waiting parent.
    """

    def __init__(self):
        self.received = None
        self.armed = False

    def __call__(self, signum, frame):
        self.received = signum
        if self.armed:
            raise SessionCancelled(f"received signal {signum}")

    def arm(self):
        self.armed = True
        if self.received is not None:
            raise SessionCancelled(f"received signal {self.received}")


def _can_touch_signals() -> bool:
    return threading.current_thread() is threading.main_thread()


def _ignore(signum, frame):
    pass


@contextmanager
def _installed(signum: int, handler) -> Iterator[None]:
    if not _can_touch_signals():
        yield
        return
    previous = signal.getsignal(signum)
    signal.signal(signum, handler)
    try:
        yield
    finally:
        signal.signal(signum, previous if previous is not None else signal.SIG_DFL)


def swallowed_signal(signum: int):
    """
    Parent-side no-op handler. Unlike SIG_IGN it is reset to the default by
    exec, so the child gets the signal normally without a preexec hook.
    """
    return _installed(signum, _ignore)


def ignored_signal(signum: int):
    return _installed(signum, signal.SIG_IGN)


@contextmanager
def cancel_on_signal(signum: int) -> Iterator[CancelRequest]:
    request = CancelRequest()
    with _installed(signum, request):
        yield request


@contextmanager
def terminal_mode(fd: int) -> Iterator[None]:
    """Restores the tty attributes ani-cli/mpv/fzf may leave behind"""
    try:
        saved = termios.tcgetattr(fd)
    except (termios.error, OSError):
        yield
        return
    try:
        yield
    finally:
        try:
            termios.tcsetattr(fd, termios.TCSADRAIN, saved)
        except (termios.error, OSError) as e:
            logger.warning(f"Could not restore terminal mode: {e}")


@contextmanager
def foreground_handoff(fd: int, parent_pgrp: int) -> Iterator:
    """Yields handoff(child_pgrp); the parent group gets the terminal back on exit"""
    state = {"handed": False}

    def handoff(child_pgrp: int) -> bool:
        try:
            os.tcsetpgrp(fd, child_pgrp)
            state["handed"] = True
        except OSError as e:
            logger.debug(f"Terminal foreground handoff failed: {e}")
        return state["handed"]

    try:
        yield handoff
    finally:
        if state["handed"]:
            # tcsetpgrp from a background group raises SIGTTOU
            with ignored_signal(signal.SIGTTOU):
                try:
                    os.tcsetpgrp(fd, parent_pgrp)
                except OSError as e:
                    logger.warning(f"Could not take back the terminal: {e}")


@contextmanager
def seeded_history_dir(seed: HistoryLine) -> Iterator[Path]:
    """Private ani-cli history directory holding just the seed line"""
    with tempfile.TemporaryDirectory(prefix="anitrack-hist-") as tmp:
        hist_dir = Path(tmp)
        write_seed(hist_dir / HISTORY_FILE_NAME, seed)
        logger.debug(f"Seeded {hist_dir} with episode {seed.episode_label} of {seed.show_id}")
        yield hist_dir


class SessionRunner:
    def __init__(self, interactive: Optional[bool] = None, stop_timeout: float = 5.0):
        """
        interactive: None detects a controlling terminal on stdin, False forces
        the plain launch-and-wait path.
        """
        self.interactive = interactive
        self.stop_timeout = stop_timeout

    def run(
        self,
        command: str,
        args: Sequence[str] = (),
        seed: Optional[HistoryLine] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> ExitOutcome:
        cmd = [str(command), *[str(arg) for arg in args]]
        child_env = dict(os.environ)
        child_env.update(env or {})

        try:
            with ExitStack() as resources:
                hist_dir = None
                if seed is not None:
                    hist_dir = resources.enter_context(seeded_history_dir(seed))
                    child_env[HIST_DIR_ENV] = str(hist_dir)

                outcome = self._run_guarded(cmd, child_env)

                if hist_dir is not None and outcome.launch_error is None:
                    outcome.seeded_history = read_snapshot(hist_dir / HISTORY_FILE_NAME)
                return outcome
        except OSError as e:
            logger.error(f"✗ Could not prepare session for {cmd[0]}: {e}")
            return ExitOutcome(success=False, launch_error=f"failed to prepare session: {e}")

    def _terminal(self):
        """(fd, foreground pgrp) when a controlling terminal is usable, else None"""
        if self.interactive is False or termios is None or os.name != "posix":
            return None
        fd = 0
        try:
            if not os.isatty(fd):
                return None
            return fd, os.tcgetpgrp(fd)
        except OSError:
            return None

    def _run_guarded(self, cmd, env) -> ExitOutcome:
        with ExitStack() as guards:
            guards.enter_context(swallowed_signal(signal.SIGINT))
            cancel = guards.enter_context(cancel_on_signal(signal.SIGTERM))

            terminal = self._terminal()
            handoff = None
            if terminal is not None:
                fd, parent_pgrp = terminal
                guards.enter_context(terminal_mode(fd))
                handoff = guards.enter_context(foreground_handoff(fd, parent_pgrp))
            else:
                logger.debug("No controlling terminal, launching without handoff")

            popen_kwargs = {}
            if handoff is not None:
                popen_kwargs["process_group"] = 0
            try:
                proc = subprocess.Popen(cmd, env=env, **popen_kwargs)
            except (OSError, subprocess.SubprocessError) as e:
                logger.error(f"✗ Failed to launch {cmd[0]}: {e}")
                return ExitOutcome(
                    success=False,
                    cancelled=cancel.received is not None,
                    launch_error=f"failed to launch {cmd[0]}: {e}",
                )

            try:
                if handoff is not None:
                    handoff(proc.pid)
                cancel.arm()
                returncode = proc.wait()
            except SessionCancelled as e:
                logger.warning(f"Session cancelled ({e}), stopping {cmd[0]}")
                cancel.armed = False
                self._stop(proc, own_group=handoff is not None)
                return ExitOutcome(success=False, signaled=True, returncode=proc.returncode, cancelled=True)
            except BaseException:
                self._stop(proc, own_group=handoff is not None)
                raise

        outcome = ExitOutcome.from_returncode(returncode)
        if outcome.success:
            logger.info(f"✓ {cmd[0]} exited cleanly")
        else:
            logger.warning(f"⚠ {outcome.describe()}")
        return outcome

    def _stop(self, proc: subprocess.Popen, own_group: bool):
        if proc.poll() is not None:
            return
        try:
            if own_group:
                os.killpg(proc.pid, signal.SIGTERM)
            else:
                proc.terminate()
            proc.wait(timeout=self.stop_timeout)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait()
        except ProcessLookupError:
            pass
