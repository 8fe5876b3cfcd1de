import os
from pathlib import Path
import platform

APP_NAME = "anitrack"
HISTORY_FILE_NAME = "ani-hsts"


def data_dir() -> Path:
    """Per-user data directory for the store and the log file"""
    system = platform.system()
    home = Path(os.getenv("HOME") or Path.home())
    if system == "Darwin":
        base = home / "Library" / "Application Support"
    elif system == "Windows":
        base = Path(os.getenv("APPDATA") or home / "AppData" / "Roaming")
    else:
        xdg = os.getenv("XDG_DATA_HOME")
        base = Path(xdg) if xdg else home / ".local" / "share"
    return base / APP_NAME


def database_file_path() -> Path:
    return data_dir() / f"{APP_NAME}.db"


def log_file_path() -> Path:
    return data_dir() / f"{APP_NAME}.log"


def ani_cli_history_file() -> Path:
    """ani-cli's own history file (ANI_CLI_HIST_DIR, else XDG state dir)"""
    custom = os.getenv("ANI_CLI_HIST_DIR")
    if custom:
        return Path(custom) / HISTORY_FILE_NAME

    state_home = os.getenv("XDG_STATE_HOME")
    if state_home:
        base = Path(state_home)
    else:
        base = Path(os.getenv("HOME") or ".") / ".local" / "state"
    return base / "ani-cli" / HISTORY_FILE_NAME
