import logging
import logging.handlers
import os
from pathlib import Path
from typing import Optional

from anitrack.utils.paths import log_file_path


class LineRotatingFileHandler(logging.FileHandler):
    """File handler that rotates based on number of lines, not size."""

    def __init__(self, filename, maxLines=500, backupCount=5, encoding=None, delay=False):
        super().__init__(filename, 'a', encoding, delay)
        self.maxLines = maxLines
        self.backupCount = backupCount
        self.lineCount = self._count_lines()

    def _count_lines(self):
        try:
            with open(self.baseFilename, 'r', encoding=self.encoding or "utf-8", errors="replace") as f:
                return sum(1 for _ in f)
        except OSError:
            return 0

    def emit(self, record):
        super().emit(record)
        self.lineCount += 1
        if self.lineCount >= self.maxLines:
            self.doRollover()

    def doRollover(self):
        """Shift anitrack.log.N up by one and start a fresh file."""
        if self.stream:
            self.stream.close()
            self.stream = None

        for i in range(self.backupCount - 1, 0, -1):
            sfn = f"{self.baseFilename}.{i}"
            dfn = f"{self.baseFilename}.{i + 1}"
            if os.path.exists(sfn):
                if os.path.exists(dfn):
                    os.remove(dfn)
                os.rename(sfn, dfn)

        dfn = f"{self.baseFilename}.1"
        if os.path.exists(dfn):
            os.remove(dfn)
        if os.path.exists(self.baseFilename):
            os.rename(self.baseFilename, dfn)

        self.lineCount = 0

        if not self.delay:
            self.stream = self._open()


# Handlers installed by setup_logging, kept so the level can change later
_logger = None
_handlers = []


def setup_logging(log_level: str = "WARNING", log_file: Optional[Path] = None, console: bool = True):
    """
    Setup logging to the rotating file plus stderr.

    The console handler only shows warnings and above unless a lower level
    is asked for; the CLI's own output goes to stdout.
    """
    global _logger, _handlers

    log_level = log_level.upper()
    _logger = logging.getLogger()
    _logger.setLevel(log_level)

    for handler in list(_handlers):
        _logger.removeHandler(handler)
        handler.close()
    _handlers = []

    formatter = logging.Formatter(
        fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level)
        console_handler.setFormatter(formatter)
        _logger.addHandler(console_handler)
        _handlers.append(console_handler)

    log_file = Path(log_file) if log_file else log_file_path()
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = LineRotatingFileHandler(
            log_file,
            maxLines=500,
            backupCount=5,
            encoding="utf-8",
        )
    except OSError as e:
        _logger.warning(f"Log file {log_file} unavailable, logging to console only: {e}")
    else:
        # The file always keeps INFO so sessions can be reconstructed afterwards
        file_handler.setLevel(min(logging.INFO, logging.getLevelName(log_level)))
        file_handler.setFormatter(formatter)
        _logger.addHandler(file_handler)
        _handlers.append(file_handler)
        _logger.setLevel(min(logging.INFO, logging.getLevelName(log_level)))

    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('httpcore').setLevel(logging.WARNING)

    _logger.debug(f"✓ Logging initialized - Level: {log_level}, File: {log_file}")


def change_log_level_runtime(new_level: str) -> bool:
    """Change the console level at runtime"""
    global _logger, _handlers

    if not _logger:
        return False

    try:
        new_level = new_level.upper()
        for handler in _handlers:
            if isinstance(handler, LineRotatingFileHandler):
                continue
            handler.setLevel(new_level)
        logging.getLogger(__name__).info(f"Log-Level changed to {new_level}")
        return True
    except ValueError as e:
        logging.getLogger(__name__).error(f"Failed to change log level: {e}")
        return False
