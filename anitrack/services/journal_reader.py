"""
System journal access for the detection fallback.

ani-cli logs "<title> <episode>" through logger(1) with the ani-cli tag. Only
Linux hosts with journalctl have this source.
"""
from datetime import datetime, timezone
import logging
import shutil
import subprocess
import sys
from typing import List, Optional

from anitrack.models.history import LogLine

logger = logging.getLogger(__name__)

JOURNAL_TAG = "ani-cli"


def parse_short_unix_timestamp(raw: str) -> Optional[datetime]:
    """'1772039324.974245' -> aware UTC datetime"""
    secs_raw, _, frac_raw = raw.partition(".")
    if not secs_raw.isdigit():
        return None
    digits = ""
    for ch in frac_raw:
        if not ch.isdigit():
            break
        digits += ch
    micros = int((digits + "000000")[:6])
    return datetime.fromtimestamp(int(secs_raw), tz=timezone.utc).replace(microsecond=micros)


def parse_journal_line(line: str) -> Optional[LogLine]:
    """
    Parses one journalctl --output=short-unix line.

    "1772039324.974245 fedora ani-cli[407433]: Shingeki no Kyojin 0"
    """
    ts_raw, sep, rest = line.strip().partition(" ")
    if not sep:
        return None
    timestamp = parse_short_unix_timestamp(ts_raw)
    if timestamp is None:
        return None
    _, sep, message = rest.partition(": ")
    if not sep:
        return None
    return LogLine(timestamp=timestamp, message=message.strip())


class JournalReader:
    def __init__(self, tag: str = JOURNAL_TAG, binary: str = "journalctl", timeout: float = 5.0):
        self.tag = tag
        self.binary = binary
        self.timeout = timeout

    def available(self) -> bool:
        return sys.platform.startswith("linux") and shutil.which(self.binary) is not None

    def read(self, since: datetime, until: datetime) -> Optional[List[LogLine]]:
        """Journal lines for the tag between since and until, oldest first"""
        if not self.available():
            return None

        cmd = [
            self.binary,
            "-t", self.tag,
            "--since", f"@{int(since.timestamp())}",
            "--until", f"@{int(until.timestamp()) + 1}",
            "--output=short-unix",
            "--no-pager",
        ]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning(f"journalctl lookup failed: {e}")
            return None

        if result.returncode != 0:
            logger.warning(f"journalctl exited with {result.returncode}: {result.stderr.strip()}")
            return None

        lines = []
        for raw in result.stdout.splitlines():
            parsed = parse_journal_line(raw)
            if parsed is not None:
                lines.append(parsed)
        logger.debug(f"Journal returned {len(lines)} {self.tag} line(s)")
        return lines
