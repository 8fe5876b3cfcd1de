"""
Episode label helpers

ani-cli labels episodes with free-form strings: "0", "12", "13.5" (recaps and
OVAs). These helpers turn labels into ordinals and back without losing the
original spelling.
"""
import math
import re
from typing import List, Optional, Tuple

_EPSILON = 0.000_001

_TOTAL_EPISODES_RE = re.compile(r"^(?P<title>.*?)\s*\(\s*(?P<total>\d+)\s+episodes\s*\)$")
_PUNCTUATION_RE = re.compile(r"[!\"#$%&'()*+,\-./:;<=>?@\[\\\]^_`{|}~]")


def parse_episode_ordinal(label: Optional[str]) -> Optional[float]:
    """Returns the numeric value of an episode label, or None"""
    if label is None:
        return None
    text = label.strip()
    if not text:
        return None
    try:
        value = float(text)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value


def is_effective_integer(value: float) -> bool:
    return abs(value - round(value)) < _EPSILON


def format_episode_label(value: float) -> Optional[str]:
    """
    Formats an ordinal back into a display label.

    13.0 -> "13", 13.5 -> "13.5". Negative or non-finite values have no label.
    """
    if value is None or not math.isfinite(value) or value < 0:
        return None
    if is_effective_integer(value):
        return str(int(round(value)))
    return f"{value:.6f}".rstrip("0").rstrip(".")


def episode_labels_match(left: str, right: str) -> bool:
    a = (left or "").strip()
    b = (right or "").strip()
    if a == b:
        return True
    x = parse_episode_ordinal(a)
    y = parse_episode_ordinal(b)
    if x is None or y is None:
        return False
    return abs(x - y) < _EPSILON


def episode_sort_key(label: str) -> Tuple[int, float, str]:
    # Numeric labels first in numeric order, the rest alphabetically after them
    value = parse_episode_ordinal(label)
    if value is None:
        return (1, 0.0, label)
    return (0, value, label)


def sort_episode_labels(labels: List[str]) -> List[str]:
    return sorted(labels, key=episode_sort_key)


def find_episode_index(label: str, episodes: List[str]) -> Optional[int]:
    for idx, candidate in enumerate(episodes):
        if episode_labels_match(candidate, label):
            return idx
    return None


def parse_title_and_total_eps(title: str) -> Tuple[str, Optional[int]]:
    """
    Splits "Naruto (220 episodes)" into ("Naruto", 220).

    Also accepts the missing-space variant "Naruto(220 episodes)".
    """
    trimmed = (title or "").strip()
    match = _TOTAL_EPISODES_RE.match(trimmed)
    if not match:
        return trimmed, None
    return match.group("title").strip(), int(match.group("total"))


def sanitize_title_for_search(title: str) -> str:
    """Title without the trailing episode-count parenthetical"""
    trimmed = (title or "").strip()
    open_idx = trimmed.rfind("(")
    if open_idx != -1 and trimmed.endswith(")") and "episodes" in trimmed[open_idx:]:
        return trimmed[:open_idx].strip()
    return trimmed


def normalize_title_for_match(raw: str) -> str:
    base = parse_title_and_total_eps(raw)[0].lower()
    cleaned = "".join(ch if ch.isalnum() or ch.isspace() else " " for ch in base)
    return " ".join(cleaned.split())


def normalize_log_key(raw: str) -> str:
    """Drops ASCII punctuation and collapses whitespace"""
    return " ".join(_PUNCTUATION_RE.sub("", raw or "").split())


def history_log_key(title: str, episode_label: str) -> str:
    """
    Key ani-cli writes to the journal for a history line.

    ani-cli logs "<title> <episode>" without the "(N episodes)" suffix; the
    title may be glued to the parenthetical ("Naruto(220 episodes)").
    """
    title_prefix = (title or "").split("(", 1)[0]
    return normalize_log_key(f"{title_prefix} {(episode_label or '').strip()}")
