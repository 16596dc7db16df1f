"""
Harmonic key mapping using the Camelot wheel.

Catalog features report key as a pitch class (0=C ... 11=B) and mode as
0 (minor) / 1 (major). Both are mapped onto Camelot notation (1A ... 12B),
where relative major/minor keys share a wheel number.
"""

import logging
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

PITCH_CLASS_NAMES = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]
MODE_NAMES = ["minor", "major"]

# Mapping from standard key notation to Camelot notation
STANDARD_TO_CAMELOT_MAJOR = {
    "C": "8B",
    "C#": "3B",
    "D": "10B",
    "D#": "5B",
    "E": "12B",
    "F": "7B",
    "F#": "2B",
    "G": "9B",
    "G#": "4B",
    "A": "11B",
    "A#": "6B",
    "B": "1B",
}

STANDARD_TO_CAMELOT_MINOR = {
    "C": "5A",
    "C#": "12A",
    "D": "7A",
    "D#": "2A",
    "E": "9A",
    "F": "4A",
    "F#": "11A",
    "G": "6A",
    "G#": "1A",
    "A": "8A",
    "A#": "3A",
    "B": "10A",
}

WHEEL_SIZE = 12


def _note_and_mode(key, mode) -> Optional[Tuple[str, str]]:
    if isinstance(key, bool) or isinstance(mode, bool):
        return None
    try:
        key_idx = int(key)
        mode_idx = int(mode)
    except (TypeError, ValueError):
        return None
    if key_idx != key or mode_idx != mode:
        return None
    if not (0 <= key_idx < len(PITCH_CLASS_NAMES)) or mode_idx not in (0, 1):
        return None
    return PITCH_CLASS_NAMES[key_idx], MODE_NAMES[mode_idx]


def camelot_key(key, mode) -> Optional[str]:
    """
    Convert a (pitch class, mode) pair to Camelot notation.

    Args:
        key: Pitch class 0-11 (anything else means key detection failed)
        mode: 0 for minor, 1 for major

    Returns:
        Camelot key such as "8B", or None when key/mode is undetected
    """
    parsed = _note_and_mode(key, mode)
    if parsed is None:
        return None
    note, mode_name = parsed
    mapping = STANDARD_TO_CAMELOT_MAJOR if mode_name == "major" else STANDARD_TO_CAMELOT_MINOR
    return mapping[note]


def key_label(key, mode) -> str:
    """Human-readable key label, e.g. "F# minor" or "Unknown"."""
    parsed = _note_and_mode(key, mode)
    if parsed is None:
        return "Unknown"
    return f"{parsed[0]} {parsed[1]}"


def parse_camelot(camelot: str) -> Tuple[int, str]:
    """
    Split Camelot notation into wheel number and letter.

    Raises:
        ValueError: If the notation is malformed
    """
    number, letter = int(camelot[:-1]), camelot[-1].upper()
    if not (1 <= number <= WHEEL_SIZE) or letter not in ("A", "B"):
        raise ValueError(f"Invalid Camelot key: {camelot}")
    return number, letter


def camelot_distance(number1: int, number2: int) -> int:
    """Circular distance between two wheel positions (0-6)."""
    diff = abs(number1 - number2) % WHEEL_SIZE
    return min(diff, WHEEL_SIZE - diff)
