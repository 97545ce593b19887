"""Sanitizers for client supplied values (names, letters, counts, codes)."""
import math
import random
import re
import string

ID_ALPHABET = 'ABCDEFGHJKLMNPQRSTUVWXYZ23456789'
ROOM_CODE_LENGTH = 5
PLAYER_ID_LENGTH = 8
MAX_NAME_LENGTH = 24
MIN_ROUNDS = 1
MAX_ROUNDS = 10

_WHITESPACE = re.compile(r"\s+")


def make_id(length, rng=random):
    return ''.join(rng.choice(ID_ALPHABET) for _ in range(length))


def to_number(value, default=None):
    """float(value) for finite numbers and numeric strings, else ``default``."""
    if isinstance(value, bool):
        return default
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    return parsed if math.isfinite(parsed) else default


def sanitize_name(name, fallback='Player'):
    if not isinstance(name, str):
        return fallback
    cleaned = _WHITESPACE.sub(' ', name.strip())
    return cleaned[:MAX_NAME_LENGTH] if cleaned else fallback


def sanitize_letter(letter):
    """First character of the input as an uppercase A-Z letter, or None."""
    if not isinstance(letter, str) or not letter.strip():
        return None
    first = letter.strip()[0].upper()
    return first if first in string.ascii_uppercase else None


def clamp_round_count(value, default=5):
    parsed = to_number(value)
    if parsed is None:
        return default
    return max(MIN_ROUNDS, min(MAX_ROUNDS, int(math.floor(parsed))))


def normalize_room_code(value):
    return str(value or '').strip().upper()
