"""Identifier helpers for session codes and anonymous owners."""

from __future__ import annotations

import random
import secrets
import string
import time


SESSION_CODE_MIN = 100
SESSION_CODE_MAX = 999
ANONYMOUS_ID_PREFIX = "anon_"

_BASE36 = string.digits + string.ascii_lowercase


def generate_session_code(rng: random.Random | None = None) -> str:
    """Sample a three digit session code."""
    source = rng if rng is not None else random
    return str(source.randint(SESSION_CODE_MIN, SESSION_CODE_MAX))


def to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits: list[str] = []
    while value > 0:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def generate_anonymous_id() -> str:
    """Generate an owner id for participants without an account."""
    timestamp = to_base36(int(time.time() * 1000))
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"{ANONYMOUS_ID_PREFIX}{timestamp}_{suffix}"
