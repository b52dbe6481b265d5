"""Configuration helpers for backend and client runtime."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path


DEFAULT_CLIENT_CACHE = Path.home() / ".combattracker" / "session.json"


@dataclass(frozen=True)
class CombatSettings:
    database_url: str | None
    host: str
    port: int
    session_code_attempts: int
    ended_session_retention: timedelta
    log_level: str
    client_cache_path: Path


def load_settings() -> CombatSettings:
    port_raw = os.getenv("COMBATTRACKER_PORT", "8000")
    attempts_raw = os.getenv("COMBATTRACKER_SESSION_CODE_ATTEMPTS", "10")
    retention_raw = os.getenv("COMBATTRACKER_ENDED_SESSION_RETENTION", "3600")
    cache_raw = os.getenv("COMBATTRACKER_CLIENT_CACHE")
    return CombatSettings(
        database_url=os.getenv("COMBATTRACKER_DATABASE_URL"),
        host=os.getenv("COMBATTRACKER_HOST", "127.0.0.1"),
        port=int(port_raw),
        session_code_attempts=int(attempts_raw),
        ended_session_retention=timedelta(seconds=int(retention_raw)),
        log_level=os.getenv("COMBATTRACKER_LOG_LEVEL", "INFO").upper(),
        client_cache_path=Path(cache_raw) if cache_raw else DEFAULT_CLIENT_CACHE,
    )
