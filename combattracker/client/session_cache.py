"""File-backed record of the session this client is following."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachedSession:
    code: str
    last_updated: datetime | None


class SessionCache:
    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> CachedSession | None:
        if not self.path.exists():
            return None
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
            code = str(payload["code"])
            raw_timestamp = payload.get("lastUpdated")
            last_updated = datetime.fromisoformat(raw_timestamp) if raw_timestamp else None
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Ignoring unreadable session cache %s: %s", self.path, exc)
            return None
        return CachedSession(code=code, last_updated=last_updated)

    def save(self, code: str, last_updated: datetime | None) -> CachedSession:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "code": code,
            "lastUpdated": last_updated.isoformat() if last_updated is not None else None,
        }
        self.path.write_text(json.dumps(payload), encoding="utf-8")
        return CachedSession(code=code, last_updated=last_updated)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
