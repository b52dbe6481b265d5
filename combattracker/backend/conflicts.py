"""Stale-view detection for clients that poll a shared session."""

from __future__ import annotations

from datetime import datetime
import logging

from .errors import TransientStoreError
from .models import ConflictCheck
from .store import CombatStore


logger = logging.getLogger(__name__)


class ConflictDetector:
    def __init__(self, store: CombatStore) -> None:
        self._store = store

    def check_version_conflict(self, code: str, client_last_updated: datetime) -> ConflictCheck:
        """Compare a client's last seen timestamp with the session's.

        Read only. A missing session or a failed lookup counts as a conflict so
        callers never keep trusting a cached view they cannot verify.
        """
        try:
            session = self._store.get_session(code)
        except TransientStoreError as exc:
            logger.warning("Version check for session %s failed, treating as conflict: %s", code, exc)
            return ConflictCheck(has_conflict=True, is_active=None)

        if session is None:
            return ConflictCheck(has_conflict=True, is_active=False)

        return ConflictCheck(
            has_conflict=session.last_updated > client_last_updated,
            is_active=session.is_active,
            latest_timestamp=session.last_updated,
        )
