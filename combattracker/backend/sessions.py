"""Session lifecycle and the per-session optimistic concurrency clock."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta
import logging
import random

from .errors import ExhaustedCodespace, NotFoundError, SessionEndedError, ValidationError
from .identifiers import generate_anonymous_id, generate_session_code
from .models import CombatSession
from .state import build_session, utc_now
from .store import CombatStore


logger = logging.getLogger(__name__)

DEFAULT_CODE_ATTEMPTS = 10
DEFAULT_ENDED_RETENTION = timedelta(hours=1)


class SessionRegistry:
    def __init__(
        self,
        store: CombatStore,
        clock: Callable[[], datetime] = utc_now,
        rng: random.Random | None = None,
        code_attempts: int = DEFAULT_CODE_ATTEMPTS,
        ended_retention: timedelta = DEFAULT_ENDED_RETENTION,
    ) -> None:
        self._store = store
        self._clock = clock
        self._rng = rng
        self._code_attempts = code_attempts
        self._ended_retention = ended_retention

    def create_session(self, user_id: str | None = None, anonymous_id: str | None = None) -> CombatSession:
        """Open a session owned by exactly one identity under a fresh code."""
        if user_id and anonymous_id:
            raise ValidationError("A session has either a user owner or an anonymous owner, not both")
        if not user_id and not anonymous_id:
            anonymous_id = generate_anonymous_id()

        self.purge_ended_sessions()
        code = self._unused_code()
        session = build_session(
            code=code,
            owner_user_id=user_id or None,
            owner_anonymous_id=None if user_id else anonymous_id,
            now=self._clock(),
        )
        self._store.insert_session(session)
        logger.info("Created combat session %s", code)
        return session

    def _unused_code(self) -> str:
        for _ in range(self._code_attempts):
            code = generate_session_code(self._rng)
            if self._store.get_session(code) is None:
                return code
        raise ExhaustedCodespace(f"No unused session code found after {self._code_attempts} attempts")

    def get_session(self, code: str) -> CombatSession:
        session = self._store.get_session(code)
        if session is None:
            raise NotFoundError(f"Session {code} does not exist")
        return session

    def join_session(self, code: str) -> CombatSession:
        session = self.get_session(code)
        if not session.is_active:
            raise SessionEndedError(f"Session {code} has already ended")
        return session

    def require_active(self, code: str) -> CombatSession:
        return self.join_session(code)

    def end_session(self, code: str) -> None:
        """Mark the session ended; anyone holding the code may do this.

        Writes against the ended row raise ``SessionEndedError`` until it is
        purged, with its monsters and damage, after ``ended_retention``.
        """
        session = self.join_session(code)
        if not self._store.end_session(code, self._next_timestamp(session)):
            raise SessionEndedError(f"Session {code} has already ended")
        logger.info("Ended combat session %s", code)

    def purge_ended_sessions(self) -> int:
        removed = self._store.delete_ended_sessions(self._clock() - self._ended_retention)
        if removed:
            logger.info("Purged %d ended combat sessions", removed)
        return removed

    def touch(self, code: str) -> datetime:
        """Advance the session clock; every mutation calls this exactly once."""
        now = self._next_timestamp(self.get_session(code))
        self._store.touch_session(code, now)
        return now

    def _next_timestamp(self, session: CombatSession) -> datetime:
        now = self._clock()
        if now <= session.last_updated:
            now = session.last_updated + timedelta(microseconds=1)
        return now
