"""Function-call boundary used by the HTTP layer and other callers."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from datetime import datetime, timedelta, timezone
import random
from typing import Any

from .conflicts import ConflictDetector
from .engine import format_ac_range
from .errors import CombatError
from .ledger import DamageLedger
from .models import ACRange, DamageInput, DamageUpdate, OperationResult
from .roster import UNSET, MonsterRoster
from .sessions import DEFAULT_CODE_ATTEMPTS, DEFAULT_ENDED_RETENTION, SessionRegistry
from .state import build_combat_data, monster_to_dict, session_to_dict, utc_now
from .store import CombatStore


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _ac_to_dict(ac_range: ACRange) -> dict[str, Any]:
    return {"acMin": ac_range.ac_min, "acMax": ac_range.ac_max, "acDisplay": format_ac_range(ac_range)}


class CombatService:
    """Expected failures come back as unsuccessful ``OperationResult``s.

    Store outages (``TransientStoreError``) and programming errors propagate.
    """

    def __init__(
        self,
        store: CombatStore,
        clock: Callable[[], datetime] = utc_now,
        rng: random.Random | None = None,
        code_attempts: int = DEFAULT_CODE_ATTEMPTS,
        ended_retention: timedelta = DEFAULT_ENDED_RETENTION,
    ) -> None:
        self.sessions = SessionRegistry(
            store, clock=clock, rng=rng, code_attempts=code_attempts, ended_retention=ended_retention
        )
        self.roster = MonsterRoster(store, self.sessions, clock=clock)
        self.ledger = DamageLedger(store, self.sessions, self.roster, clock=clock)
        self.conflicts = ConflictDetector(store)

    def _run(self, operation: Callable[[], Any]) -> OperationResult:
        try:
            value = operation()
        except CombatError as exc:
            return OperationResult(success=False, error=str(exc), error_code=exc.code)
        return OperationResult(success=True, value=value)

    def _monster_snapshot(self, monster_id: str) -> dict[str, Any]:
        return monster_to_dict(self.roster.resolve(monster_id), self.ledger.entries_for(monster_id))

    def create_session(self, user_id: str | None = None, anonymous_id: str | None = None) -> OperationResult:
        return self._run(lambda: session_to_dict(self.sessions.create_session(user_id, anonymous_id)))

    def join_session(self, code: str) -> OperationResult:
        return self._run(lambda: session_to_dict(self.sessions.join_session(code)))

    def get_combat_data(self, code: str) -> OperationResult:
        def load() -> dict[str, Any]:
            session = self.sessions.get_session(code)
            if not session.is_active:
                return build_combat_data(session, [], [])
            monsters = self.roster.list_monsters(code)
            entries = self.ledger.entries_for_many([view.id for view in monsters])
            return build_combat_data(session, monsters, entries)

        return self._run(load)

    def check_version_conflict(self, code: str, client_last_updated: datetime) -> OperationResult:
        check = self.conflicts.check_version_conflict(code, _as_utc(client_last_updated))
        return OperationResult(
            success=True,
            value={
                "hasConflict": check.has_conflict,
                "isActive": check.is_active,
                "latestTimestamp": check.latest_timestamp.isoformat() if check.latest_timestamp else None,
            },
        )

    def end_session(self, code: str) -> OperationResult:
        return self._run(lambda: self.sessions.end_session(code))

    def add_monsters(
        self,
        code: str,
        name: str,
        count: int,
        known_ac: int | None = None,
        known_max_hp: int | None = None,
        resistances: Mapping[str, str] | None = None,
    ) -> OperationResult:
        def add() -> list[dict[str, Any]]:
            views = self.roster.add_monsters(code, name, count, known_ac, known_max_hp, resistances)
            return [monster_to_dict(view) for view in views]

        return self._run(add)

    def mark_dead(self, monster_id: str) -> OperationResult:
        def kill() -> dict[str, Any]:
            self.roster.mark_dead(monster_id)
            return self._monster_snapshot(monster_id)

        return self._run(kill)

    def report_attack(self, monster_id: str, roll: int, is_hit: bool) -> OperationResult:
        return self._run(lambda: _ac_to_dict(self.roster.report_attack(monster_id, roll, is_hit)))

    def set_ac_range(self, monster_id: str, ac_min: int, ac_max: int) -> OperationResult:
        return self._run(lambda: _ac_to_dict(self.roster.set_ac_range(monster_id, ac_min, ac_max)))

    def update_group_attribute(
        self,
        monster_id: str,
        ac_range: ACRange | None = None,
        max_hp: int | None | object = UNSET,
        resistances: Mapping[str, str] | None = None,
    ) -> OperationResult:
        def update() -> dict[str, Any]:
            self.roster.update_group_attribute(monster_id, ac_range=ac_range, max_hp=max_hp, resistances=resistances)
            return self._monster_snapshot(monster_id)

        return self._run(update)

    def rename_group(self, monster_id: str, new_name: str) -> OperationResult:
        def rename() -> dict[str, Any]:
            self.roster.rename_group(monster_id, new_name)
            return self._monster_snapshot(monster_id)

        return self._run(rename)

    def update_instance_notes(self, monster_id: str, notes: str | None) -> OperationResult:
        def update() -> dict[str, Any]:
            self.roster.update_instance_notes(monster_id, notes)
            return self._monster_snapshot(monster_id)

        return self._run(update)

    def add_damage(
        self,
        monster_id: str,
        entries: Sequence[DamageInput],
        shared_timestamp: datetime | None = None,
    ) -> OperationResult:
        def add() -> dict[str, Any]:
            timestamp = _as_utc(shared_timestamp) if shared_timestamp is not None else None
            self.ledger.add_damage(monster_id, entries, timestamp)
            return self._monster_snapshot(monster_id)

        return self._run(add)

    def update_damage_log_batch(self, monster_id: str, updates: Sequence[DamageUpdate]) -> OperationResult:
        def update() -> dict[str, Any]:
            self.ledger.update_damage_log_batch(monster_id, updates)
            return self._monster_snapshot(monster_id)

        return self._run(update)

    def delete_damage_log_batch(self, log_ids: Sequence[str], monster_id: str) -> OperationResult:
        def delete() -> dict[str, Any]:
            self.ledger.delete_damage_log_batch(log_ids, monster_id)
            return self._monster_snapshot(monster_id)

        return self._run(delete)

    def edit_damage_group(
        self,
        monster_id: str,
        created_at: datetime,
        entries: Sequence[DamageInput],
    ) -> OperationResult:
        def edit() -> dict[str, Any]:
            self.ledger.edit_damage_group(monster_id, _as_utc(created_at), entries)
            return self._monster_snapshot(monster_id)

        return self._run(edit)
