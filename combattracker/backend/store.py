"""Persistence interfaces and implementations for combat data."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime
import json
import logging
from typing import Any, Protocol
import uuid

from .errors import TransientStoreError
from .models import CombatSession, DamageEntry, MonsterGroup, MonsterInstance


logger = logging.getLogger(__name__)

GROUP_COLUMNS = ("name", "ac_min", "ac_max", "max_hp", "resistances")
INSTANCE_COLUMNS = ("total_damage", "is_dead", "notes")
DAMAGE_COLUMNS = ("damage_type", "resistance_tier", "original_value", "actual_value")


def _check_columns(changes: dict[str, Any], allowed: tuple[str, ...]) -> None:
    unknown = set(changes) - set(allowed)
    if unknown:
        raise ValueError(f"Unsupported columns: {sorted(unknown)}")


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


class CombatStore(Protocol):
    def insert_session(self, session: CombatSession) -> None:
        """Persist a new session row."""

    def get_session(self, code: str) -> CombatSession | None:
        """Return the session with this code, active or not."""

    def touch_session(self, code: str, last_updated: datetime) -> None:
        """Set the session's last mutation timestamp."""

    def end_session(self, code: str, ended_at: datetime) -> bool:
        """Mark an active session ended; return False when no active session matched."""

    def delete_ended_sessions(self, before: datetime) -> int:
        """Delete sessions ended before ``before`` with their groups, monsters and damage entries."""

    def insert_group(self, group: MonsterGroup) -> None:
        """Persist a new monster group."""

    def get_group(self, session_code: str, name: str) -> MonsterGroup | None:
        """Return the group for a monster name within a session."""

    def get_group_by_id(self, group_id: str) -> MonsterGroup | None:
        """Return a group by primary key."""

    def update_group(self, group_id: str, changes: dict[str, Any]) -> None:
        """Overwrite shared attributes of a group."""

    def insert_instances(self, instances: Sequence[MonsterInstance]) -> None:
        """Persist new monster instances."""

    def get_instance(self, monster_id: str) -> MonsterInstance | None:
        """Return a monster instance by primary key."""

    def list_instances(self, session_code: str, include_dead: bool = False) -> list[MonsterInstance]:
        """Return instances of a session ordered by monster number."""

    def max_monster_number(self, session_code: str) -> int:
        """Return the highest monster number ever assigned in a session, or 0."""

    def update_instance(self, monster_id: str, changes: dict[str, Any]) -> None:
        """Overwrite per-instance columns."""

    def insert_damage_entries(self, entries: Sequence[DamageEntry]) -> None:
        """Persist damage entries."""

    def list_damage_entries(self, monster_ids: Sequence[str]) -> list[DamageEntry]:
        """Return entries of the given monsters ordered by timestamp, then insertion."""

    def update_damage_entry(self, entry_id: str, changes: dict[str, Any]) -> None:
        """Overwrite one damage entry."""

    def delete_damage_entries(self, entry_ids: Sequence[str]) -> int:
        """Delete damage entries and return how many were removed."""


@dataclass
class InMemoryCombatStore:
    def __post_init__(self) -> None:
        self._sessions: dict[str, CombatSession] = {}
        self._groups: dict[str, MonsterGroup] = {}
        self._instances: dict[str, MonsterInstance] = {}
        self._damage: dict[str, DamageEntry] = {}

    def insert_session(self, session: CombatSession) -> None:
        if session.code in self._sessions:
            raise ValueError(f"Session code already in use: {session.code}")
        self._sessions[session.code] = session

    def get_session(self, code: str) -> CombatSession | None:
        return self._sessions.get(code)

    def touch_session(self, code: str, last_updated: datetime) -> None:
        session = self._sessions.get(code)
        if session is not None:
            self._sessions[code] = replace(session, last_updated=last_updated)

    def end_session(self, code: str, ended_at: datetime) -> bool:
        session = self._sessions.get(code)
        if session is None or not session.is_active:
            return False
        self._sessions[code] = replace(session, is_active=False, last_updated=ended_at)
        return True

    def delete_ended_sessions(self, before: datetime) -> int:
        expired = [
            code
            for code, session in self._sessions.items()
            if not session.is_active and session.last_updated < before
        ]
        for code in expired:
            self._drop_session(code)
        return len(expired)

    def _drop_session(self, code: str) -> None:
        del self._sessions[code]
        monster_ids = {key for key, instance in self._instances.items() if instance.session_code == code}
        self._damage = {key: entry for key, entry in self._damage.items() if entry.monster_id not in monster_ids}
        self._instances = {key: value for key, value in self._instances.items() if key not in monster_ids}
        self._groups = {key: group for key, group in self._groups.items() if group.session_code != code}

    def insert_group(self, group: MonsterGroup) -> None:
        self._groups[group.id] = group

    def get_group(self, session_code: str, name: str) -> MonsterGroup | None:
        for group in self._groups.values():
            if group.session_code == session_code and group.name == name:
                return group
        return None

    def get_group_by_id(self, group_id: str) -> MonsterGroup | None:
        return self._groups.get(group_id)

    def update_group(self, group_id: str, changes: dict[str, Any]) -> None:
        _check_columns(changes, GROUP_COLUMNS)
        group = self._groups.get(group_id)
        if group is not None:
            self._groups[group_id] = replace(group, **changes)

    def insert_instances(self, instances: Sequence[MonsterInstance]) -> None:
        for instance in instances:
            self._instances[instance.id] = instance

    def get_instance(self, monster_id: str) -> MonsterInstance | None:
        return self._instances.get(monster_id)

    def list_instances(self, session_code: str, include_dead: bool = False) -> list[MonsterInstance]:
        instances = [
            instance
            for instance in self._instances.values()
            if instance.session_code == session_code and (include_dead or not instance.is_dead)
        ]
        return sorted(instances, key=lambda instance: instance.monster_number)

    def max_monster_number(self, session_code: str) -> int:
        numbers = [
            instance.monster_number for instance in self._instances.values() if instance.session_code == session_code
        ]
        return max(numbers, default=0)

    def update_instance(self, monster_id: str, changes: dict[str, Any]) -> None:
        _check_columns(changes, INSTANCE_COLUMNS)
        instance = self._instances.get(monster_id)
        if instance is not None:
            self._instances[monster_id] = replace(instance, **changes)

    def insert_damage_entries(self, entries: Sequence[DamageEntry]) -> None:
        for entry in entries:
            self._damage[entry.id] = entry

    def list_damage_entries(self, monster_ids: Sequence[str]) -> list[DamageEntry]:
        wanted = set(monster_ids)
        entries = [entry for entry in self._damage.values() if entry.monster_id in wanted]
        return sorted(entries, key=lambda entry: entry.created_at)

    def update_damage_entry(self, entry_id: str, changes: dict[str, Any]) -> None:
        _check_columns(changes, DAMAGE_COLUMNS)
        entry = self._damage.get(entry_id)
        if entry is not None:
            self._damage[entry_id] = replace(entry, **changes)

    def delete_damage_entries(self, entry_ids: Sequence[str]) -> int:
        removed = 0
        for entry_id in entry_ids:
            if self._damage.pop(entry_id, None) is not None:
                removed += 1
        return removed


_SESSION_SELECT = """
    SELECT code, owner_user_id, owner_anonymous_id, is_active, last_updated, created_at
    FROM combat_sessions
"""

_GROUP_SELECT = """
    SELECT id, session_code, name, ac_min, ac_max, max_hp, resistances
    FROM monster_groups
"""

_INSTANCE_SELECT = """
    SELECT id, session_code, group_id, monster_number, total_damage, is_dead, notes, created_at
    FROM monster_instances
"""

_DAMAGE_SELECT = """
    SELECT id, monster_id, damage_type, resistance_tier, original_value, actual_value, created_at
    FROM damage_entries
"""


def _session_from_row(row: Sequence[Any]) -> CombatSession:
    code, owner_user_id, owner_anonymous_id, is_active, last_updated, created_at = row
    return CombatSession(
        code=code,
        owner_user_id=owner_user_id,
        owner_anonymous_id=owner_anonymous_id,
        is_active=bool(is_active),
        last_updated=last_updated,
        created_at=created_at,
    )


def _group_from_row(row: Sequence[Any]) -> MonsterGroup:
    group_id, session_code, name, ac_min, ac_max, max_hp, resistances = row
    if isinstance(resistances, str):
        resistances = json.loads(resistances)
    return MonsterGroup(
        id=str(group_id),
        session_code=session_code,
        name=name,
        ac_min=ac_min,
        ac_max=ac_max,
        max_hp=max_hp,
        resistances=dict(resistances or {}),
    )


def _instance_from_row(row: Sequence[Any]) -> MonsterInstance:
    monster_id, session_code, group_id, monster_number, total_damage, is_dead, notes, created_at = row
    return MonsterInstance(
        id=str(monster_id),
        session_code=session_code,
        group_id=str(group_id),
        monster_number=monster_number,
        total_damage=total_damage,
        is_dead=bool(is_dead),
        notes=notes,
        created_at=created_at,
    )


def _damage_from_row(row: Sequence[Any]) -> DamageEntry:
    entry_id, monster_id, damage_type, resistance_tier, original_value, actual_value, created_at = row
    return DamageEntry(
        id=str(entry_id),
        monster_id=str(monster_id),
        damage_type=damage_type,
        resistance_tier=resistance_tier,
        original_value=original_value,
        actual_value=actual_value,
        created_at=created_at,
    )


def _assignments(changes: dict[str, Any], allowed: tuple[str, ...]) -> tuple[str, list[Any]]:
    _check_columns(changes, allowed)
    clauses: list[str] = []
    params: list[Any] = []
    for column, value in changes.items():
        if column == "resistances":
            clauses.append(f"{column} = %s::jsonb")
            params.append(json.dumps(value))
        else:
            clauses.append(f"{column} = %s")
            params.append(value)
    return ", ".join(clauses), params


@dataclass
class PostgresCombatStore:
    database_url: str

    def _connect(self) -> Any:
        import psycopg

        return psycopg.connect(self.database_url)

    @contextmanager
    def _cursor(self, commit: bool = False) -> Iterator[Any]:
        """Yield a cursor on a fresh connection; connection-level failures become ``TransientStoreError``."""
        import psycopg

        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    yield cur
                if commit:
                    conn.commit()
        except (psycopg.OperationalError, psycopg.InterfaceError) as exc:
            logger.warning("Database operation failed: %s", exc)
            raise TransientStoreError(str(exc)) from exc

    def _fetchone(self, sql: str, params: tuple) -> Any:
        with self._cursor() as cur:
            cur.execute(sql, params)
            return cur.fetchone()

    def _fetchall(self, sql: str, params: tuple) -> list[Any]:
        with self._cursor() as cur:
            cur.execute(sql, params)
            return list(cur.fetchall())

    def _execute(self, sql: str, params: tuple) -> int:
        with self._cursor(commit=True) as cur:
            cur.execute(sql, params)
            rowcount = cur.rowcount
        return rowcount

    def insert_session(self, session: CombatSession) -> None:
        self._execute(
            """
            INSERT INTO combat_sessions (code, owner_user_id, owner_anonymous_id, is_active, last_updated, created_at)
            VALUES (%s, %s, %s, %s, %s, %s)
            """,
            (
                session.code,
                session.owner_user_id,
                session.owner_anonymous_id,
                session.is_active,
                session.last_updated,
                session.created_at,
            ),
        )

    def get_session(self, code: str) -> CombatSession | None:
        row = self._fetchone(_SESSION_SELECT + " WHERE code = %s", (code,))
        return None if row is None else _session_from_row(row)

    def touch_session(self, code: str, last_updated: datetime) -> None:
        self._execute("UPDATE combat_sessions SET last_updated = %s WHERE code = %s", (last_updated, code))

    def end_session(self, code: str, ended_at: datetime) -> bool:
        updated = self._execute(
            "UPDATE combat_sessions SET is_active = FALSE, last_updated = %s WHERE code = %s AND is_active",
            (ended_at, code),
        )
        return updated > 0

    def delete_ended_sessions(self, before: datetime) -> int:
        # Groups, monsters and damage entries go with the session through ON DELETE CASCADE.
        return self._execute(
            "DELETE FROM combat_sessions WHERE is_active = FALSE AND last_updated < %s",
            (before,),
        )

    def insert_group(self, group: MonsterGroup) -> None:
        self._execute(
            """
            INSERT INTO monster_groups (id, session_code, name, ac_min, ac_max, max_hp, resistances)
            VALUES (%s, %s, %s, %s, %s, %s, %s::jsonb)
            """,
            (
                group.id,
                group.session_code,
                group.name,
                group.ac_min,
                group.ac_max,
                group.max_hp,
                json.dumps(group.resistances),
            ),
        )

    def get_group(self, session_code: str, name: str) -> MonsterGroup | None:
        row = self._fetchone(_GROUP_SELECT + " WHERE session_code = %s AND name = %s", (session_code, name))
        return None if row is None else _group_from_row(row)

    def get_group_by_id(self, group_id: str) -> MonsterGroup | None:
        if not _is_uuid(group_id):
            return None
        row = self._fetchone(_GROUP_SELECT + " WHERE id = %s", (group_id,))
        return None if row is None else _group_from_row(row)

    def update_group(self, group_id: str, changes: dict[str, Any]) -> None:
        clause, params = _assignments(changes, GROUP_COLUMNS)
        self._execute(f"UPDATE monster_groups SET {clause} WHERE id = %s", (*params, group_id))

    def insert_instances(self, instances: Sequence[MonsterInstance]) -> None:
        with self._cursor(commit=True) as cur:
            for instance in instances:
                cur.execute(
                    """
                    INSERT INTO monster_instances
                        (id, session_code, group_id, monster_number, total_damage, is_dead, notes, created_at)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    """,
                    (
                        instance.id,
                        instance.session_code,
                        instance.group_id,
                        instance.monster_number,
                        instance.total_damage,
                        instance.is_dead,
                        instance.notes,
                        instance.created_at,
                    ),
                )

    def get_instance(self, monster_id: str) -> MonsterInstance | None:
        if not _is_uuid(monster_id):
            return None
        row = self._fetchone(_INSTANCE_SELECT + " WHERE id = %s", (monster_id,))
        return None if row is None else _instance_from_row(row)

    def list_instances(self, session_code: str, include_dead: bool = False) -> list[MonsterInstance]:
        sql = _INSTANCE_SELECT + " WHERE session_code = %s"
        if not include_dead:
            sql += " AND is_dead = FALSE"
        rows = self._fetchall(sql + " ORDER BY monster_number", (session_code,))
        return [_instance_from_row(row) for row in rows]

    def max_monster_number(self, session_code: str) -> int:
        row = self._fetchone(
            "SELECT COALESCE(MAX(monster_number), 0) FROM monster_instances WHERE session_code = %s",
            (session_code,),
        )
        return int(row[0]) if row is not None else 0

    def update_instance(self, monster_id: str, changes: dict[str, Any]) -> None:
        clause, params = _assignments(changes, INSTANCE_COLUMNS)
        self._execute(f"UPDATE monster_instances SET {clause} WHERE id = %s", (*params, monster_id))

    def insert_damage_entries(self, entries: Sequence[DamageEntry]) -> None:
        with self._cursor(commit=True) as cur:
            for entry in entries:
                cur.execute(
                    """
                    INSERT INTO damage_entries
                        (id, monster_id, damage_type, resistance_tier, original_value, actual_value, created_at)
                    VALUES (%s, %s, %s, %s, %s, %s, %s)
                    """,
                    (
                        entry.id,
                        entry.monster_id,
                        entry.damage_type,
                        entry.resistance_tier,
                        entry.original_value,
                        entry.actual_value,
                        entry.created_at,
                    ),
                )

    def list_damage_entries(self, monster_ids: Sequence[str]) -> list[DamageEntry]:
        if not monster_ids:
            return []
        rows = self._fetchall(
            _DAMAGE_SELECT + " WHERE monster_id = ANY(%s) ORDER BY created_at, seq",
            (list(monster_ids),),
        )
        return [_damage_from_row(row) for row in rows]

    def update_damage_entry(self, entry_id: str, changes: dict[str, Any]) -> None:
        clause, params = _assignments(changes, DAMAGE_COLUMNS)
        self._execute(f"UPDATE damage_entries SET {clause} WHERE id = %s", (*params, entry_id))

    def delete_damage_entries(self, entry_ids: Sequence[str]) -> int:
        if not entry_ids:
            return 0
        return self._execute("DELETE FROM damage_entries WHERE id = ANY(%s)", (list(entry_ids),))


def create_store(database_url: str | None) -> CombatStore:
    if database_url:
        return PostgresCombatStore(database_url=database_url)
    return InMemoryCombatStore()
