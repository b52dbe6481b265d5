"""Row builders and combat snapshots returned to clients."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from typing import Any
import uuid

from .engine import actual_damage, format_ac_range, format_hp
from .models import ACRange, CombatSession, DamageEntry, DamageInput, MonsterGroup, MonsterInstance, MonsterView


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def build_session(
    code: str,
    owner_user_id: str | None,
    owner_anonymous_id: str | None,
    now: datetime,
) -> CombatSession:
    return CombatSession(
        code=code,
        owner_user_id=owner_user_id,
        owner_anonymous_id=owner_anonymous_id,
        is_active=True,
        last_updated=now,
        created_at=now,
    )


def build_group(
    session_code: str,
    name: str,
    ac_range: ACRange,
    max_hp: int | None,
    resistances: dict[str, str],
) -> MonsterGroup:
    return MonsterGroup(
        id=str(uuid.uuid4()),
        session_code=session_code,
        name=name,
        ac_min=ac_range.ac_min,
        ac_max=ac_range.ac_max,
        max_hp=max_hp,
        resistances=dict(resistances),
    )


def build_instances(
    session_code: str,
    group_id: str,
    first_number: int,
    count: int,
    now: datetime,
) -> list[MonsterInstance]:
    return [
        MonsterInstance(
            id=str(uuid.uuid4()),
            session_code=session_code,
            group_id=group_id,
            monster_number=first_number + offset,
            total_damage=0,
            is_dead=False,
            notes=None,
            created_at=now,
        )
        for offset in range(count)
    ]


def build_damage_entries(
    monster_id: str,
    inputs: Iterable[DamageInput],
    created_at: datetime,
) -> list[DamageEntry]:
    """Create entries sharing one timestamp; actual damage is fixed here and never recomputed on read."""
    return [
        DamageEntry(
            id=str(uuid.uuid4()),
            monster_id=monster_id,
            damage_type=item.damage_type,
            resistance_tier=item.resistance_tier,
            original_value=item.original_value,
            actual_value=actual_damage(item.original_value, item.resistance_tier),
            created_at=created_at,
        )
        for item in inputs
    ]


def session_to_dict(session: CombatSession) -> dict[str, Any]:
    return {
        "code": session.code,
        "ownerUserId": session.owner_user_id,
        "ownerAnonymousId": session.owner_anonymous_id,
        "isActive": session.is_active,
        "lastUpdated": session.last_updated.isoformat(),
        "createdAt": session.created_at.isoformat(),
    }


def damage_entry_to_dict(entry: DamageEntry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "monsterId": entry.monster_id,
        "damageType": entry.damage_type,
        "resistanceTier": entry.resistance_tier,
        "originalValue": entry.original_value,
        "actualValue": entry.actual_value,
        "createdAt": entry.created_at.isoformat(),
    }


def monster_to_dict(view: MonsterView, entries: Sequence[DamageEntry] = ()) -> dict[str, Any]:
    instance = view.instance
    group = view.group
    return {
        "id": instance.id,
        "sessionCode": instance.session_code,
        "groupId": group.id,
        "monsterNumber": instance.monster_number,
        "name": group.name,
        "acMin": group.ac_min,
        "acMax": group.ac_max,
        "maxHp": group.max_hp,
        "resistances": dict(group.resistances),
        "totalDamage": instance.total_damage,
        "isDead": instance.is_dead,
        "notes": instance.notes,
        "acDisplay": format_ac_range(group.ac_range),
        "hpDisplay": format_hp(instance.total_damage, group.max_hp),
        "damageLogs": [damage_entry_to_dict(entry) for entry in entries],
    }


def build_combat_data(
    session: CombatSession,
    monsters: Sequence[MonsterView],
    entries: Iterable[DamageEntry],
) -> dict[str, Any]:
    """Return the full snapshot a client renders after a (re)fetch."""
    entries_by_monster: dict[str, list[DamageEntry]] = {}
    for entry in entries:
        entries_by_monster.setdefault(entry.monster_id, []).append(entry)
    return {
        "session": session_to_dict(session),
        "monsters": [monster_to_dict(view, entries_by_monster.get(view.id, [])) for view in monsters],
    }
