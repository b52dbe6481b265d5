"""Domain models for combat sessions, monsters and damage records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class CombatSession:
    code: str
    owner_user_id: str | None
    owner_anonymous_id: str | None
    is_active: bool
    last_updated: datetime
    created_at: datetime


@dataclass(frozen=True)
class ACRange:
    """Open-closed interval ``ac_min < AC <= ac_max``; ``ac_max`` None means unbounded."""

    ac_min: int
    ac_max: int | None


@dataclass(frozen=True)
class MonsterGroup:
    id: str
    session_code: str
    name: str
    ac_min: int
    ac_max: int | None
    max_hp: int | None
    resistances: dict[str, str] = field(default_factory=dict)

    @property
    def ac_range(self) -> ACRange:
        return ACRange(ac_min=self.ac_min, ac_max=self.ac_max)


@dataclass(frozen=True)
class MonsterInstance:
    id: str
    session_code: str
    group_id: str
    monster_number: int
    total_damage: int
    is_dead: bool
    notes: str | None
    created_at: datetime


@dataclass(frozen=True)
class MonsterView:
    """A monster instance with its group's shared attributes applied."""

    instance: MonsterInstance
    group: MonsterGroup

    @property
    def id(self) -> str:
        return self.instance.id

    @property
    def name(self) -> str:
        return self.group.name


@dataclass(frozen=True)
class DamageEntry:
    id: str
    monster_id: str
    damage_type: str
    resistance_tier: str
    original_value: int
    actual_value: int
    created_at: datetime


@dataclass(frozen=True)
class DamageInput:
    damage_type: str
    resistance_tier: str
    original_value: int


@dataclass(frozen=True)
class DamageUpdate:
    log_id: str
    damage_type: str
    resistance_tier: str
    original_value: int


@dataclass(frozen=True)
class ConflictCheck:
    has_conflict: bool
    is_active: bool | None
    latest_timestamp: datetime | None = None


@dataclass(frozen=True)
class OperationResult:
    success: bool
    error: str | None = None
    error_code: str | None = None
    value: Any = None
