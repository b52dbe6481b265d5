"""Damage records per monster and the cumulative damage derived from them."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import datetime
import logging

from .engine import actual_damage, learned_resistances, total_damage, validate_damage_input
from .errors import NotFoundError, ValidationError
from .models import DamageEntry, DamageInput, DamageUpdate, MonsterView
from .roster import MonsterRoster
from .sessions import SessionRegistry
from .state import build_damage_entries, utc_now
from .store import CombatStore


logger = logging.getLogger(__name__)


class DamageLedger:
    """Owns ``total_damage == sum(actual_value)`` for every monster.

    Adding damage increments the total. Edits and deletes always recompute it
    from the stored rows, since other clients may have written in between.
    """

    def __init__(
        self,
        store: CombatStore,
        registry: SessionRegistry,
        roster: MonsterRoster,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._registry = registry
        self._roster = roster
        self._clock = clock

    def entries_for(self, monster_id: str) -> list[DamageEntry]:
        return self._store.list_damage_entries([monster_id])

    def entries_for_many(self, monster_ids: Sequence[str]) -> list[DamageEntry]:
        return self._store.list_damage_entries(list(monster_ids))

    def add_damage(
        self,
        monster_id: str,
        entries: Sequence[DamageInput],
        shared_timestamp: datetime | None = None,
    ) -> list[DamageEntry]:
        """Record one damage submission; all of its entries share a timestamp.

        Non-normal tiers that the group did not know yet are learned and
        become visible on every monster of the same name.
        """
        if not entries:
            raise ValidationError("At least one damage entry is required")
        for entry in entries:
            validate_damage_input(entry)
        view = self._roster.resolve_active(monster_id)

        created_at = shared_timestamp if shared_timestamp is not None else self._clock()
        rows = build_damage_entries(monster_id, entries, created_at)
        self._store.insert_damage_entries(rows)
        self._store.update_instance(
            monster_id,
            {"total_damage": view.instance.total_damage + total_damage(rows)},
        )
        learned = learned_resistances(view.group.resistances, entries)
        if learned:
            self._roster.merge_resistances(view.group, learned)
            logger.info("Learned resistances for %s: %s", view.name, learned)
        self._registry.touch(view.instance.session_code)
        return rows

    def recalculate_total(self, monster_id: str) -> int:
        total = total_damage(self.entries_for(monster_id))
        self._store.update_instance(monster_id, {"total_damage": total})
        return total

    def update_damage_log_batch(self, monster_id: str, updates: Sequence[DamageUpdate]) -> int:
        """Rewrite entries, then recompute the monster's total from all of its rows."""
        for update in updates:
            validate_damage_input(_as_input(update))
        view = self._roster.resolve_active(monster_id)
        self._require_owned(monster_id, [update.log_id for update in updates])

        for update in updates:
            self._store.update_damage_entry(
                update.log_id,
                {
                    "damage_type": update.damage_type,
                    "resistance_tier": update.resistance_tier,
                    "original_value": update.original_value,
                    "actual_value": actual_damage(update.original_value, update.resistance_tier),
                },
            )
        return self._finish(view)

    def delete_damage_log_batch(self, log_ids: Sequence[str], monster_id: str) -> int:
        """Delete entries, then recompute the total from what remains."""
        view = self._roster.resolve_active(monster_id)
        self._require_owned(monster_id, log_ids)
        if log_ids:
            self._store.delete_damage_entries(list(log_ids))
        return self._finish(view)

    def edit_damage_group(self, monster_id: str, created_at: datetime, entries: Sequence[DamageInput]) -> int:
        """Replace the contents of one compound damage submission.

        Existing rows are paired with ``entries`` in order. Surplus trailing
        rows are deleted and extra entries are inserted with the group's
        timestamp so the submission still reads as one unit.
        """
        for entry in entries:
            validate_damage_input(entry)
        view = self._roster.resolve_active(monster_id)
        existing = [entry for entry in self.entries_for(monster_id) if entry.created_at == created_at]
        if not existing:
            raise NotFoundError(f"No damage recorded at {created_at.isoformat()} for monster {monster_id}")

        for row, entry in zip(existing, entries):
            self._store.update_damage_entry(
                row.id,
                {
                    "damage_type": entry.damage_type,
                    "resistance_tier": entry.resistance_tier,
                    "original_value": entry.original_value,
                    "actual_value": actual_damage(entry.original_value, entry.resistance_tier),
                },
            )
        surplus = existing[len(entries):]
        if surplus:
            self._store.delete_damage_entries([row.id for row in surplus])
        extra = entries[len(existing):]
        if extra:
            self._store.insert_damage_entries(build_damage_entries(monster_id, extra, created_at))
        return self._finish(view)

    def _require_owned(self, monster_id: str, log_ids: Sequence[str]) -> None:
        owned = {entry.id for entry in self.entries_for(monster_id)}
        missing = [log_id for log_id in log_ids if log_id not in owned]
        if missing:
            raise NotFoundError(f"Damage log(s) not found for monster {monster_id}: {', '.join(missing)}")

    def _finish(self, view: MonsterView) -> int:
        total = self.recalculate_total(view.id)
        self._registry.touch(view.instance.session_code)
        return total


def _as_input(update: DamageUpdate) -> DamageInput:
    return DamageInput(
        damage_type=update.damage_type,
        resistance_tier=update.resistance_tier,
        original_value=update.original_value,
    )
