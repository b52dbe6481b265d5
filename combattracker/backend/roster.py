"""Monster instances within a session and the groups they share state through."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime
import logging

from .engine import death_sentinel, refine_ac_range, seed_ac_range, validate_ac_override, validate_resistances
from .errors import ConflictError, NotFoundError, RangeConflict, ValidationError
from .models import ACRange, MonsterGroup, MonsterInstance, MonsterView
from .sessions import SessionRegistry
from .state import build_group, build_instances, utc_now
from .store import CombatStore


logger = logging.getLogger(__name__)

MAX_MONSTERS_PER_ADD = 99

UNSET = object()


def _clean_name(name: str) -> str:
    cleaned = name.strip()
    if not cleaned:
        raise ValidationError("Monster name must not be empty")
    return cleaned


def _validate_max_hp(max_hp: int | None) -> None:
    if max_hp is not None and max_hp < 1:
        raise ValidationError("Max HP must be at least 1")


class MonsterRoster:
    """Adds, resolves and updates monsters.

    Every instance references a ``MonsterGroup`` keyed by (session, name).
    AC, max HP and resistances live on the group, so a write through any
    instance is seen by all of its siblings. Notes are per instance.
    """

    def __init__(
        self,
        store: CombatStore,
        registry: SessionRegistry,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._registry = registry
        self._clock = clock

    def resolve(self, monster_id: str) -> MonsterView:
        instance = self._store.get_instance(monster_id)
        if instance is None:
            raise NotFoundError(f"Monster {monster_id} does not exist")
        group = self._store.get_group_by_id(instance.group_id)
        if group is None:
            raise NotFoundError(f"Monster group for {monster_id} does not exist")
        return MonsterView(instance=instance, group=group)

    def resolve_active(self, monster_id: str) -> MonsterView:
        """Resolve a monster for writing; its session must still be running."""
        view = self.resolve(monster_id)
        self._registry.require_active(view.instance.session_code)
        return view

    def list_monsters(self, session_code: str, include_dead: bool = False) -> list[MonsterView]:
        groups: dict[str, MonsterGroup | None] = {}
        views: list[MonsterView] = []
        for instance in self._store.list_instances(session_code, include_dead=include_dead):
            if instance.group_id not in groups:
                groups[instance.group_id] = self._store.get_group_by_id(instance.group_id)
            group = groups[instance.group_id]
            if group is not None:
                views.append(MonsterView(instance=instance, group=group))
        return views

    def add_monsters(
        self,
        session_code: str,
        name: str,
        count: int,
        known_ac: int | None = None,
        known_max_hp: int | None = None,
        resistances: Mapping[str, str] | None = None,
    ) -> list[MonsterView]:
        """Add ``count`` monsters named ``name``.

        When the session already has monsters with that name the new ones join
        the existing group and the supplied AC, HP and resistances are ignored.
        """
        cleaned = _clean_name(name)
        if not 1 <= count <= MAX_MONSTERS_PER_ADD:
            raise ValidationError(f"Monster count must be between 1 and {MAX_MONSTERS_PER_ADD}")
        ac_range = seed_ac_range(known_ac)
        _validate_max_hp(known_max_hp)
        known_resistances = validate_resistances(resistances or {})
        self._registry.require_active(session_code)

        group = self._store.get_group(session_code, cleaned)
        if group is None:
            group = build_group(
                session_code=session_code,
                name=cleaned,
                ac_range=ac_range,
                max_hp=known_max_hp,
                resistances=known_resistances,
            )
            self._store.insert_group(group)

        first_number = self._store.max_monster_number(session_code) + 1
        instances = build_instances(
            session_code=session_code,
            group_id=group.id,
            first_number=first_number,
            count=count,
            now=self._clock(),
        )
        self._store.insert_instances(instances)
        self._registry.touch(session_code)
        return [MonsterView(instance=instance, group=group) for instance in instances]

    def mark_dead(self, monster_id: str) -> MonsterView:
        """Soft-delete a monster, recording a lower bound on max HP when it was unknown."""
        view = self.resolve_active(monster_id)
        if view.instance.is_dead:
            raise ConflictError(f"Monster {monster_id} is already dead")

        sentinel = death_sentinel(view.group.max_hp, view.instance.total_damage)
        if sentinel is not None:
            self._store.update_group(view.group.id, {"max_hp": sentinel})
        self._store.update_instance(monster_id, {"is_dead": True})
        self._registry.touch(view.instance.session_code)
        logger.info("Monster %s #%s died", view.name, view.instance.monster_number)
        return self.resolve(monster_id)

    def report_attack(self, monster_id: str, roll: int, is_hit: bool) -> ACRange:
        view = self.resolve_active(monster_id)
        try:
            refined = refine_ac_range(view.group.ac_range, roll, is_hit)
        except RangeConflict:
            logger.info("Rejected contradictory attack report on %s: roll %s hit=%s", view.name, roll, is_hit)
            raise
        self._write_ac_range(view, refined)
        return refined

    def set_ac_range(self, monster_id: str, ac_min: int, ac_max: int) -> ACRange:
        ac_range = validate_ac_override(ac_min, ac_max)
        view = self.resolve_active(monster_id)
        self._write_ac_range(view, ac_range)
        return ac_range

    def _write_ac_range(self, view: MonsterView, ac_range: ACRange) -> None:
        self._store.update_group(view.group.id, {"ac_min": ac_range.ac_min, "ac_max": ac_range.ac_max})
        self._registry.touch(view.instance.session_code)

    def update_group_attribute(
        self,
        monster_id: str,
        ac_range: ACRange | None = None,
        max_hp: int | None | object = UNSET,
        resistances: Mapping[str, str] | None = None,
    ) -> MonsterGroup:
        """Apply shared attribute changes to the monster's whole group.

        Resistances are merged into the known map. ``max_hp=None`` forgets a
        previously known value.
        """
        if ac_range is None and max_hp is UNSET and resistances is None:
            raise ValidationError("No attribute to update")

        changes: dict[str, object] = {}
        if ac_range is not None:
            if ac_range.ac_max is None:
                raise ValidationError("An AC override needs an upper bound")
            validated = validate_ac_override(ac_range.ac_min, ac_range.ac_max)
            changes["ac_min"] = validated.ac_min
            changes["ac_max"] = validated.ac_max
        if max_hp is not UNSET:
            if max_hp is not None and (isinstance(max_hp, bool) or not isinstance(max_hp, int)):
                raise ValidationError("Max HP must be a whole number")
            _validate_max_hp(max_hp)
            changes["max_hp"] = max_hp
        merged_input = validate_resistances(resistances) if resistances is not None else None

        view = self.resolve_active(monster_id)
        if merged_input is not None:
            changes["resistances"] = {**view.group.resistances, **merged_input}
        self._store.update_group(view.group.id, changes)
        self._registry.touch(view.instance.session_code)
        return self.resolve(monster_id).group

    def merge_resistances(self, group: MonsterGroup, learned: Mapping[str, str]) -> None:
        """Record newly observed resistances on a group; the caller touches the session."""
        if learned:
            self._store.update_group(group.id, {"resistances": {**group.resistances, **learned}})

    def rename_group(self, monster_id: str, new_name: str) -> MonsterGroup:
        cleaned = _clean_name(new_name)
        view = self.resolve_active(monster_id)
        if cleaned == view.group.name:
            return view.group
        if self._store.get_group(view.instance.session_code, cleaned) is not None:
            raise ValidationError(f"A monster named {cleaned} already exists in this session")
        self._store.update_group(view.group.id, {"name": cleaned})
        self._registry.touch(view.instance.session_code)
        return self.resolve(monster_id).group

    def update_instance_notes(self, monster_id: str, notes: str | None) -> MonsterInstance:
        """Set notes on this instance only; siblings keep their own."""
        view = self.resolve_active(monster_id)
        cleaned = notes.strip() if notes is not None else None
        self._store.update_instance(monster_id, {"notes": cleaned or None})
        self._registry.touch(view.instance.session_code)
        return self.resolve(monster_id).instance
