from datetime import datetime

import pytest

from combattracker.backend.errors import TransientStoreError
from combattracker.backend.models import DamageInput, DamageUpdate
from combattracker.backend.service import CombatService
from combattracker.backend.store import InMemoryCombatStore


class _UnavailableStore(InMemoryCombatStore):
    def get_session(self, code: str):
        raise TransientStoreError("connection refused")


def _start(service) -> str:
    result = service.create_session()
    assert result.success is True
    return result.value["code"]


def test_failures_come_back_as_results(service) -> None:
    missing = service.join_session("999")
    code = _start(service)
    invalid = service.add_monsters(code, name="", count=1)

    assert missing.success is False
    assert missing.error_code == "not_found"
    assert invalid.success is False
    assert invalid.error_code == "validation"
    assert invalid.error


def test_range_conflict_maps_to_conflict_code(service) -> None:
    code = _start(service)
    goblin = service.add_monsters(code, name="Goblin", count=1, known_ac=15).value[0]

    result = service.report_attack(goblin["id"], roll=14, is_hit=True)

    assert result.success is False
    assert result.error_code == "conflict"


def test_get_combat_data_returns_rendered_monsters(service) -> None:
    code = _start(service)
    first, second = service.add_monsters(code, name="Goblin", count=2).value
    service.set_ac_range(first["id"], 0, 15)
    service.report_attack(second["id"], roll=10, is_hit=False)
    service.add_damage(first["id"], [DamageInput("fire", "resistant", 10)])

    data = service.get_combat_data(code).value

    assert data["session"]["code"] == code
    goblin_one, goblin_two = data["monsters"]
    assert goblin_one["acDisplay"] == "10 < AC ≤ 15"
    assert goblin_one["hpDisplay"] == "5/?"
    assert goblin_one["damageLogs"][0]["actualValue"] == 5
    assert goblin_two["resistances"] == {"fire": "resistant"}
    assert goblin_two["damageLogs"] == []


def test_dead_monster_shows_lower_bound_and_leaves_snapshot(service) -> None:
    code = _start(service)
    first, second = service.add_monsters(code, name="Goblin", count=2).value
    service.add_damage(first["id"], [DamageInput("slashing", "normal", 12)])

    dead = service.mark_dead(first["id"]).value
    monsters = service.get_combat_data(code).value["monsters"]

    assert dead["isDead"] is True
    assert dead["hpDisplay"] == "12/≤12"
    assert [monster["id"] for monster in monsters] == [second["id"]]
    assert monsters[0]["maxHp"] == -12


def test_conflict_detected_after_another_client_writes(service) -> None:
    code = _start(service)
    goblin = service.add_monsters(code, name="Goblin", count=1).value[0]
    seen = datetime.fromisoformat(service.get_combat_data(code).value["session"]["lastUpdated"])

    quiet = service.check_version_conflict(code, seen).value
    service.add_damage(goblin["id"], [DamageInput("piercing", "normal", 4)])
    changed = service.check_version_conflict(code, seen).value

    assert quiet["hasConflict"] is False
    assert changed["hasConflict"] is True
    assert changed["isActive"] is True
    assert datetime.fromisoformat(changed["latestTimestamp"]) > seen


def test_check_version_accepts_naive_timestamp(service) -> None:
    code = _start(service)

    result = service.check_version_conflict(code, datetime(2000, 1, 1))

    assert result.value["hasConflict"] is True


def test_end_session_hides_monsters_and_reports_inactive(service) -> None:
    code = _start(service)
    goblin = service.add_monsters(code, name="Goblin", count=1).value[0]
    service.add_damage(goblin["id"], [DamageInput("fire", "normal", 3)])
    seen = service.get_combat_data(code).value["session"]["lastUpdated"]

    ended = service.end_session(code)
    snapshot = service.get_combat_data(code).value
    version = service.check_version_conflict(code, datetime.fromisoformat(seen)).value

    assert ended.success is True
    assert snapshot["session"]["isActive"] is False
    assert snapshot["monsters"] == []
    assert version["isActive"] is False
    assert version["hasConflict"] is True
    assert service.join_session(code).error_code == "conflict"
    assert service.end_session(code).error_code == "conflict"


def test_writes_after_end_session_are_conflicts(service) -> None:
    code = _start(service)
    goblin = service.add_monsters(code, name="Goblin", count=1).value[0]
    service.end_session(code)

    damaged = service.add_damage(goblin["id"], [DamageInput("fire", "normal", 3)])
    killed = service.mark_dead(goblin["id"])
    added = service.add_monsters(code, name="Orc", count=1)

    for result in (damaged, killed, added):
        assert result.success is False
        assert result.error_code == "conflict"


def test_damage_log_edits_return_updated_monster(service) -> None:
    code = _start(service)
    goblin = service.add_monsters(code, name="Goblin", count=1).value[0]
    monster = service.add_damage(goblin["id"], [DamageInput("fire", "normal", 10)]).value
    log = monster["damageLogs"][0]

    updated = service.update_damage_log_batch(
        goblin["id"],
        [DamageUpdate(log_id=log["id"], damage_type="fire", resistance_tier="vulnerable", original_value=10)],
    ).value
    deleted = service.delete_damage_log_batch([log["id"]], goblin["id"]).value

    assert updated["totalDamage"] == 20
    assert deleted["totalDamage"] == 0
    assert deleted["damageLogs"] == []


def test_edit_damage_group_accepts_naive_timestamp(service) -> None:
    code = _start(service)
    goblin = service.add_monsters(code, name="Goblin", count=1).value[0]
    monster = service.add_damage(
        goblin["id"],
        [DamageInput("slashing", "normal", 6), DamageInput("fire", "normal", 4)],
    ).value
    created_at = datetime.fromisoformat(monster["damageLogs"][0]["createdAt"]).replace(tzinfo=None)

    edited = service.edit_damage_group(goblin["id"], created_at, [DamageInput("slashing", "normal", 8)]).value

    assert edited["totalDamage"] == 8
    assert len(edited["damageLogs"]) == 1


def test_group_attribute_rename_and_notes(service) -> None:
    code = _start(service)
    first, second = service.add_monsters(code, name="Goblin", count=2).value

    service.update_group_attribute(first["id"], max_hp=7)
    service.rename_group(first["id"], "Hobgoblin")
    noted = service.update_instance_notes(second["id"], "prone").value

    assert noted["name"] == "Hobgoblin"
    assert noted["maxHp"] == 7
    assert noted["notes"] == "prone"
    assert noted["hpDisplay"] == "0/7"


def test_store_outage_propagates() -> None:
    service = CombatService(_UnavailableStore())

    with pytest.raises(TransientStoreError):
        service.join_session("123")
