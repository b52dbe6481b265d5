import random

import pytest

from combattracker.backend.engine import (
    UNKNOWN_AC,
    actual_damage,
    death_sentinel,
    format_ac_range,
    format_hp,
    learned_resistances,
    refine_ac_range,
    seed_ac_range,
    total_damage,
    validate_ac_override,
    validate_damage_input,
    validate_resistances,
)
from combattracker.backend.errors import InvalidRange, RangeConflict, ValidationError
from combattracker.backend.models import ACRange, DamageInput
from combattracker.backend.state import build_damage_entries, utc_now


@pytest.mark.parametrize(
    ("original", "tier", "expected"),
    [
        (10, "normal", 10),
        (10, "resistant", 5),
        (7, "resistant", 3),
        (10, "vulnerable", 20),
        (10, "immune", 0),
        (0, "vulnerable", 0),
    ],
)
def test_actual_damage_applies_tier(original: int, tier: str, expected: int) -> None:
    assert actual_damage(original, tier) == expected


def test_refine_ac_range_narrows_lower_bound_on_miss() -> None:
    refined = refine_ac_range(ACRange(ac_min=0, ac_max=15), roll=10, is_hit=False)

    assert refined == ACRange(ac_min=10, ac_max=15)


def test_refine_ac_range_narrows_upper_bound_on_hit() -> None:
    refined = refine_ac_range(ACRange(ac_min=10, ac_max=15), roll=12, is_hit=True)

    assert refined == ACRange(ac_min=10, ac_max=12)


def test_refine_ac_range_ignores_uninformative_observations() -> None:
    current = ACRange(ac_min=10, ac_max=15)

    assert refine_ac_range(current, roll=18, is_hit=True) == current
    assert refine_ac_range(current, roll=4, is_hit=False) == current


def test_refine_ac_range_sets_upper_bound_when_unbounded() -> None:
    refined = refine_ac_range(ACRange(ac_min=5, ac_max=None), roll=8, is_hit=True)

    assert refined == ACRange(ac_min=5, ac_max=8)


def test_refine_ac_range_rejects_contradiction_without_changing_input() -> None:
    current = ACRange(ac_min=10, ac_max=15)

    with pytest.raises(RangeConflict):
        refine_ac_range(current, roll=10, is_hit=True)

    assert current == ACRange(ac_min=10, ac_max=15)


def test_refine_ac_range_rejects_roll_outside_bounds() -> None:
    with pytest.raises(ValidationError):
        refine_ac_range(UNKNOWN_AC, roll=100, is_hit=True)


def test_validate_ac_override_requires_non_empty_interval() -> None:
    assert validate_ac_override(3, 9) == ACRange(ac_min=3, ac_max=9)
    with pytest.raises(InvalidRange):
        validate_ac_override(12, 12)
    with pytest.raises(InvalidRange):
        validate_ac_override(-1, 9)


def test_seed_ac_range_pins_known_armor_class() -> None:
    assert seed_ac_range(None) == UNKNOWN_AC
    assert seed_ac_range(15) == ACRange(ac_min=14, ac_max=15)
    with pytest.raises(ValidationError):
        seed_ac_range(0)


def test_format_ac_range_variants() -> None:
    assert format_ac_range(ACRange(ac_min=10, ac_max=15)) == "10 < AC ≤ 15"
    assert format_ac_range(ACRange(ac_min=14, ac_max=15)) == "AC = 15"
    assert format_ac_range(ACRange(ac_min=10, ac_max=None)) == "10 < AC"


def test_format_hp_variants() -> None:
    assert format_hp(5, None) == "5/?"
    assert format_hp(5, 20) == "5/20"
    assert format_hp(12, -12) == "12/≤12"


def test_death_sentinel_only_records_unknown_max_hp_with_damage() -> None:
    assert death_sentinel(None, 12) == -12
    assert death_sentinel(None, 0) is None
    assert death_sentinel(30, 12) is None


def test_learned_resistances_reports_new_non_normal_tiers() -> None:
    entries = [
        DamageInput(damage_type="fire", resistance_tier="resistant", original_value=10),
        DamageInput(damage_type="cold", resistance_tier="normal", original_value=4),
        DamageInput(damage_type="poison", resistance_tier="immune", original_value=6),
    ]

    learned = learned_resistances({"poison": "immune"}, entries)

    assert learned == {"fire": "resistant"}


def test_validate_damage_input_rejects_unknown_values() -> None:
    with pytest.raises(ValidationError):
        validate_damage_input(DamageInput(damage_type="banana", resistance_tier="normal", original_value=1))
    with pytest.raises(ValidationError):
        validate_damage_input(DamageInput(damage_type="fire", resistance_tier="halved", original_value=1))
    with pytest.raises(ValidationError):
        validate_damage_input(DamageInput(damage_type="fire", resistance_tier="normal", original_value=-3))


def test_validate_resistances_rejects_unknown_damage_type() -> None:
    assert validate_resistances({"fire": "immune"}) == {"fire": "immune"}
    with pytest.raises(ValidationError):
        validate_resistances({"laser": "immune"})


def test_total_damage_sums_actual_values() -> None:
    entries = build_damage_entries(
        "m-1",
        [
            DamageInput(damage_type="fire", resistance_tier="resistant", original_value=10),
            DamageInput(damage_type="slashing", resistance_tier="normal", original_value=7),
        ],
        utc_now(),
    )

    assert total_damage(entries) == 12


def test_refine_ac_range_random_reports_keep_a_non_empty_interval() -> None:
    rng = random.Random(20240301)
    for _ in range(50):
        current = UNKNOWN_AC
        for _ in range(40):
            roll = rng.randint(0, 30)
            is_hit = rng.random() < 0.5
            try:
                refined = refine_ac_range(current, roll, is_hit)
            except RangeConflict:
                continue
            assert current.ac_min <= refined.ac_min < refined.ac_max <= current.ac_max
            current = refined
        assert current.ac_min < current.ac_max
