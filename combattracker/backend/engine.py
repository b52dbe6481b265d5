"""Pure combat rules: resistance damage, AC interval refinement and display."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from .errors import InvalidRange, RangeConflict, ValidationError
from .models import ACRange, DamageEntry, DamageInput


RESISTANCE_TIERS = ("normal", "resistant", "vulnerable", "immune")

DAMAGE_TYPES = (
    "slashing",
    "piercing",
    "bludgeoning",
    "fire",
    "cold",
    "lightning",
    "thunder",
    "acid",
    "poison",
    "necrotic",
    "radiant",
    "psychic",
    "force",
)

AC_FLOOR = 0
AC_CEILING = 99
UNKNOWN_AC = ACRange(ac_min=AC_FLOOR, ac_max=AC_CEILING)


def actual_damage(original: int, tier: str) -> int:
    """Return the damage a monster takes from ``original`` under a resistance tier."""
    if tier == "resistant":
        return original // 2
    if tier == "vulnerable":
        return original * 2
    if tier == "immune":
        return 0
    return original


def refine_ac_range(current: ACRange, roll: int, is_hit: bool) -> ACRange:
    """Narrow the interval from one attack observation.

    A hit means AC <= roll, a miss means AC > roll. Raises ``RangeConflict``
    when the observation contradicts what is already known; ``current`` is
    never modified.
    """
    if not AC_FLOOR <= roll <= AC_CEILING:
        raise ValidationError(f"Attack roll must be between {AC_FLOOR} and {AC_CEILING}")
    new_min = current.ac_min
    new_max = current.ac_max
    if is_hit:
        new_max = roll if new_max is None else min(new_max, roll)
    else:
        new_min = max(new_min, roll)
    if new_max is not None and new_min >= new_max:
        raise RangeConflict(f"AC range conflict: {new_min} < AC <= {new_max} is empty, check the reported rolls")
    return ACRange(ac_min=new_min, ac_max=new_max)


def validate_ac_override(ac_min: int, ac_max: int) -> ACRange:
    if not (AC_FLOOR <= ac_min <= AC_CEILING and AC_FLOOR <= ac_max <= AC_CEILING):
        raise InvalidRange(f"AC bounds must be between {AC_FLOOR} and {AC_CEILING}")
    if ac_min >= ac_max:
        raise InvalidRange("AC lower bound must be below the upper bound")
    return ACRange(ac_min=ac_min, ac_max=ac_max)


def seed_ac_range(known_ac: int | None) -> ACRange:
    if known_ac is None:
        return UNKNOWN_AC
    if not 1 <= known_ac <= AC_CEILING:
        raise ValidationError(f"Known AC must be between 1 and {AC_CEILING}")
    return ACRange(ac_min=known_ac - 1, ac_max=known_ac)


def format_ac_range(ac_range: ACRange) -> str:
    if ac_range.ac_max is None:
        return f"{ac_range.ac_min} < AC"
    if ac_range.ac_min + 1 == ac_range.ac_max:
        return f"AC = {ac_range.ac_max}"
    return f"{ac_range.ac_min} < AC ≤ {ac_range.ac_max}"


def format_hp(total_damage: int, max_hp: int | None) -> str:
    """Render damage taken against max HP.

    A negative ``max_hp`` is the death sentinel: the monster died after taking
    that much damage without its real maximum ever being learned.
    """
    if max_hp is None:
        return f"{total_damage}/?"
    if max_hp < 0:
        return f"{total_damage}/≤{abs(max_hp)}"
    return f"{total_damage}/{max_hp}"


def death_sentinel(max_hp: int | None, total_damage: int) -> int | None:
    """Return the max HP to record on death, or None to leave it untouched."""
    if max_hp is None and total_damage > 0:
        return -total_damage
    return None


def validate_tier(tier: str) -> None:
    if tier not in RESISTANCE_TIERS:
        raise ValidationError(f"Unknown resistance tier: {tier}")


def validate_resistances(resistances: Mapping[str, str]) -> dict[str, str]:
    validated: dict[str, str] = {}
    for damage_type, tier in resistances.items():
        if damage_type not in DAMAGE_TYPES:
            raise ValidationError(f"Unknown damage type: {damage_type}")
        validate_tier(tier)
        validated[damage_type] = tier
    return validated


def validate_damage_input(entry: DamageInput) -> None:
    if entry.damage_type not in DAMAGE_TYPES:
        raise ValidationError(f"Unknown damage type: {entry.damage_type}")
    validate_tier(entry.resistance_tier)
    if entry.original_value < 0:
        raise ValidationError("Damage must not be negative")


def learned_resistances(known: Mapping[str, str], entries: Iterable[DamageInput]) -> dict[str, str]:
    """Return the resistances revealed by observed damage that differ from ``known``."""
    learned: dict[str, str] = {}
    for entry in entries:
        tier = entry.resistance_tier
        if tier != "normal" and known.get(entry.damage_type) != tier:
            learned[entry.damage_type] = tier
    return learned


def total_damage(entries: Iterable[DamageEntry]) -> int:
    return sum(entry.actual_value for entry in entries)
