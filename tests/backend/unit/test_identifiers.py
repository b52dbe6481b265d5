import random
import re

from combattracker.backend.identifiers import generate_anonymous_id, generate_session_code, to_base36


def test_generate_session_code_is_three_digits() -> None:
    rng = random.Random(3)

    codes = {generate_session_code(rng) for _ in range(200)}

    assert all(re.fullmatch(r"[1-9]\d\d", code) for code in codes)


def test_to_base36() -> None:
    assert to_base36(0) == "0"
    assert to_base36(35) == "z"
    assert to_base36(36) == "10"


def test_generate_anonymous_id_format() -> None:
    first = generate_anonymous_id()
    second = generate_anonymous_id()

    assert re.fullmatch(r"anon_[0-9a-z]+_[0-9a-z]{9}", first)
    assert first != second
