from datetime import datetime, timezone

from combattracker.client.session_cache import CachedSession, SessionCache


def test_load_returns_none_without_file(tmp_path) -> None:
    cache = SessionCache(tmp_path / "session.json")

    assert cache.load() is None


def test_save_then_load(tmp_path) -> None:
    cache = SessionCache(tmp_path / "nested" / "session.json")
    stamp = datetime(2024, 3, 1, 18, 30, 5, 120, tzinfo=timezone.utc)

    cache.save("417", stamp)

    assert cache.load() == CachedSession(code="417", last_updated=stamp)


def test_save_without_timestamp(tmp_path) -> None:
    cache = SessionCache(tmp_path / "session.json")

    cache.save("417", None)

    assert cache.load() == CachedSession(code="417", last_updated=None)


def test_clear_removes_file_and_tolerates_missing_file(tmp_path) -> None:
    cache = SessionCache(tmp_path / "session.json")
    cache.save("417", None)

    cache.clear()
    cache.clear()

    assert cache.load() is None


def test_unreadable_cache_is_ignored(tmp_path) -> None:
    path = tmp_path / "session.json"
    path.write_text("{not json", encoding="utf-8")

    assert SessionCache(path).load() is None
