from datetime import timedelta
from pathlib import Path

from combattracker.backend.config import DEFAULT_CLIENT_CACHE, load_settings


def test_load_settings_reads_expected_env(monkeypatch) -> None:
    monkeypatch.setenv("COMBATTRACKER_DATABASE_URL", "postgresql://local")
    monkeypatch.setenv("COMBATTRACKER_HOST", "localhost")
    monkeypatch.setenv("COMBATTRACKER_PORT", "9000")
    monkeypatch.setenv("COMBATTRACKER_SESSION_CODE_ATTEMPTS", "25")
    monkeypatch.setenv("COMBATTRACKER_ENDED_SESSION_RETENTION", "90")
    monkeypatch.setenv("COMBATTRACKER_LOG_LEVEL", "debug")
    monkeypatch.setenv("COMBATTRACKER_CLIENT_CACHE", "/tmp/combat.json")

    settings = load_settings()

    assert settings.database_url == "postgresql://local"
    assert settings.host == "localhost"
    assert settings.port == 9000
    assert settings.session_code_attempts == 25
    assert settings.ended_session_retention == timedelta(seconds=90)
    assert settings.log_level == "DEBUG"
    assert settings.client_cache_path == Path("/tmp/combat.json")


def test_load_settings_applies_defaults(monkeypatch) -> None:
    for name in (
        "COMBATTRACKER_DATABASE_URL",
        "COMBATTRACKER_HOST",
        "COMBATTRACKER_PORT",
        "COMBATTRACKER_SESSION_CODE_ATTEMPTS",
        "COMBATTRACKER_ENDED_SESSION_RETENTION",
        "COMBATTRACKER_LOG_LEVEL",
        "COMBATTRACKER_CLIENT_CACHE",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = load_settings()

    assert settings.database_url is None
    assert settings.host == "127.0.0.1"
    assert settings.port == 8000
    assert settings.session_code_attempts == 10
    assert settings.ended_session_retention == timedelta(hours=1)
    assert settings.log_level == "INFO"
    assert settings.client_cache_path == DEFAULT_CLIENT_CACHE
