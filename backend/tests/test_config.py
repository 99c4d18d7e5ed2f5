import logging

from attendme.core.config import Settings, get_settings
from attendme.core.logging_config import configure_logging


def test_settings_read_prefixed_environment(monkeypatch):
    monkeypatch.setenv("ATTENDME_DATABASE_URL", "sqlite+pysqlite:///./attendme.db")
    monkeypatch.setenv("ATTENDME_QUEUE_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("ATTENDME_WATCHLIST_THRESHOLD", "60")
    monkeypatch.setenv("ATTENDME_NOTIFICATIONS_ENABLED", "false")

    settings = Settings(_env_file=None)

    assert settings.database_url == "sqlite+pysqlite:///./attendme.db"
    assert settings.queue_max_attempts == 5
    assert settings.watchlist_threshold == 60.0
    assert settings.notifications_enabled is False


def test_settings_defaults_and_normalisation():
    settings = Settings(_env_file=None, queue_max_attempts=0, log_level=" debug ")

    assert settings.queue_max_attempts == 1
    assert settings.log_level == "DEBUG"
    assert settings.queue_storage_key == "@attend_me/pending_actions"
    assert settings.watchlist_cache_max_age_hours == 24


def test_get_settings_is_cached():
    get_settings.cache_clear()
    try:
        assert get_settings() is get_settings()
    finally:
        get_settings.cache_clear()


def test_configure_logging_sets_package_level():
    configure_logging(Settings(_env_file=None, log_level="warning"))
    assert logging.getLogger("attendme").level == logging.WARNING

    configure_logging(Settings(_env_file=None, log_level="chatty"))
    assert logging.getLogger("attendme").level == logging.INFO
