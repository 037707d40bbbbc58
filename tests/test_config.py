from sharedcache.config import Settings, get_settings


def test_defaults():
    settings = Settings()
    assert settings.default_timeout_ms == 3_000
    assert settings.timeout_reason == "SharedCache get function timeout"
    assert settings.default_cache_name == "default"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("SHAREDCACHE_DEFAULT_TIMEOUT_MS", "250")
    monkeypatch.setenv("SHAREDCACHE_DEFAULT_CACHE_NAME", "sessions")
    settings = Settings()
    assert settings.default_timeout_ms == 250
    assert settings.default_cache_name == "sessions"


def test_get_settings_is_cached():
    assert get_settings() is get_settings()
