import pytest
from pydantic import ValidationError

from vibecheck import config


@pytest.fixture(autouse=True)
def clear_settings_cache(monkeypatch, tmp_path):
    config.get_settings.cache_clear()
    monkeypatch.chdir(tmp_path)
    for name in (
        "DEBUG",
        "GEMINI_API_KEY",
        "ON_DEVICE_ENABLED",
        "ON_DEVICE_MODEL",
        "CLOUD_API_BASE_URL",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    yield
    config.get_settings.cache_clear()


def test_defaults_match_runtime_expectations():
    settings = config.Settings(_env_file=None)

    assert settings.gemini_api_key is None
    assert settings.on_device_enabled is True
    assert settings.capability_probe_timeout == 2.0
    assert settings.session_create_timeout == 3.0
    assert settings.reprobe_interval_seconds == 30.0
    assert settings.credential_key == "geminiApiKey"
    assert settings.credential_store_path.endswith("credentials.json")


def test_environment_overrides_are_applied(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "AIza-test-key")
    monkeypatch.setenv("ON_DEVICE_ENABLED", "off")
    monkeypatch.setenv("CLOUD_API_BASE_URL", "https://example.test/v1beta/")

    settings = config.get_settings()

    assert settings.gemini_api_key == "AIza-test-key"
    assert settings.on_device_enabled is False
    assert settings.cloud_api_base_url == "https://example.test/v1beta"


def test_env_file_is_read(tmp_path):
    (tmp_path / ".env").write_text("ON_DEVICE_MODEL=llama3.2\nDEBUG=yes\n", encoding="utf-8")

    settings = config.get_settings()

    assert settings.on_device_model == "llama3.2"
    assert settings.debug is True


def test_blank_api_key_is_treated_as_missing(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "   ")

    assert config.get_settings().gemini_api_key is None


def test_get_settings_is_cached():
    assert config.get_settings() is config.get_settings()


@pytest.mark.parametrize("value", ["maybe", "2"])
def test_invalid_boolean_is_rejected(monkeypatch, value):
    monkeypatch.setenv("ON_DEVICE_ENABLED", value)

    with pytest.raises(ValidationError):
        config.Settings(_env_file=None)


def test_log_level_is_normalised(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "debug")
    assert config.Settings(_env_file=None).log_level == "DEBUG"

    monkeypatch.setenv("LOG_LEVEL", "chatty")
    with pytest.raises(ValidationError):
        config.Settings(_env_file=None)
