"""Tests for settings loading, validation, and atomic reload."""

from __future__ import annotations

import dataclasses

import pytest

from jenkins_slack import config
from jenkins_slack.config import (
    DEFAULT_POLL_INTERVAL_S,
    Settings,
    get_settings,
    load_settings,
    reload_settings,
    validate_settings,
)
from jenkins_slack.errors import ConfigError

KEY = "0123456789abcdef"


@pytest.fixture
def env(monkeypatch):
    """A minimal valid environment; tests override single variables."""
    for name in (
        "JENKINS_PROFILE_IMAGE_URL",
        "JENKINS_POLL_INTERVAL_S",
        "JENKINS_POLL_MAX_ATTEMPTS",
        "JENKINS_POLL_TIMEOUT_S",
        "JENKINS_KV_PATH",
        "JENKINS_BOT_API_URL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("JENKINS_URL", "https://jenkins.example.com/")
    monkeypatch.setenv("JENKINS_ENCRYPTION_KEY", KEY)
    return monkeypatch


class TestLoadSettings:
    """Reading the environment into a Settings snapshot."""

    def test_defaults(self, env):
        settings = load_settings()
        assert settings.jenkins_url == "https://jenkins.example.com/"
        assert settings.base_url == "https://jenkins.example.com"
        assert settings.poll_interval_s == DEFAULT_POLL_INTERVAL_S
        assert settings.poll_max_attempts == 60
        assert settings.poll_timeout_s == 900.0
        assert settings.kv_path == ""
        assert settings.bot_api_url == "http://localhost:8000"

    def test_numeric_overrides(self, env):
        env.setenv("JENKINS_POLL_INTERVAL_S", "2.5")
        env.setenv("JENKINS_POLL_MAX_ATTEMPTS", "3")
        settings = load_settings()
        assert settings.poll_interval_s == 2.5
        assert settings.poll_max_attempts == 3

    def test_bad_number_raises(self, env):
        env.setenv("JENKINS_POLL_MAX_ATTEMPTS", "many")
        with pytest.raises(ConfigError):
            load_settings()

    def test_repr_hides_key(self, env):
        assert KEY not in repr(load_settings())

    def test_key_bytes(self, env):
        assert load_settings().key_bytes == KEY.encode("utf-8")


class TestValidateSettings:
    """Activation-time checks."""

    def _settings(self, **overrides):
        values = {"jenkins_url": "https://jenkins.example.com", "encryption_key": KEY}
        values.update(overrides)
        return Settings(**values)

    def test_valid(self):
        validate_settings(self._settings())

    def test_empty_url(self):
        with pytest.raises(ConfigError, match="Please add Jenkins URL"):
            validate_settings(self._settings(jenkins_url=""))

    def test_url_without_scheme(self):
        with pytest.raises(ConfigError, match="Please add scheme to the URL"):
            validate_settings(self._settings(jenkins_url="jenkins.example.com"))

    def test_unsupported_scheme(self):
        with pytest.raises(ConfigError):
            validate_settings(self._settings(jenkins_url="ftp://jenkins.example.com"))

    @pytest.mark.parametrize("key", ["", "short", "x" * 17, "x" * 33])
    def test_bad_key_length(self, key):
        with pytest.raises(ConfigError):
            validate_settings(self._settings(encryption_key=key))

    @pytest.mark.parametrize("key", ["x" * 16, "x" * 24, "x" * 32])
    def test_good_key_lengths(self, key):
        validate_settings(self._settings(encryption_key=key))

    def test_profile_image_needs_scheme(self):
        with pytest.raises(ConfigError):
            validate_settings(self._settings(profile_image_url="example.com/icon.png"))

    def test_non_positive_polling(self):
        with pytest.raises(ConfigError):
            validate_settings(self._settings(poll_interval_s=0))
        with pytest.raises(ConfigError):
            validate_settings(self._settings(poll_max_attempts=0))
        with pytest.raises(ConfigError):
            validate_settings(self._settings(poll_timeout_s=0))
        with pytest.raises(ConfigError):
            validate_settings(self._settings(poll_timeout_s=-5.0))


class TestReloadSettings:
    """Snapshot swapping."""

    def test_get_settings_loads_once(self, env):
        first = get_settings()
        env.setenv("JENKINS_URL", "https://other.example.com")
        assert get_settings() is first

    def test_reload_swaps_snapshot(self, env):
        first = get_settings()
        env.setenv("JENKINS_URL", "https://other.example.com")
        second = reload_settings()
        assert second is not first
        assert get_settings() is second
        assert first.base_url == "https://jenkins.example.com"

    def test_invalid_reload_keeps_previous(self, env):
        first = get_settings()
        env.setenv("JENKINS_URL", "no-scheme.example.com")
        with pytest.raises(ConfigError):
            reload_settings()
        assert get_settings() is first

    def test_reload_with_explicit_snapshot(self):
        snapshot = Settings(jenkins_url="http://ci.local:8080", encryption_key=KEY)
        assert reload_settings(snapshot) is snapshot
        assert config._active_settings is snapshot

    def test_settings_are_frozen(self, env):
        settings = load_settings()
        with pytest.raises(dataclasses.FrozenInstanceError):
            settings.jenkins_url = "https://changed.example.com"
