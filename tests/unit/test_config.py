"""Test ClientSettings loading and the reconnect policy."""

import pytest

from esclient.core.config import ClientSettings, load_settings
from esclient.core.errors import ConfigError


class TestSettingsDefaults:
    def test_default_settings(self):
        settings = ClientSettings()
        assert settings.url == "ws://localhost:8080"
        assert settings.auto_reconnect is True
        assert settings.reconnect_interval == 5.0
        assert settings.max_reconnect_attempts is None
        assert settings.heartbeat is None

    def test_observability_defaults(self):
        settings = ClientSettings()
        assert settings.observability.log_level == "INFO"
        assert settings.observability.log_format == "console"

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("ESCLIENT_URL", "ws://relay.example:9000")
        monkeypatch.setenv("ESCLIENT_MAX_RECONNECT_ATTEMPTS", "3")
        monkeypatch.setenv("ESCLIENT_OBSERVABILITY__LOG_LEVEL", "DEBUG")
        settings = ClientSettings()
        assert settings.url == "ws://relay.example:9000"
        assert settings.max_reconnect_attempts == 3
        assert settings.observability.log_level == "DEBUG"


class TestReconnectPolicy:
    def test_unbounded(self):
        assert ClientSettings().reconnect_allowed(10_000)

    def test_bounded(self):
        settings = ClientSettings(max_reconnect_attempts=2)
        assert settings.reconnect_allowed(0)
        assert settings.reconnect_allowed(1)
        assert not settings.reconnect_allowed(2)

    def test_disabled(self):
        assert not ClientSettings(auto_reconnect=False).reconnect_allowed(0)


class TestLoadSettings:
    def test_load_from_toml(self, tmp_path):
        path = tmp_path / "client.toml"
        path.write_text(
            'url = "ws://toml.example:8080"\n'
            "reconnect_interval = 0.5\n"
            "\n"
            "[observability]\n"
            'log_format = "json"\n'
        )
        settings = load_settings(path)
        assert settings.url == "ws://toml.example:8080"
        assert settings.reconnect_interval == 0.5
        assert settings.observability.log_format == "json"

    def test_overrides_applied_on_top(self, tmp_path):
        path = tmp_path / "client.toml"
        path.write_text('url = "ws://a:1"\n')
        settings = load_settings(path, overrides={"url": "ws://b:2"})
        assert settings.url == "ws://b:2"

    def test_missing_file_uses_defaults(self, tmp_path):
        settings = load_settings(tmp_path / "absent.toml")
        assert settings.url == "ws://localhost:8080"

    def test_invalid_toml_raises(self, tmp_path):
        path = tmp_path / "bad.toml"
        path.write_text("url = \n")
        with pytest.raises(ConfigError):
            load_settings(path)

    def test_invalid_value_raises(self):
        with pytest.raises(ConfigError):
            load_settings(overrides={"reconnect_interval": -1})
