"""Tests for shiftcal/settings_manager.py"""

import json

import pytest

from shiftcal.errors import ConfigurationError
from shiftcal.settings_manager import (
    DEFAULT_SETTINGS,
    get_credential,
    get_model,
    load_settings,
    resolve_timezone,
)


class TestLoadSettings:

    def test_defaults_without_file(self):
        assert load_settings() == DEFAULT_SETTINGS

    def test_merges_known_keys_only(self, isolated_env):
        path = isolated_env / "settings.json"
        path.write_text(json.dumps({"timezone": "UTC", "reminder_minutes": 15, "colour": "red"}), encoding="utf-8")

        settings = load_settings()

        assert settings["timezone"] == "UTC"
        assert settings["reminder_minutes"] == 15
        assert "colour" not in settings
        assert settings["provider"] == "gemini"

    def test_unreadable_file_falls_back(self, isolated_env):
        (isolated_env / "settings.json").write_text("{broken", encoding="utf-8")

        assert load_settings() == DEFAULT_SETTINGS

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("SHIFTCAL_PROVIDER", "OpenAI")
        monkeypatch.setenv("SHIFTCAL_TIMEZONE", "Europe/Paris")

        settings = load_settings()

        assert settings["provider"] == "openai"
        assert settings["timezone"] == "Europe/Paris"
        assert get_model(settings) == "gpt-4o-mini"

    def test_unknown_provider_defaults_to_gemini(self, monkeypatch):
        monkeypatch.setenv("SHIFTCAL_PROVIDER", "llama")

        assert load_settings()["provider"] == "gemini"

    def test_model_from_file(self, isolated_env):
        (isolated_env / "settings.json").write_text(json.dumps({"model": "gemini-2.0-flash"}), encoding="utf-8")

        assert get_model(load_settings()) == "gemini-2.0-flash"

    @pytest.mark.parametrize("key, value", [
        ("timezone", 9),
        ("timezone", "   "),
        ("provider", ["openai"]),
        ("model", 4),
        ("reminder_minutes", "30"),
        ("reminder_minutes", True),
        ("reminder_minutes", -5),
        ("request_timeout", "fast"),
        ("request_timeout", 0),
        ("default_title", None),
    ])
    def test_wrong_type_keeps_default(self, isolated_env, key, value):
        """Should ignore a file value of the wrong type and keep the default."""
        (isolated_env / "settings.json").write_text(json.dumps({key: value}), encoding="utf-8")

        assert load_settings()[key] == DEFAULT_SETTINGS[key]

    def test_wrong_type_does_not_discard_other_keys(self, isolated_env):
        (isolated_env / "settings.json").write_text(
            json.dumps({"timezone": 9, "reminder_minutes": 15, "request_timeout": 12.5}), encoding="utf-8"
        )

        settings = load_settings()

        assert settings["timezone"] == "Asia/Tokyo"
        assert settings["reminder_minutes"] == 15
        assert settings["request_timeout"] == 12.5

    @pytest.mark.parametrize("value", ["", "   "])
    def test_blank_env_overrides_are_ignored(self, monkeypatch, value):
        monkeypatch.setenv("SHIFTCAL_TIMEZONE", value)
        monkeypatch.setenv("SHIFTCAL_PROVIDER", value)

        settings = load_settings()

        assert settings["timezone"] == "Asia/Tokyo"
        assert settings["provider"] == "gemini"


class TestCredentials:

    def test_reads_env(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", " abc123 ")

        assert get_credential("gemini") == "abc123"

    def test_expo_variable_is_accepted(self, monkeypatch):
        monkeypatch.setenv("EXPO_PUBLIC_GEMINI_API_KEY", "abc123")

        assert get_credential("gemini") == "abc123"

    @pytest.mark.parametrize("value", ["", "your_key_here", "YOUR_API_KEY"])
    def test_placeholder_is_not_configured(self, monkeypatch, value):
        monkeypatch.setenv("GEMINI_API_KEY", value)

        with pytest.raises(ConfigurationError):
            get_credential("gemini")

    def test_missing_is_not_configured(self):
        with pytest.raises(ConfigurationError):
            get_credential("openai")


class TestResolveTimezone:

    def test_iana_name(self):
        name, tzinfo = resolve_timezone("Asia/Tokyo")

        assert name == "Asia/Tokyo"
        assert tzinfo is not None

    def test_default_from_settings(self):
        assert resolve_timezone()[0] == "Asia/Tokyo"

    def test_local_uses_tzlocal(self, monkeypatch):
        monkeypatch.setattr("shiftcal.settings_manager.tzlocal.get_localzone_name", lambda: "Europe/London")

        assert resolve_timezone("local")[0] == "Europe/London"

    def test_unknown_zone(self):
        with pytest.raises(ConfigurationError):
            resolve_timezone("Mars/Olympus_Mons")

    @pytest.mark.parametrize("name", ["", "   "])
    def test_blank_name(self, name):
        with pytest.raises(ConfigurationError):
            resolve_timezone(name)

    def test_non_string_name(self):
        with pytest.raises(ConfigurationError):
            resolve_timezone(9)

    def test_blank_env_override_resolves_default(self, monkeypatch):
        monkeypatch.setenv("SHIFTCAL_TIMEZONE", " ")

        assert resolve_timezone()[0] == "Asia/Tokyo"

    def test_non_string_file_value_resolves_default(self, isolated_env):
        (isolated_env / "settings.json").write_text(json.dumps({"timezone": 9}), encoding="utf-8")

        assert resolve_timezone()[0] == "Asia/Tokyo"
