"""
Application settings management.

Settings (model provider, time zone, reminder offset, ...) are read from a JSON
file merged over defaults. Credentials are never stored in the file; they come
from the environment only.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Literal, Optional, Tuple, TypedDict

import tzlocal
from dateutil import tz as dateutil_tz

from shiftcal.errors import ConfigurationError
from shiftcal.logging_helper import Log

Provider = Literal["gemini", "openai", "stub"]


class SettingsSchema(TypedDict, total=False):
    provider: Provider
    model: Optional[str]
    timezone: str
    reminder_minutes: int
    product_id: str
    default_title: str
    request_timeout: float


DEFAULT_SETTINGS_FILE = Path.home() / ".shiftcal" / "settings.json"

DEFAULT_SETTINGS: SettingsSchema = {
    "provider": "gemini",
    "model": None,
    "timezone": "Asia/Tokyo",
    "reminder_minutes": 60,
    "product_id": "Shift Calendar App",
    "default_title": "Shift",
    "request_timeout": 30,
}

DEFAULT_MODELS = {
    "gemini": "gemini-flash-latest",
    "openai": "gpt-4o-mini",
    "stub": "stub",
}

CREDENTIAL_ENV_VARS = {
    "gemini": ("GEMINI_API_KEY", "EXPO_PUBLIC_GEMINI_API_KEY"),
    "openai": ("OPENAI_API_KEY",),
}

PLACEHOLDER_CREDENTIALS = {"", "your_key_here", "your_api_key", "changeme"}


def _has_setting_type(key: str, value: object) -> bool:
    if key == "model":
        return value is None or (isinstance(value, str) and bool(value.strip()))
    if key == "reminder_minutes":
        return isinstance(value, int) and not isinstance(value, bool) and value >= 0
    if key == "request_timeout":
        return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0
    return isinstance(value, str) and bool(value.strip())


def settings_path() -> Path:
    override = os.environ.get("SHIFTCAL_SETTINGS")
    return Path(override) if override else DEFAULT_SETTINGS_FILE


def load_settings(path: Optional[Path] = None) -> SettingsSchema:
    """
    Load settings from disk, falling back to defaults if anything fails.
    Environment overrides (SHIFTCAL_PROVIDER, SHIFTCAL_TIMEZONE) win over the file.
    """
    path = path or settings_path()
    merged: SettingsSchema = DEFAULT_SETTINGS.copy()

    if not path.exists():
        Log.info(f"Settings file not found, using defaults: {path}")
    else:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("Settings data is not a JSON object")
        except (OSError, ValueError) as err:
            Log.warn(f"Failed to read settings file ({path}): {err}")
            data = {}

        # Merge only known keys with the expected type
        for key in DEFAULT_SETTINGS:
            if key not in data:
                continue
            value = data[key]
            if not _has_setting_type(key, value):
                Log.warn(f"Invalid {key} value {value!r} in settings file, using default {DEFAULT_SETTINGS[key]!r}")
                continue
            merged[key] = value  # type: ignore[literal-required]

    provider_override = (os.environ.get("SHIFTCAL_PROVIDER") or "").strip()
    if provider_override:
        merged["provider"] = provider_override.lower()  # type: ignore[typeddict-item]
    timezone_override = (os.environ.get("SHIFTCAL_TIMEZONE") or "").strip()
    if timezone_override:
        merged["timezone"] = timezone_override

    if merged["provider"] not in DEFAULT_MODELS:
        Log.warn(f"Invalid provider value '{merged['provider']}', defaulting to gemini")
        merged["provider"] = "gemini"
    return merged


def get_model(settings: SettingsSchema) -> str:
    return settings.get("model") or DEFAULT_MODELS[settings.get("provider", "gemini")]


def is_placeholder(value: Optional[str]) -> bool:
    return value is None or value.strip().lower() in PLACEHOLDER_CREDENTIALS


def get_credential(provider: str) -> str:
    """
    Return the API key for a provider from the environment.

    Raises:
        ConfigurationError: if no variable is set or the value is a placeholder
    """
    env_vars = CREDENTIAL_ENV_VARS.get(provider, ())
    for name in env_vars:
        value = os.environ.get(name)
        if not is_placeholder(value):
            return value.strip()

    Log.kv({"stage": "config", "result": "failed", "reason": "missing_credential", "provider": provider})
    names = " or ".join(env_vars) or "an API key"
    raise ConfigurationError(f"No API key configured for {provider}: set {names}")


def _local_timezone_name() -> str:
    try:
        name = tzlocal.get_localzone_name()
        if name:
            return name
    except Exception as tz_err:
        Log.warn(f"Failed to determine system IANA timezone: {tz_err}")
    raise ConfigurationError("Cannot determine the system time zone; configure an IANA name instead of 'local'")


def resolve_timezone(name: Optional[str] = None) -> Tuple[str, object]:
    """
    Resolve a configured time zone name to (IANA name, tzinfo).

    Args:
        name: IANA name, 'local' for the system zone, or None for the configured default

    Raises:
        ConfigurationError: if the name is blank or the zone is unknown
    """
    if name is None:
        name = load_settings()["timezone"]
    if not isinstance(name, str) or not name.strip():
        raise ConfigurationError(f"Invalid time zone name: {name!r}")
    name = name.strip()
    if name.lower() == "local":
        name = _local_timezone_name()

    tzinfo = dateutil_tz.gettz(name)
    if tzinfo is None:
        raise ConfigurationError(f"Unknown time zone: {name}")
    return name, tzinfo
