"""Persisted configuration management."""

from __future__ import annotations

import json
import os
from dataclasses import asdict
from pathlib import Path
from typing import Any, Union

from .models import Config
from .providers import Provider

APP_DIR = Path.home() / ".flowdictate"
CONFIG_PATH = (APP_DIR / "config.json").expanduser()
RECORDINGS_DIR = APP_DIR / "recordings"

INSERT_DESTINATIONS = ("clipboard", "paste")


class ConfigError(RuntimeError):
    """Raised when configuration cannot be loaded or saved."""


def load_config() -> Config:
    if not CONFIG_PATH.exists():
        return Config()
    try:
        payload = json.loads(CONFIG_PATH.read_text())
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Failed to parse configuration file: {exc}") from exc
    try:
        return Config(**payload)
    except TypeError as exc:
        raise ConfigError(f"Invalid configuration file: {exc}") from exc


def save_config(config: Config) -> None:
    CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
    data = {k: v for k, v in asdict(config).items() if v is not None}
    CONFIG_PATH.write_text(json.dumps(data, indent=2))
    # The file holds API keys.
    CONFIG_PATH.chmod(0o600)


def update_config(**kwargs: Any) -> Config:
    config = load_config()
    for key, value in kwargs.items():
        if not hasattr(config, key):
            raise ConfigError(f"Unknown configuration key: {key}")
        if key == "provider":
            value = _coerce_provider(value).value
        elif key == "insert_destination" and value not in INSERT_DESTINATIONS:
            raise ConfigError(
                f"Invalid insert destination '{value}'. Use one of: {', '.join(INSERT_DESTINATIONS)}."
            )
        setattr(config, key, value)
    save_config(config)
    return config


def active_provider(config: Config) -> Provider:
    return _coerce_provider(config.provider)


def get_credential(config: Config, provider: Union[Provider, str]) -> str:
    """Return the API key for ``provider``; the environment wins over the config file."""

    provider = _coerce_provider(provider)
    env_value = os.environ.get(f"FLOWDICTATE_{provider.name}_API_KEY")
    if env_value:
        return env_value.strip()
    return (getattr(config, _credential_field(provider)) or "").strip()


def set_credential(provider: Union[Provider, str], api_key: str) -> Config:
    provider = _coerce_provider(provider)
    return update_config(**{_credential_field(provider): api_key.strip() or None})


def mask_secret(value: str) -> str:
    if not value:
        return ""
    if len(value) <= 8:
        return "*" * len(value)
    return f"{value[:3]}…{value[-4:]}"


def _credential_field(provider: Provider) -> str:
    return f"{provider.value}_api_key"


def _coerce_provider(value: Union[Provider, str]) -> Provider:
    try:
        return Provider.parse(value)
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc
