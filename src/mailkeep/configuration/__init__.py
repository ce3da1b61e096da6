"""Configuration utilities for mailkeep."""

from .settings import (
    DEFAULT_CONFIG_PATH,
    DEFAULT_SECRETS_SERVICE,
    SecretStore,
    Settings,
    load_settings,
    save_settings,
)

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "DEFAULT_SECRETS_SERVICE",
    "SecretStore",
    "Settings",
    "load_settings",
    "save_settings",
]
