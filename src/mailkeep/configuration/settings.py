"""Typed settings management for the mailkeep ingestion engine.

Settings live in an optional JSON file and can be overridden from the
environment. The keyring-backed ``SecretStore`` is the only place the service
passphrase is persisted.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import keyring
from pydantic import BaseModel, Field, ValidationError, field_validator

from ..errors import InvalidConfigError


DEFAULT_HOME = Path.home() / ".mailkeep"
DEFAULT_CONFIG_PATH = DEFAULT_HOME / "config.json"
DEFAULT_DATABASE_PATH = DEFAULT_HOME / "database.db"
DEFAULT_SECRETS_SERVICE = "mailkeep"
DEFAULT_PASSPHRASE_ACCOUNT = "mailkeep-passphrase"
DEFAULT_PASSPHRASE_ENV = "MAILKEEP_PASSPHRASE"


class Settings(BaseModel):
    """Root configuration for the ingestion engine."""

    database_path: Path = Field(
        default=DEFAULT_DATABASE_PATH, description="SQLite database file"
    )
    sync_interval_seconds: int = Field(
        default=300, ge=1, description="Seconds between scheduled passes"
    )
    folder: str = Field(default="INBOX", description="Folder synced per mailbox")
    batch_size: int = Field(
        default=50, ge=1, description="Messages per first-sync fetch"
    )
    connect_timeout: float = Field(
        default=30.0, gt=0, description="Socket timeout for mail servers"
    )
    keyring_service: str = Field(default=DEFAULT_SECRETS_SERVICE)
    keyring_account: str = Field(default=DEFAULT_PASSPHRASE_ACCOUNT)
    passphrase_env: str = Field(
        default=DEFAULT_PASSPHRASE_ENV,
        description="Environment variable holding the service passphrase",
    )

    @field_validator("database_path")
    @classmethod
    def _expand_database_path(cls, value: Path) -> Path:
        return Path(value).expanduser()

    @field_validator("folder")
    @classmethod
    def _validate_folder(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("folder must not be empty")
        return value


@dataclass
class SecretStore:
    """Keyring abstraction for storing credentials."""

    service_name: str = DEFAULT_SECRETS_SERVICE
    keyring_module: Any = field(default=keyring)

    def set_secret(self, key: str, value: str) -> None:
        self.keyring_module.set_password(self.service_name, key, value)

    def get_secret(self, key: str) -> Optional[str]:
        return self.keyring_module.get_password(self.service_name, key)

    def delete_secret(self, key: str) -> None:
        try:
            self.keyring_module.delete_password(self.service_name, key)
        except Exception as exc:
            errors = getattr(self.keyring_module, "errors", None)
            password_error = getattr(errors, "PasswordDeleteError", None)
            if password_error and isinstance(exc, password_error):
                return
            raise


def load_settings(
    path: Optional[Path] = None,
    *,
    overrides: Optional[Dict[str, Any]] = None,
) -> Settings:
    """Load settings from disk (if present) and apply env overrides.

    A missing file yields defaults. Explicit ``overrides`` win over both the
    file and the environment.
    """

    path = path or DEFAULT_CONFIG_PATH
    payload: Dict[str, Any] = {}
    if path.exists():
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise InvalidConfigError(f"Settings file {path} is not valid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise InvalidConfigError(f"Settings file {path} must contain an object")

    payload = _apply_env_overrides(payload)
    payload.update(overrides or {})
    try:
        return Settings.model_validate(payload)
    except ValidationError as exc:
        raise InvalidConfigError(f"Invalid configuration: {exc}") from exc


def save_settings(settings: Settings, path: Optional[Path] = None) -> None:
    """Persist settings to disk."""

    path = path or DEFAULT_CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(settings.model_dump(mode="json"), indent=2), encoding="utf-8"
    )


def _apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(data)
    _set_env_override(merged, "database_path", "MAILKEEP_DATABASE_PATH")
    _set_env_override(merged, "sync_interval_seconds", "MAILKEEP_SYNC_INTERVAL", cast_int=True)
    _set_env_override(merged, "folder", "MAILKEEP_FOLDER")
    _set_env_override(merged, "batch_size", "MAILKEEP_BATCH_SIZE", cast_int=True)
    _set_env_override(merged, "connect_timeout", "MAILKEEP_CONNECT_TIMEOUT", cast_float=True)
    return merged


def _set_env_override(
    mapping: Dict[str, Any],
    key: str,
    env_name: str,
    *,
    cast_int: bool = False,
    cast_float: bool = False,
) -> None:
    raw = os.getenv(env_name)
    if raw is None:
        return
    try:
        if cast_int:
            mapping[key] = int(raw)
        elif cast_float:
            mapping[key] = float(raw)
        else:
            mapping[key] = raw
    except ValueError as exc:
        raise InvalidConfigError(f"{env_name}={raw!r} is not a number") from exc


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "DEFAULT_DATABASE_PATH",
    "DEFAULT_PASSPHRASE_ACCOUNT",
    "DEFAULT_PASSPHRASE_ENV",
    "DEFAULT_SECRETS_SERVICE",
    "SecretStore",
    "Settings",
    "load_settings",
    "save_settings",
]
