"""Mailbox configuration records.

The ingestion engine only reads these; the CLI writes them. Passwords are
encrypted with the service passphrase before they reach the database.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from ..errors import MailboxNotFoundError
from ..privacy.encryption import encrypt_password
from .database import Database, to_db_time, utcnow
from .models import MailboxConfig

logger = logging.getLogger(__name__)


class MailboxConfigStore:
    """SQLite-backed store for mailbox configurations."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def save(
        self,
        *,
        name: str,
        host: str,
        port: int,
        username: str,
        password: str,
        use_tls: bool,
        passphrase: str,
        is_active: bool = False,
    ) -> MailboxConfig:
        """Create or update (by name) a mailbox configuration."""
        blob = encrypt_password(password, passphrase)
        now = to_db_time(utcnow())
        with self._db.transaction() as conn:
            if is_active:
                conn.execute("UPDATE mailbox_config SET is_active = 0")
            conn.execute(
                """
                INSERT INTO mailbox_config(
                    name, mail_host, mail_port, username, password_encrypted,
                    use_tls, is_active, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET
                    mail_host=excluded.mail_host,
                    mail_port=excluded.mail_port,
                    username=excluded.username,
                    password_encrypted=excluded.password_encrypted,
                    use_tls=excluded.use_tls,
                    is_active=excluded.is_active,
                    updated_at=excluded.updated_at
                """,
                (name, host, port, username, blob, int(use_tls), int(is_active), now, now),
            )

        config = self.get_by_name(name)
        if config is None:  # pragma: no cover - row was just written
            raise MailboxNotFoundError(f"Mailbox '{name}' vanished after save")
        logger.info(
            f"Saved mailbox configuration '{name}'",
            extra={"mailbox_config_id": config.id},
        )
        return config

    def get_all(self) -> List[MailboxConfig]:
        rows = self._db.query_all("SELECT * FROM mailbox_config ORDER BY name")
        return [MailboxConfig.model_validate(dict(row)) for row in rows]

    def get(self, config_id: int) -> Optional[MailboxConfig]:
        row = self._db.query_one("SELECT * FROM mailbox_config WHERE id = ?", (config_id,))
        return MailboxConfig.model_validate(dict(row)) if row else None

    def get_by_name(self, name: str) -> Optional[MailboxConfig]:
        row = self._db.query_one("SELECT * FROM mailbox_config WHERE name = ?", (name,))
        return MailboxConfig.model_validate(dict(row)) if row else None

    def get_active(self) -> Optional[MailboxConfig]:
        """Legacy single-mailbox lookup; the scheduler syncs all configs."""
        row = self._db.query_one(
            "SELECT * FROM mailbox_config WHERE is_active = 1 ORDER BY name LIMIT 1"
        )
        return MailboxConfig.model_validate(dict(row)) if row else None

    def set_active(self, config_id: int) -> None:
        self._require(config_id)
        with self._db.transaction() as conn:
            conn.execute("UPDATE mailbox_config SET is_active = 0")
            conn.execute(
                "UPDATE mailbox_config SET is_active = 1, updated_at = ? WHERE id = ?",
                (to_db_time(utcnow()), config_id),
            )

    def delete(self, config_id: int) -> None:
        """Delete a configuration together with its messages and runs."""
        self._require(config_id)
        with self._db.transaction() as conn:
            conn.execute("DELETE FROM mailbox_config WHERE id = ?", (config_id,))
        logger.info(
            f"Deleted mailbox configuration {config_id}",
            extra={"mailbox_config_id": config_id},
        )

    def _require(self, config_id: int) -> MailboxConfig:
        config = self.get(config_id)
        if config is None:
            raise MailboxNotFoundError(
                f"Mailbox configuration {config_id} not found",
                details={"mailbox_config_id": config_id},
            )
        return config


__all__ = ["MailboxConfigStore"]
