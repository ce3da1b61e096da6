"""Persistence for normalized email messages.

Rows are unique on ``(mailbox_config_id, uid)``. That constraint is the final
guard against duplicates: a single insert that hits it raises
``DuplicateMessageError`` and bulk inserts silently skip the conflicting rows.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import List, Optional, Sequence

from ..errors import DuplicateMessageError, StorageError
from .database import Database, to_db_time, utcnow
from .models import EmailMessage, NewEmail

logger = logging.getLogger(__name__)


_COLUMNS = (
    "mailbox_config_id",
    "uid",
    "message_id",
    "subject",
    "from_address",
    "to_address",
    "cc_address",
    "bcc_address",
    "reply_to",
    "date_sent",
    "date_received",
    "internal_date",
    "body_text",
    "body_html",
    "raw_message",
    "flags",
    "size_bytes",
    "has_attachments",
    "folder_name",
    "created_at",
    "updated_at",
)

_INSERT_SQL = (
    f"INSERT INTO emails ({', '.join(_COLUMNS)}) "
    f"VALUES ({', '.join('?' for _ in _COLUMNS)})"
)


class EmailStore:
    """SQLite-backed store for ingested messages."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def find_by_uid(self, mailbox_config_id: int, uid: int) -> Optional[EmailMessage]:
        row = self._db.query_one(
            "SELECT * FROM emails WHERE mailbox_config_id = ? AND uid = ?",
            (mailbox_config_id, uid),
        )
        return EmailMessage.model_validate(dict(row)) if row else None

    def exists(self, mailbox_config_id: int, uid: int) -> bool:
        row = self._db.query_one(
            "SELECT 1 FROM emails WHERE mailbox_config_id = ? AND uid = ?",
            (mailbox_config_id, uid),
        )
        return row is not None

    def get_highest_uid(self, mailbox_config_id: int) -> Optional[int]:
        """Return the UID watermark for a mailbox, or None before first sync."""
        row = self._db.query_one(
            "SELECT MAX(uid) AS max_uid FROM emails WHERE mailbox_config_id = ?",
            (mailbox_config_id,),
        )
        return row["max_uid"] if row else None

    def get(self, email_id: int) -> Optional[EmailMessage]:
        row = self._db.query_one("SELECT * FROM emails WHERE id = ?", (email_id,))
        return EmailMessage.model_validate(dict(row)) if row else None

    def insert(self, email: NewEmail) -> EmailMessage:
        """Insert one message.

        Raises:
            DuplicateMessageError: If (mailbox, UID) is already stored
            StorageError: For any other integrity failure
        """
        try:
            with self._db.transaction() as conn:
                cur = conn.execute(_INSERT_SQL, self._row(email))
                email_id = cur.lastrowid
        except sqlite3.IntegrityError as exc:
            if "UNIQUE" in str(exc).upper():
                raise DuplicateMessageError(email.mailbox_config_id, email.uid) from exc
            raise StorageError(f"Failed to insert message UID {email.uid}: {exc}") from exc

        stored = self.get(email_id)
        if stored is None:  # pragma: no cover - row was just written
            raise StorageError(f"Inserted message {email_id} disappeared")
        return stored

    def insert_batch(self, emails: Sequence[NewEmail]) -> int:
        """Insert many messages in one transaction.

        Rows whose (mailbox, UID) already exists are skipped.

        Returns:
            Number of rows actually inserted
        """
        if not emails:
            return 0
        sql = _INSERT_SQL + " ON CONFLICT(mailbox_config_id, uid) DO NOTHING"
        try:
            with self._db.transaction() as conn:
                cur = conn.executemany(sql, [self._row(email) for email in emails])
                inserted = cur.rowcount
        except sqlite3.Error as exc:
            raise StorageError(f"Bulk insert of {len(emails)} messages failed: {exc}") from exc

        if inserted < len(emails):
            logger.debug(
                f"Bulk insert skipped {len(emails) - inserted} already stored messages"
            )
        return inserted

    def list_recent(
        self, limit: int = 50, mailbox_config_id: Optional[int] = None
    ) -> List[EmailMessage]:
        """Most recently fetched messages first."""
        if mailbox_config_id is None:
            rows = self._db.query_all(
                "SELECT * FROM emails ORDER BY date_received DESC, id DESC LIMIT ?",
                (limit,),
            )
        else:
            rows = self._db.query_all(
                "SELECT * FROM emails WHERE mailbox_config_id = ? "
                "ORDER BY date_received DESC, id DESC LIMIT ?",
                (mailbox_config_id, limit),
            )
        return [EmailMessage.model_validate(dict(row)) for row in rows]

    def count(self, mailbox_config_id: Optional[int] = None) -> int:
        if mailbox_config_id is None:
            row = self._db.query_one("SELECT COUNT(*) AS n FROM emails")
        else:
            row = self._db.query_one(
                "SELECT COUNT(*) AS n FROM emails WHERE mailbox_config_id = ?",
                (mailbox_config_id,),
            )
        return int(row["n"])

    @staticmethod
    def _row(email: NewEmail) -> tuple:
        now = to_db_time(utcnow())
        return (
            email.mailbox_config_id,
            email.uid,
            email.message_id,
            email.subject,
            email.from_address,
            email.to_address,
            email.cc_address,
            email.bcc_address,
            email.reply_to,
            to_db_time(email.date_sent),
            to_db_time(email.date_received),
            to_db_time(email.internal_date),
            email.body_text,
            email.body_html,
            email.raw_message,
            email.flags,
            email.size_bytes,
            int(email.has_attachments),
            email.folder_name,
            now,
            now,
        )


__all__ = ["EmailStore"]
