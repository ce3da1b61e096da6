"""SQLite database handle and schema for mailkeep.

One connection is shared by every store. The scheduler runs passes on a
worker thread, so the connection is opened with ``check_same_thread=False``
and all access goes through a re-entrant lock.
"""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Optional, Sequence, Union


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------


SCHEMA = """
CREATE TABLE IF NOT EXISTS mailbox_config (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    mail_host TEXT NOT NULL,
    mail_port INTEGER NOT NULL DEFAULT 993,
    username TEXT NOT NULL,
    password_encrypted BLOB NOT NULL,
    use_tls BOOLEAN NOT NULL DEFAULT 1,
    is_active BOOLEAN NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS emails (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    mailbox_config_id INTEGER NOT NULL
        REFERENCES mailbox_config(id) ON DELETE CASCADE,
    uid INTEGER NOT NULL,
    message_id TEXT,
    subject TEXT,
    from_address TEXT,
    to_address TEXT,
    cc_address TEXT,
    bcc_address TEXT,
    reply_to TEXT,
    date_sent TEXT,
    date_received TEXT NOT NULL,
    internal_date TEXT,
    body_text TEXT,
    body_html TEXT,
    raw_message BLOB,
    flags TEXT,
    size_bytes INTEGER,
    has_attachments BOOLEAN NOT NULL DEFAULT 0,
    folder_name TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (mailbox_config_id, uid)
);

CREATE INDEX IF NOT EXISTS idx_emails_received
    ON emails(mailbox_config_id, date_received);

CREATE TABLE IF NOT EXISTS ingestion_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    mailbox_config_id INTEGER
        REFERENCES mailbox_config(id) ON DELETE CASCADE,
    started_at TEXT NOT NULL,
    completed_at TEXT,
    emails_processed INTEGER NOT NULL DEFAULT 0,
    emails_new INTEGER NOT NULL DEFAULT 0,
    emails_updated INTEGER NOT NULL DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'running',
    error_message TEXT,
    folder_name TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_ingestion_log_mailbox
    ON ingestion_log(mailbox_config_id, started_at);
"""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_db_time(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


class Database:
    """SQLite connection shared by the mailkeep stores."""

    def __init__(self, path: Union[Path, str]) -> None:
        """Open (and create if needed) the database.

        Args:
            path: Path to SQLite database file, or ``":memory:"``
        """
        self._path = path
        if str(path) != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(str(path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys=ON")
        if str(path) != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(SCHEMA)

    @property
    def path(self) -> Union[Path, str]:
        return self._path

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            self._conn.commit()
            self._conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Yield the connection inside a commit-or-rollback block."""
        with self._lock:
            with self._conn:
                yield self._conn

    def query_one(self, sql: str, params: Sequence[Any] = ()) -> Optional[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, params).fetchone()

    def query_all(self, sql: str, params: Iterable[Any] = ()) -> List[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, tuple(params)).fetchall()


__all__ = ["Database", "SCHEMA", "to_db_time", "utcnow"]
