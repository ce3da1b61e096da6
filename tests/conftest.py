"""Shared fixtures: temporary database, stores and an in-memory keyring."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional

import pytest

from mailkeep.storage.database import Database
from mailkeep.storage.emails import EmailStore
from mailkeep.storage.ingestion_log import IngestionLedger
from mailkeep.storage.mailbox_config import MailboxConfigStore
from mailkeep.storage.models import MailboxConfig

PASSPHRASE = "test-passphrase"


class _InMemoryKeyring:
    """Keyring backend that keeps secrets in a dict."""

    def __init__(self) -> None:
        self.values: Dict[str, Dict[str, str]] = {}
        self.fail_writes = False

    def set_password(self, service: str, key: str, value: str) -> None:
        if self.fail_writes:
            raise RuntimeError("keychain locked")
        self.values.setdefault(service, {})[key] = value

    def get_password(self, service: str, key: str) -> Optional[str]:
        return self.values.get(service, {}).get(key)

    def delete_password(self, service: str, key: str) -> None:
        self.values.get(service, {}).pop(key, None)


@pytest.fixture()
def keyring() -> _InMemoryKeyring:
    return _InMemoryKeyring()


@pytest.fixture()
def passphrase() -> str:
    return PASSPHRASE


@pytest.fixture()
def database(tmp_path: Path) -> Database:
    db = Database(tmp_path / "mailkeep.db")
    yield db
    db.close()


@pytest.fixture()
def email_store(database: Database) -> EmailStore:
    return EmailStore(database)


@pytest.fixture()
def mailbox_store(database: Database) -> MailboxConfigStore:
    return MailboxConfigStore(database)


@pytest.fixture()
def ledger(database: Database) -> IngestionLedger:
    return IngestionLedger(database)


@pytest.fixture()
def mailbox(mailbox_store: MailboxConfigStore) -> MailboxConfig:
    return mailbox_store.save(
        name="work",
        host="imap.example.com",
        port=993,
        username="me@example.com",
        password="secret",
        use_tls=True,
        passphrase=PASSPHRASE,
    )
