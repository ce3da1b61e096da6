"""Application context wiring the engine's collaborators together.

Built once at startup and handed to the scheduler and the CLI; nothing in
mailkeep keeps module-level state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Mapping, Optional

from .configuration.settings import SecretStore, Settings
from .ingestion.imap.session import MailboxSession
from .ingestion.imap.sync_engine import MailboxSyncEngine, SessionFactory
from .orchestrator.daemon import PIDFileManager, pid_file_for
from .orchestrator.scheduler import SyncScheduler, SyncTrigger
from .privacy.vault import CredentialVault
from .storage.database import Database
from .storage.emails import EmailStore
from .storage.ingestion_log import IngestionLedger
from .storage.mailbox_config import MailboxConfigStore
from .storage.models import MailboxConfig

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Process-wide handles: database, stores, vault and sync trigger."""

    settings: Settings
    db: Database
    emails: EmailStore
    mailboxes: MailboxConfigStore
    ledger: IngestionLedger
    vault: CredentialVault
    trigger: SyncTrigger = field(default_factory=SyncTrigger)
    session_factory: SessionFactory = MailboxSession.connect

    @classmethod
    def create(
        cls,
        settings: Settings,
        *,
        secret_store: Optional[SecretStore] = None,
        session_factory: Optional[SessionFactory] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "AppContext":
        db = Database(settings.database_path)
        vault = CredentialVault.from_settings(
            settings, secret_store=secret_store, environ=environ
        ).initialize()
        logger.debug(f"Opened database at {settings.database_path}")
        return cls(
            settings=settings,
            db=db,
            emails=EmailStore(db),
            mailboxes=MailboxConfigStore(db),
            ledger=IngestionLedger(db),
            vault=vault,
            session_factory=session_factory or MailboxSession.connect,
        )

    def build_engine(self) -> MailboxSyncEngine:
        return MailboxSyncEngine(
            email_store=self.emails,
            ledger=self.ledger,
            passphrase_provider=self.vault.get_passphrase,
            session_factory=self.session_factory,
            folder=self.settings.folder,
            batch_size=self.settings.batch_size,
            connect_timeout=self.settings.connect_timeout,
        )

    def build_scheduler(self) -> SyncScheduler:
        return SyncScheduler(
            mailbox_store=self.mailboxes,
            engine=self.build_engine(),
            trigger=self.trigger,
            interval=self.settings.sync_interval_seconds,
        )

    def add_mailbox(
        self,
        *,
        name: str,
        host: str,
        port: int,
        username: str,
        password: str,
        use_tls: bool = True,
        is_active: bool = False,
    ) -> MailboxConfig:
        """Save a mailbox configuration and request an immediate sync.

        The request goes to this process's trigger and, when a
        ``mailkeep serve`` process is running against the same database, to
        that process as SIGUSR1.
        """
        config = self.mailboxes.save(
            name=name,
            host=host,
            port=port,
            username=username,
            password=password,
            use_tls=use_tls,
            passphrase=self.vault.get_passphrase(),
            is_active=is_active,
        )
        self.trigger.request()
        self.server_pid_file().request_sync()
        return config

    def server_pid_file(self) -> PIDFileManager:
        """PID file of the sync server sharing this database."""
        return PIDFileManager(pid_file_for(self.settings.database_path))

    def close(self) -> None:
        self.db.close()

    def __enter__(self) -> "AppContext":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


__all__ = ["AppContext"]
