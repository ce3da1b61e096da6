"""Per-mailbox IMAP sync.

A mailbox with no stored messages gets a *first sync*: the folder is read in
fixed-size sequence-number batches and each batch is bulk inserted. Once a
UID watermark exists, *incremental sync* fetches ``watermark+1:*`` and stores
messages one at a time. Every pass is bracketed by an ingestion-ledger run.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, List, Optional, Tuple

from pydantic import BaseModel, Field

from ...errors import DuplicateMessageError, StorageError
from ...storage.emails import EmailStore
from ...storage.ingestion_log import IngestionLedger
from ...storage.models import MailboxConfig, NewEmail, RunStatus
from .outcomes import MessageOutcome, RunCounters
from .session import FetchResult, FolderInfo, MailboxSession, sequence_batches, uid_range_after
from .translator import translate

logger = logging.getLogger(__name__)

SessionFactory = Callable[..., MailboxSession]

DEFAULT_BATCH_SIZE = 50
PROGRESS_EVERY = 10


class SyncMode(str, Enum):
    FIRST = "first"
    INCREMENTAL = "incremental"


class SyncRunSummary(BaseModel):
    """Outcome of one mailbox pass."""

    run_id: int
    mailbox_config_id: int
    mailbox_name: str
    mode: Optional[SyncMode] = None
    processed: int = Field(default=0, ge=0)
    new: int = Field(default=0, ge=0)
    updated: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    status: RunStatus = RunStatus.COMPLETED
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status is RunStatus.COMPLETED


class MailboxSyncEngine:
    """Runs the first or incremental sync algorithm for one mailbox."""

    def __init__(
        self,
        *,
        email_store: EmailStore,
        ledger: IngestionLedger,
        passphrase_provider: Callable[[], str],
        session_factory: SessionFactory = MailboxSession.connect,
        folder: str = "INBOX",
        batch_size: int = DEFAULT_BATCH_SIZE,
        connect_timeout: float = 30.0,
    ):
        """Initialize sync engine.

        Args:
            email_store: Message persistence
            ledger: Run bookkeeping
            passphrase_provider: Returns the service passphrase
            session_factory: ``(host, port, *, use_tls, timeout) -> MailboxSession``
            folder: Folder to sync
            batch_size: Messages per first-sync FETCH
            connect_timeout: Socket timeout in seconds
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.email_store = email_store
        self.ledger = ledger
        self.passphrase_provider = passphrase_provider
        self.session_factory = session_factory
        self.folder = folder
        self.batch_size = batch_size
        self.connect_timeout = connect_timeout

    def sync_mailbox(self, config: MailboxConfig) -> SyncRunSummary:
        """Sync one mailbox and record the run.

        Pass-level failures (decryption, connection, login, folder selection,
        fetch) are written to the ledger and returned as a failed summary.
        """
        run_id = self.ledger.create_run(self.folder, config.id)
        counters = RunCounters()
        mode: Optional[SyncMode] = None
        logger.info(
            f"Processing mailbox '{config.name}' ({config.username}@{config.mail_host})",
            extra={"mailbox_config_id": config.id, "run_id": run_id},
        )

        error: Optional[str] = None
        try:
            mode = self._run(config, counters)
        except Exception as exc:  # noqa: BLE001
            error = str(exc) or exc.__class__.__name__
            logger.error(
                f"Sync failed for mailbox '{config.name}': {error}",
                exc_info=exc,
                extra={"mailbox_config_id": config.id, "run_id": run_id},
            )

        status = RunStatus.FAILED if error is not None else RunStatus.COMPLETED
        self.ledger.complete_run(
            run_id,
            counters.processed,
            counters.new,
            counters.updated,
            status,
            error,
        )
        if error is None:
            logger.info(
                f"Email processing completed for '{config.name}': "
                f"{counters.processed} processed, {counters.new} new, "
                f"{counters.updated} updated",
                extra={"mailbox_config_id": config.id, "run_id": run_id},
            )

        return SyncRunSummary(
            run_id=run_id,
            mailbox_config_id=config.id,
            mailbox_name=config.name,
            mode=mode,
            processed=counters.processed,
            new=counters.new,
            updated=counters.updated,
            failed=counters.failed,
            status=status,
            error=error,
        )

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def _run(self, config: MailboxConfig, counters: RunCounters) -> SyncMode:
        password = config.decrypt_password(self.passphrase_provider())
        session = self.session_factory(
            config.mail_host,
            config.mail_port,
            use_tls=config.use_tls,
            timeout=self.connect_timeout,
        )
        try:
            session.login(config.username, password)
            folder_info = session.select(self.folder)
            watermark = self.email_store.get_highest_uid(config.id)
            if watermark is None:
                self._first_sync(session, config, folder_info, counters)
                return SyncMode.FIRST
            self._incremental_sync(session, config, watermark, counters)
            return SyncMode.INCREMENTAL
        finally:
            self._logout(session)

    @staticmethod
    def _logout(session: MailboxSession) -> None:
        try:
            session.logout()
        except Exception as exc:  # noqa: BLE001
            logger.debug(f"Ignoring logout failure: {exc}")

    # ------------------------------------------------------------------
    # Sync algorithms
    # ------------------------------------------------------------------

    def _first_sync(
        self,
        session: MailboxSession,
        config: MailboxConfig,
        folder_info: FolderInfo,
        counters: RunCounters,
    ) -> None:
        total = folder_info.exists
        logger.info(
            f"First sync of {self.folder} for '{config.name}'",
            extra={"mailbox_config_id": config.id, "folder": self.folder},
        )
        if total == 0:
            logger.info(f"No messages found in {self.folder}")
            return

        logger.info(f"Found {total} messages to fetch")
        for start, end in sequence_batches(total, self.batch_size):
            logger.info(f"Fetching batch: messages {start} to {end} ({end}/{total})")
            results = session.fetch(f"{start}:{end}")

            batch: List[NewEmail] = []
            for offset, result in enumerate(results):
                self._log_progress(start + offset, total)
                outcome, record = self._prepare(result, config)
                if record is not None:
                    batch.append(record)
                else:
                    counters.apply(outcome)

            if not batch:
                continue
            try:
                inserted = self.email_store.insert_batch(batch)
            except StorageError as exc:
                counters.failed += len(batch)
                logger.error(
                    f"Failed to bulk insert {len(batch)} messages: {exc}",
                    exc_info=exc,
                    extra={"mailbox_config_id": config.id},
                )
                continue
            counters.add_inserted(inserted)
            logger.info(f"Inserted {inserted} new messages from batch")

        logger.info(f"First sync completed: processed {counters.processed} messages")

    def _incremental_sync(
        self,
        session: MailboxSession,
        config: MailboxConfig,
        watermark: int,
        counters: RunCounters,
    ) -> None:
        logger.info(
            f"Incremental sync - checking for messages after UID {watermark}",
            extra={"mailbox_config_id": config.id, "folder": self.folder},
        )
        # "N:*" always matches the newest message, even when its UID is below N
        results = [
            result
            for result in session.uid_fetch(uid_range_after(watermark))
            if result.uid is None or result.uid > watermark
        ]
        if not results:
            logger.info(f"No new messages to process (last UID: {watermark})")
            return

        total = len(results)
        logger.info(f"Found {total} new messages starting from UID {watermark + 1}")
        for index, result in enumerate(results, start=1):
            self._log_progress(index, total)
            counters.apply(self._process_one(result, config), skipped_counts_as_updated=True)

    # ------------------------------------------------------------------
    # Per-message processing
    # ------------------------------------------------------------------

    def _prepare(
        self, result: FetchResult, config: MailboxConfig
    ) -> Tuple[Optional[MessageOutcome], Optional[NewEmail]]:
        uid = result.uid
        try:
            if uid is not None and self.email_store.exists(config.id, uid):
                return MessageOutcome.skipped(uid), None
            return None, translate(result, mailbox_config_id=config.id, folder=self.folder)
        except Exception as exc:  # noqa: BLE001
            logger.error(
                f"Failed to prepare message UID {uid}: {exc}",
                exc_info=exc,
                extra={"mailbox_config_id": config.id, "uid": uid},
            )
            return MessageOutcome.failed(uid, str(exc)), None

    def _process_one(self, result: FetchResult, config: MailboxConfig) -> MessageOutcome:
        uid = result.uid
        try:
            if uid is not None and self.email_store.exists(config.id, uid):
                logger.debug(f"Message UID {uid} already exists, skipping")
                return MessageOutcome.skipped(uid)
            record = translate(result, mailbox_config_id=config.id, folder=self.folder)
            self.email_store.insert(record)
        except DuplicateMessageError:
            return MessageOutcome.skipped(uid)
        except Exception as exc:  # noqa: BLE001
            logger.error(
                f"Failed to process message UID {uid}: {exc}",
                exc_info=exc,
                extra={"mailbox_config_id": config.id, "uid": uid},
            )
            return MessageOutcome.failed(uid, str(exc))
        return MessageOutcome.inserted(uid)

    @staticmethod
    def _log_progress(current: int, total: int) -> None:
        if total > PROGRESS_EVERY and (current % PROGRESS_EVERY == 0 or current == total):
            logger.info(f"Processing message {current}/{total}")


__all__ = ["MailboxSyncEngine", "SessionFactory", "SyncMode", "SyncRunSummary"]
