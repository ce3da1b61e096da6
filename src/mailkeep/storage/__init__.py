"""SQLite persistence for messages, mailbox configurations and runs."""

from .database import Database
from .emails import EmailStore
from .ingestion_log import IngestionLedger
from .mailbox_config import MailboxConfigStore
from .models import EmailMessage, IngestionRun, MailboxConfig, NewEmail, RunStatus

__all__ = [
    "Database",
    "EmailMessage",
    "EmailStore",
    "IngestionLedger",
    "IngestionRun",
    "MailboxConfig",
    "MailboxConfigStore",
    "NewEmail",
    "RunStatus",
]
