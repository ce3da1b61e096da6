"""IMAP mailbox ingestion: session, translator and sync engine."""

from .outcomes import MessageOutcome, OutcomeKind, RunCounters
from .session import FETCH_ITEMS, FetchResult, FolderInfo, MailboxSession
from .sync_engine import MailboxSyncEngine, SyncMode, SyncRunSummary
from .translator import translate, translate_message

__all__ = [
    "FETCH_ITEMS",
    "FetchResult",
    "FolderInfo",
    "MailboxSession",
    "MailboxSyncEngine",
    "MessageOutcome",
    "OutcomeKind",
    "RunCounters",
    "SyncMode",
    "SyncRunSummary",
    "translate",
    "translate_message",
]
