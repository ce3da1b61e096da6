"""Row models for the mailkeep SQLite store."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from ..privacy.encryption import decrypt_password


class RunStatus(str, Enum):
    """Lifecycle states of an ingestion run."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class MailboxConfig(BaseModel):
    """How to reach one remote mailbox. The password is stored encrypted."""

    id: int
    name: str
    mail_host: str
    mail_port: int = Field(default=993, ge=1, le=65535)
    username: str
    password_encrypted: bytes = Field(..., repr=False)
    use_tls: bool = True
    is_active: bool = False
    created_at: datetime
    updated_at: datetime

    def decrypt_password(self, passphrase: str) -> str:
        """Return the plaintext password or raise ``DecryptionError``."""
        return decrypt_password(self.password_encrypted, passphrase)


class NewEmail(BaseModel):
    """Normalized message ready to be persisted."""

    mailbox_config_id: int
    uid: int = Field(..., ge=1)
    message_id: Optional[str] = None
    subject: Optional[str] = None
    from_address: Optional[str] = None
    to_address: Optional[str] = None
    cc_address: Optional[str] = None
    bcc_address: Optional[str] = None
    reply_to: Optional[str] = None
    date_sent: Optional[datetime] = None
    date_received: datetime
    internal_date: Optional[datetime] = None
    body_text: Optional[str] = None
    body_html: Optional[str] = None
    raw_message: bytes = Field(default=b"", repr=False)
    flags: Optional[str] = Field(default=None, description="JSON array of flags")
    size_bytes: int = Field(default=0, ge=0)
    has_attachments: bool = False
    folder_name: str = "INBOX"


class EmailMessage(NewEmail):
    """A stored message row."""

    id: int
    created_at: datetime
    updated_at: datetime


class IngestionRun(BaseModel):
    """One ledger row: a single sync run against one mailbox."""

    id: int
    mailbox_config_id: Optional[int] = None
    started_at: datetime
    completed_at: Optional[datetime] = None
    emails_processed: int = 0
    emails_new: int = 0
    emails_updated: int = 0
    status: RunStatus = RunStatus.RUNNING
    error_message: Optional[str] = None
    folder_name: str = "INBOX"

    @property
    def is_complete(self) -> bool:
        return self.completed_at is not None


__all__ = ["EmailMessage", "IngestionRun", "MailboxConfig", "NewEmail", "RunStatus"]
