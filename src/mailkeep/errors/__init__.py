"""Centralized error definitions for mailkeep.

Every error raised by the ingestion engine derives from ``MailkeepError`` so
callers (the scheduler, the CLI) can catch one type and still report a stable
error code.

Usage:
    from mailkeep.errors import MailkeepError, DecryptionError

    try:
        password = config.decrypt_password(passphrase)
    except DecryptionError as e:
        print(e.to_dict())
"""

from __future__ import annotations


# =============================================================================
# Base Error
# =============================================================================


class MailkeepError(Exception):
    """Base exception for all mailkeep errors.

    Attributes:
        code: Error code for categorization
        user_message: User-friendly message (optional override)
        recoverable: Whether the error is potentially recoverable
        details: Additional error details for debugging
    """

    code: str = "MAILKEEP_ERROR"
    default_message: str = "An unexpected error occurred"
    recoverable: bool = True

    def __init__(
        self,
        message: str | None = None,
        *,
        user_message: str | None = None,
        details: dict | None = None,
    ) -> None:
        self.message = message or self.default_message
        self._user_message = user_message
        self.details = details or {}
        super().__init__(self.message)

    @property
    def user_message(self) -> str:
        """Get user-friendly message."""
        return self._user_message or self.default_message

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "code": self.code,
            "message": self.message,
            "user_message": self.user_message,
            "recoverable": self.recoverable,
            "details": self.details,
        }


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(MailkeepError):
    """Base error for configuration issues."""

    code = "CONFIGURATION_ERROR"
    default_message = "Configuration error"


class InvalidConfigError(ConfigurationError):
    """Configuration is invalid."""

    code = "INVALID_CONFIG"
    default_message = "Invalid configuration"


# =============================================================================
# Vault Errors
# =============================================================================


class VaultError(MailkeepError):
    """Base error for credential vault operations."""

    code = "VAULT_ERROR"
    default_message = "Credential vault operation failed"


class EncryptionError(VaultError):
    """Encrypting a mailbox password failed."""

    code = "ENCRYPTION_ERROR"
    default_message = "Encryption failed"


class DecryptionError(VaultError):
    """Decryption failed (wrong passphrase, corrupted or truncated blob)."""

    code = "DECRYPTION_ERROR"
    default_message = "Decryption failed"
    recoverable = False


class PassphraseError(VaultError):
    """The service passphrase could not be resolved."""

    code = "PASSPHRASE_ERROR"
    default_message = "Service passphrase unavailable"
    recoverable = False


# =============================================================================
# Mailbox Session Errors
# =============================================================================


class MailboxSessionError(MailkeepError):
    """Base error for remote mailbox operations."""

    code = "MAILBOX_SESSION_ERROR"
    default_message = "Mailbox operation failed"


class MailboxConnectionError(MailboxSessionError):
    """Cannot reach the mail server."""

    code = "MAILBOX_CONNECTION_ERROR"
    default_message = "Cannot connect to mail server"


class MailboxLoginError(MailboxSessionError):
    """The mail server rejected the credentials."""

    code = "MAILBOX_LOGIN_ERROR"
    default_message = "Mail server rejected the login"
    recoverable = False


class FolderSelectionError(MailboxSessionError):
    """The target folder could not be selected."""

    code = "FOLDER_SELECTION_ERROR"
    default_message = "Cannot select mail folder"


class MailboxFetchError(MailboxSessionError):
    """A fetch or search command failed."""

    code = "MAILBOX_FETCH_ERROR"
    default_message = "Fetching messages failed"


# =============================================================================
# Storage Errors
# =============================================================================


class StorageError(MailkeepError):
    """Base error for persistence operations."""

    code = "STORAGE_ERROR"
    default_message = "Storage operation failed"


class MailboxNotFoundError(StorageError):
    """Mailbox configuration not found."""

    code = "MAILBOX_NOT_FOUND"
    default_message = "Mailbox configuration not found"


class DuplicateMessageError(StorageError):
    """A message with the same (mailbox, UID) is already stored."""

    code = "DUPLICATE_MESSAGE"
    default_message = "Message already stored"

    def __init__(self, mailbox_config_id: int, uid: int) -> None:
        self.mailbox_config_id = mailbox_config_id
        self.uid = uid
        super().__init__(
            f"Message UID {uid} already stored for mailbox {mailbox_config_id}",
            details={"mailbox_config_id": mailbox_config_id, "uid": uid},
        )


class LedgerError(StorageError):
    """Ingestion run could not be recorded."""

    code = "LEDGER_ERROR"
    default_message = "Ingestion run bookkeeping failed"
    recoverable = False


# =============================================================================
# Server Errors
# =============================================================================


class ServerError(MailkeepError):
    """Base error for the long-running sync server."""

    code = "SERVER_ERROR"
    default_message = "Sync server operation failed"


class AlreadyRunningError(ServerError):
    """Another ``mailkeep serve`` process owns the PID file."""

    code = "ALREADY_RUNNING"
    default_message = "Sync server is already running"
    recoverable = False


# =============================================================================
# Ingestion Errors
# =============================================================================


class TranslationError(MailkeepError):
    """A fetched message could not be normalized."""

    code = "TRANSLATION_ERROR"
    default_message = "Message could not be normalized"


__all__ = [
    "MailkeepError",
    # Configuration
    "ConfigurationError",
    "InvalidConfigError",
    # Vault
    "VaultError",
    "EncryptionError",
    "DecryptionError",
    "PassphraseError",
    # Mailbox session
    "MailboxSessionError",
    "MailboxConnectionError",
    "MailboxLoginError",
    "FolderSelectionError",
    "MailboxFetchError",
    # Storage
    "StorageError",
    "MailboxNotFoundError",
    "DuplicateMessageError",
    "LedgerError",
    # Server
    "ServerError",
    "AlreadyRunningError",
    # Ingestion
    "TranslationError",
]
