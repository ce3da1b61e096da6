"""Credential protection for mailbox passwords at rest."""

from .encryption import NONCE_SIZE_BYTES, decrypt_password, derive_key, encrypt_password
from .vault import CredentialVault

__all__ = [
    "CredentialVault",
    "NONCE_SIZE_BYTES",
    "decrypt_password",
    "derive_key",
    "encrypt_password",
]
