"""Passphrase-based encryption for mailbox passwords.

Mailbox passwords are stored as a single blob laid out as
``[12-byte nonce][ciphertext + 16-byte tag]`` and protected with AES-256-GCM.
The 256-bit key is the SHA-256 digest of the service passphrase.

Security Properties:
- 256-bit keys derived per call, never persisted
- 96-bit random nonce per encryption (GCM standard)
- 128-bit authentication tag: wrong passphrase or tampering fails closed

Usage:
    >>> from mailkeep.privacy.encryption import encrypt_password, decrypt_password
    >>> blob = encrypt_password("hunter2", "passphrase")
    >>> decrypt_password(blob, "passphrase")
    'hunter2'
"""

from __future__ import annotations

import hashlib
import secrets
from typing import Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..errors import DecryptionError, EncryptionError

# Constants
KEY_SIZE_BYTES = 32  # 256 bits for AES-256
NONCE_SIZE_BYTES = 12  # 96 bits for GCM


def derive_key(passphrase: str) -> bytes:
    """Derive the AES-256 key for ``passphrase``."""
    return hashlib.sha256(passphrase.encode("utf-8")).digest()


def encrypt(plaintext: Union[bytes, str], passphrase: str) -> bytes:
    """Encrypt data using AES-256-GCM.

    Args:
        plaintext: Data to encrypt (str will be UTF-8 encoded)
        passphrase: Service passphrase the key is derived from

    Returns:
        ``nonce || ciphertext`` blob

    Raises:
        EncryptionError: If encryption fails
    """
    if isinstance(plaintext, str):
        plaintext = plaintext.encode("utf-8")

    try:
        aesgcm = AESGCM(derive_key(passphrase))
        nonce = secrets.token_bytes(NONCE_SIZE_BYTES)
        ciphertext = aesgcm.encrypt(nonce, plaintext, None)
    except Exception as e:
        raise EncryptionError(f"Encryption failed: {e}") from e

    return nonce + ciphertext


def decrypt(blob: bytes, passphrase: str) -> bytes:
    """Decrypt a ``nonce || ciphertext`` blob.

    Raises:
        DecryptionError: If the blob is shorter than a nonce, or the tag does
            not verify (wrong passphrase, corrupted or tampered data)
    """
    if blob is None or len(blob) < NONCE_SIZE_BYTES:
        raise DecryptionError(
            "Decryption failed: encrypted data too short",
            details={"length": 0 if blob is None else len(blob)},
        )

    nonce, ciphertext = bytes(blob[:NONCE_SIZE_BYTES]), bytes(blob[NONCE_SIZE_BYTES:])
    try:
        return AESGCM(derive_key(passphrase)).decrypt(nonce, ciphertext, None)
    except InvalidTag as e:
        raise DecryptionError(
            "Decryption failed: authentication tag mismatch (wrong passphrase or corrupted data)"
        ) from e
    except ValueError as e:
        raise DecryptionError(f"Decryption failed: {e}") from e


def encrypt_password(password: str, passphrase: str) -> bytes:
    """Encrypt a mailbox password for storage."""
    return encrypt(password, passphrase)


def decrypt_password(blob: bytes, passphrase: str) -> str:
    """Decrypt a stored mailbox password.

    Raises:
        DecryptionError: On any integrity failure or non-UTF-8 plaintext
    """
    plaintext = decrypt(blob, passphrase)
    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecryptionError(f"Decryption failed: {e}") from e


__all__ = [
    "KEY_SIZE_BYTES",
    "NONCE_SIZE_BYTES",
    "decrypt",
    "decrypt_password",
    "derive_key",
    "encrypt",
    "encrypt_password",
]
