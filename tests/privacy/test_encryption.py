"""Tests for passphrase-based password encryption."""

from __future__ import annotations

import hashlib

import pytest

from mailkeep.errors import DecryptionError
from mailkeep.privacy.encryption import (
    NONCE_SIZE_BYTES,
    decrypt,
    decrypt_password,
    derive_key,
    encrypt,
    encrypt_password,
)


def test_round_trip() -> None:
    blob = encrypt_password("hunter2", "passphrase")
    assert decrypt_password(blob, "passphrase") == "hunter2"


def test_round_trip_unicode_and_empty_password() -> None:
    for password in ["", "pässwörd ✓", "x" * 512]:
        assert decrypt_password(encrypt_password(password, "k"), "k") == password


def test_blob_layout_is_nonce_then_ciphertext_with_tag() -> None:
    blob = encrypt(b"abc", "passphrase")
    assert len(blob) == NONCE_SIZE_BYTES + 3 + 16


def test_fresh_nonce_per_encryption() -> None:
    first = encrypt_password("same", "passphrase")
    second = encrypt_password("same", "passphrase")
    assert first[:NONCE_SIZE_BYTES] != second[:NONCE_SIZE_BYTES]
    assert first != second


def test_key_is_sha256_of_passphrase() -> None:
    assert derive_key("passphrase") == hashlib.sha256(b"passphrase").digest()
    assert len(derive_key("")) == 32


def test_wrong_passphrase_fails_closed() -> None:
    blob = encrypt_password("hunter2", "right")
    with pytest.raises(DecryptionError) as exc_info:
        decrypt_password(blob, "wrong")
    assert "Decryption failed" in str(exc_info.value)


def test_tampered_ciphertext_is_rejected() -> None:
    blob = bytearray(encrypt_password("hunter2", "passphrase"))
    blob[-1] ^= 0x01
    with pytest.raises(DecryptionError):
        decrypt(bytes(blob), "passphrase")


@pytest.mark.parametrize("blob", [b"", b"short", b"\x00" * (NONCE_SIZE_BYTES - 1)])
def test_undersized_blob_is_rejected(blob: bytes) -> None:
    with pytest.raises(DecryptionError):
        decrypt(blob, "passphrase")


def test_nonce_only_blob_fails_authentication() -> None:
    with pytest.raises(DecryptionError):
        decrypt(b"\x00" * NONCE_SIZE_BYTES, "passphrase")
