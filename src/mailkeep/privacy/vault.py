"""Service passphrase bootstrap.

The passphrase that protects mailbox passwords is resolved once per process:

1. the environment variable named by ``Settings.passphrase_env``;
2. the OS keychain entry ``(keyring_service, keyring_account)``;
3. a freshly generated value (32 random bytes, base64), written back to the
   keychain on a best-effort basis.

Only the passphrase length is ever logged.
"""

from __future__ import annotations

import base64
import logging
import os
import secrets
from dataclasses import dataclass, field
from typing import Mapping, Optional

from ..configuration.settings import (
    DEFAULT_PASSPHRASE_ACCOUNT,
    DEFAULT_PASSPHRASE_ENV,
    SecretStore,
    Settings,
)
from ..errors import PassphraseError
from .encryption import KEY_SIZE_BYTES, decrypt_password, encrypt_password

logger = logging.getLogger(__name__)


def generate_passphrase() -> str:
    """Return a printable passphrase built from 32 random bytes."""
    return base64.b64encode(secrets.token_bytes(KEY_SIZE_BYTES)).decode("ascii")


@dataclass
class CredentialVault:
    """Holds the service passphrase and encrypts mailbox passwords with it.

    Attributes:
        secret_store: Keyring-backed store holding the generated passphrase
        account: Keychain account name for the passphrase
        env_var: Environment variable consulted first
        environ: Environment mapping (``os.environ`` unless injected)
    """

    secret_store: SecretStore = field(default_factory=SecretStore)
    account: str = DEFAULT_PASSPHRASE_ACCOUNT
    env_var: str = DEFAULT_PASSPHRASE_ENV
    environ: Optional[Mapping[str, str]] = None
    _passphrase: Optional[str] = field(default=None, init=False, repr=False)
    _source: Optional[str] = field(default=None, init=False)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        secret_store: Optional[SecretStore] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "CredentialVault":
        store = secret_store or SecretStore(service_name=settings.keyring_service)
        return cls(
            secret_store=store,
            account=settings.keyring_account,
            env_var=settings.passphrase_env,
            environ=environ,
        )

    @property
    def source(self) -> Optional[str]:
        """Where the passphrase came from: ``env``, ``keyring`` or ``generated``."""
        return self._source

    def initialize(self) -> "CredentialVault":
        """Resolve the passphrase once; later calls are no-ops."""
        if self._passphrase is not None:
            return self

        environ = os.environ if self.environ is None else self.environ
        passphrase = environ.get(self.env_var)
        if passphrase:
            self._remember(passphrase, "env")
            return self

        try:
            stored = self.secret_store.get_secret(self.account)
        except Exception as exc:
            logger.warning(
                f"Could not read passphrase from keychain: {exc}",
                extra={"service": self.secret_store.service_name},
            )
            stored = None
        if stored:
            self._remember(stored, "keyring")
            return self

        passphrase = generate_passphrase()
        try:
            self.secret_store.set_secret(self.account, passphrase)
        except Exception as exc:
            logger.warning(
                f"Could not store generated passphrase in keychain, "
                f"set {self.env_var} to keep it across restarts: {exc}",
                extra={"service": self.secret_store.service_name},
            )
        self._remember(passphrase, "generated")
        return self

    def get_passphrase(self) -> str:
        if self._passphrase is None:
            self.initialize()
        if not self._passphrase:
            raise PassphraseError()
        return self._passphrase

    def encrypt(self, password: str) -> bytes:
        return encrypt_password(password, self.get_passphrase())

    def decrypt(self, blob: bytes) -> str:
        return decrypt_password(blob, self.get_passphrase())

    def _remember(self, passphrase: str, source: str) -> None:
        self._passphrase = passphrase
        self._source = source
        logger.info(f"Service passphrase loaded from {source}")
        logger.debug(f"Passphrase length: {len(passphrase)}")


__all__ = ["CredentialVault", "generate_passphrase"]
