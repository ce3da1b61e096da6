"""Thin session wrapper over ``imapclient`` for one mailbox.

The wrapper narrows imapclient to the handful of commands the sync engine
needs and translates library, socket and TLS failures into the
``MailboxSessionError`` family so a failed pass carries a readable message.
"""

from __future__ import annotations

import logging
import ssl
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import certifi
from imapclient import IMAPClient
from imapclient.exceptions import IMAPClientError, LoginError

from ...errors import (
    FolderSelectionError,
    MailboxConnectionError,
    MailboxFetchError,
    MailboxLoginError,
)

logger = logging.getLogger(__name__)


FETCH_ITEMS: Tuple[str, ...] = ("RFC822", "UID", "ENVELOPE", "FLAGS", "INTERNALDATE")


@dataclass(frozen=True)
class FolderInfo:
    """Result of selecting a folder."""

    name: str
    exists: int
    uidvalidity: Optional[int] = None


@dataclass(frozen=True)
class FetchResult:
    """One message as returned by a FETCH command."""

    uid: Optional[int]
    body: Optional[bytes]
    envelope: Any = None
    flags: Tuple[Any, ...] = ()
    internal_date: Optional[datetime] = None
    seq: Optional[int] = None


def create_ssl_context() -> ssl.SSLContext:
    """Create TLS context trusting the certifi CA bundle."""
    context = ssl.create_default_context(cafile=certifi.where())
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    return context


class MailboxSession:
    """Connected (and later authenticated) session with a mail server."""

    def __init__(self, client: IMAPClient, *, host: str = "", port: int = 0) -> None:
        self._client = client
        self.host = host
        self.port = port
        self.folder: Optional[str] = None

    @classmethod
    def connect(
        cls,
        host: str,
        port: int,
        *,
        use_tls: bool = True,
        timeout: float = 30.0,
        ssl_context: Optional[ssl.SSLContext] = None,
    ) -> "MailboxSession":
        """Open a connection to ``host:port``.

        Raises:
            MailboxConnectionError: On DNS, socket, TLS or greeting failure
        """
        try:
            client = IMAPClient(
                host,
                port=port,
                ssl=use_tls,
                ssl_context=(ssl_context or create_ssl_context()) if use_tls else None,
                timeout=timeout,
                use_uid=True,
            )
        except (IMAPClientError, OSError) as exc:
            raise MailboxConnectionError(
                f"Cannot connect to {host}:{port}: {exc}",
                details={"host": host, "port": port},
            ) from exc
        # keep server timezone offsets on ENVELOPE and INTERNALDATE values
        client.normalise_times = False
        logger.debug(f"Connected to {host}:{port} (tls={use_tls})")
        return cls(client, host=host, port=port)

    def login(self, username: str, password: str) -> None:
        """Authenticate.

        Raises:
            MailboxLoginError: If the server rejects the credentials
            MailboxConnectionError: If the connection drops
        """
        try:
            self._client.login(username, password)
        except LoginError as exc:
            raise MailboxLoginError(f"Login failed for {username}: {exc}") from exc
        except (IMAPClientError, OSError) as exc:
            raise MailboxConnectionError(f"Connection lost during login: {exc}") from exc

    def select(self, folder: str, *, readonly: bool = True) -> FolderInfo:
        """Select (or examine, when ``readonly``) a folder."""
        try:
            info = self._client.select_folder(folder, readonly=readonly)
        except (IMAPClientError, OSError) as exc:
            raise FolderSelectionError(f"Cannot select folder {folder}: {exc}") from exc
        self.folder = folder
        return FolderInfo(
            name=folder,
            exists=int(info.get(b"EXISTS", 0)),
            uidvalidity=info.get(b"UIDVALIDITY"),
        )

    def fetch(self, seq_range: str, items: Sequence[str] = FETCH_ITEMS) -> List[FetchResult]:
        """FETCH by sequence-number range; results in ascending sequence order."""
        self._client.use_uid = False
        try:
            response = self._client.fetch(seq_range, list(items))
        except (IMAPClientError, OSError) as exc:
            raise MailboxFetchError(f"FETCH {seq_range} failed: {exc}") from exc
        finally:
            self._client.use_uid = True
        return [
            self._to_result(data, seq=seq)
            for seq, data in sorted(response.items())
        ]

    def uid_fetch(self, uid_range: str, items: Sequence[str] = FETCH_ITEMS) -> List[FetchResult]:
        """UID FETCH; results in ascending UID order."""
        try:
            response = self._client.fetch(uid_range, list(items))
        except (IMAPClientError, OSError) as exc:
            raise MailboxFetchError(f"UID FETCH {uid_range} failed: {exc}") from exc
        return [
            self._to_result(data, uid=uid)
            for uid, data in sorted(response.items())
        ]

    def uid_search(self, criteria: Any = "ALL") -> List[int]:
        try:
            return sorted(self._client.search(criteria))
        except (IMAPClientError, OSError) as exc:
            raise MailboxFetchError(f"UID SEARCH {criteria} failed: {exc}") from exc

    def logout(self) -> None:
        self._client.logout()

    @staticmethod
    def _to_result(
        data: Dict[bytes, Any], *, uid: Optional[int] = None, seq: Optional[int] = None
    ) -> FetchResult:
        return FetchResult(
            uid=data.get(b"UID", uid),
            body=data.get(b"RFC822"),
            envelope=data.get(b"ENVELOPE"),
            flags=tuple(data.get(b"FLAGS", ()) or ()),
            internal_date=data.get(b"INTERNALDATE"),
            seq=data.get(b"SEQ", seq),
        )


def uid_range_after(uid: int) -> str:
    """UID range selecting everything newer than ``uid``."""
    return f"{uid + 1}:*"


def sequence_batches(total: int, batch_size: int) -> Iterable[Tuple[int, int]]:
    """Yield inclusive ``(start, end)`` sequence ranges covering ``1..total``."""
    start = 1
    while start <= total:
        end = min(start + batch_size - 1, total)
        yield start, end
        start = end + 1


__all__ = [
    "FETCH_ITEMS",
    "FetchResult",
    "FolderInfo",
    "MailboxSession",
    "create_ssl_context",
    "sequence_batches",
    "uid_range_after",
]
