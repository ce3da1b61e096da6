"""Fake IMAP server and session used by the sync tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest
from imapclient.response_types import Address, Envelope

from mailkeep.errors import (
    FolderSelectionError,
    MailboxConnectionError,
    MailboxLoginError,
)
from mailkeep.ingestion.imap.session import FetchResult, FolderInfo

BASE_DATE = datetime(2024, 1, 2, 10, 0, tzinfo=timezone.utc)


def build_raw(uid: int, subject: Optional[str] = None, body: Optional[str] = None) -> bytes:
    subject = subject or f"Message {uid}"
    body = body or f"Body of message {uid}"
    return (
        "From: Sender <sender@example.com>\r\n"
        "To: Me <me@example.com>\r\n"
        f"Subject: {subject}\r\n"
        "Date: Tue, 02 Jan 2024 10:00:00 +0000\r\n"
        f"Message-ID: <{uid}@example.com>\r\n"
        "Content-Type: text/plain; charset=utf-8\r\n"
        "\r\n"
        f"{body}\r\n"
    ).encode("utf-8")


def build_envelope(
    uid: int,
    *,
    subject: Optional[bytes] = None,
    date: Any = BASE_DATE,
    sender: Tuple[Optional[bytes], Optional[bytes]] = (b"sender", b"example.com"),
) -> Envelope:
    return Envelope(
        date=date,
        subject=subject if subject is not None else f"Message {uid}".encode(),
        from_=(Address(b"Sender", None, sender[0], sender[1]),),
        sender=None,
        reply_to=None,
        to=(Address(b"Me", None, b"me", b"example.com"),),
        cc=None,
        bcc=None,
        in_reply_to=None,
        message_id=f"<{uid}@example.com>".encode(),
    )


class FakeImapServer:
    """In-memory mailbox keyed by UID."""

    def __init__(self, password: str = "secret") -> None:
        self.password = password
        self.folders = {"INBOX"}
        self.messages: Dict[int, Dict[str, Any]] = {}
        self.fail_connect = False
        self.fail_logout = False
        self.fetch_calls: List[str] = []
        self.uid_fetch_calls: List[str] = []
        self.sessions: List["FakeMailboxSession"] = []

    def add_message(
        self,
        uid: int,
        raw: Optional[bytes] = None,
        *,
        flags: Tuple[bytes, ...] = (b"\\Seen",),
        envelope: Any = "default",
        body_missing: bool = False,
    ) -> None:
        self.messages[uid] = {
            "raw": None if body_missing else (raw if raw is not None else build_raw(uid)),
            "flags": flags,
            "envelope": build_envelope(uid) if envelope == "default" else envelope,
            "internal_date": BASE_DATE + timedelta(minutes=uid),
        }

    def add_messages(self, uids) -> None:
        for uid in uids:
            self.add_message(uid)

    def sorted_uids(self) -> List[int]:
        return sorted(self.messages)

    def result(self, uid: int, seq: int) -> FetchResult:
        data = self.messages[uid]
        return FetchResult(
            uid=uid,
            body=data["raw"],
            envelope=data["envelope"],
            flags=data["flags"],
            internal_date=data["internal_date"],
            seq=seq,
        )


class FakeMailboxSession:
    """Implements the ``MailboxSession`` interface against ``FakeImapServer``."""

    def __init__(self, server: FakeImapServer, host: str, port: int) -> None:
        self.server = server
        self.host = host
        self.port = port
        self.logged_in = False
        self.logged_out = False
        self.folder: Optional[str] = None

    def login(self, username: str, password: str) -> None:
        if password != self.server.password:
            raise MailboxLoginError(f"Login failed for {username}: AUTHENTICATIONFAILED")
        self.logged_in = True

    def select(self, folder: str, *, readonly: bool = True) -> FolderInfo:
        if folder not in self.server.folders:
            raise FolderSelectionError(f"Cannot select folder {folder}: NONEXISTENT")
        self.folder = folder
        return FolderInfo(name=folder, exists=len(self.server.messages), uidvalidity=1)

    def fetch(self, seq_range: str, items=None) -> List[FetchResult]:
        self.server.fetch_calls.append(seq_range)
        start, end = (int(part) for part in seq_range.split(":"))
        uids = self.server.sorted_uids()
        return [
            self.server.result(uids[seq - 1], seq)
            for seq in range(start, end + 1)
            if seq <= len(uids)
        ]

    def uid_fetch(self, uid_range: str, items=None) -> List[FetchResult]:
        self.server.uid_fetch_calls.append(uid_range)
        low = int(uid_range.split(":")[0])
        uids = self.server.sorted_uids()
        matched = [uid for uid in uids if uid >= low]
        if not matched and uids:
            # "N:*" always includes the highest UID
            matched = [uids[-1]]
        return [self.server.result(uid, uids.index(uid) + 1) for uid in matched]

    def uid_search(self, criteria="ALL") -> List[int]:
        return self.server.sorted_uids()

    def logout(self) -> None:
        self.logged_out = True
        if self.server.fail_logout:
            raise OSError("connection reset during LOGOUT")


@pytest.fixture()
def imap_server() -> FakeImapServer:
    return FakeImapServer()


@pytest.fixture()
def session_factory(imap_server: FakeImapServer):
    def _connect(host: str, port: int, *, use_tls: bool = True, timeout: float = 30.0):
        if imap_server.fail_connect:
            raise MailboxConnectionError(f"Cannot connect to {host}:{port}: refused")
        session = FakeMailboxSession(imap_server, host, port)
        imap_server.sessions.append(session)
        return session

    return _connect


@pytest.fixture()
def make_raw():
    return build_raw


@pytest.fixture()
def make_envelope():
    return build_envelope
