"""Normalize IMAP fetch results into ``NewEmail`` records.

Header fields come from the server-parsed ENVELOPE; bodies come from parsing
the RFC822 payload with the standard library ``email`` package. Every step
degrades to an absent field instead of failing the message, with one
exception: a fetch result without a UID or body cannot be stored and raises
``TranslationError``.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from email import message_from_bytes
from email.errors import HeaderParseError
from email.header import decode_header, make_header
from email.message import Message
from email.policy import default as email_policy
from email.utils import parsedate_to_datetime
from typing import Any, Iterable, Optional, Sequence, Tuple, Union

from ...errors import TranslationError
from ...storage.models import NewEmail
from .session import FetchResult

logger = logging.getLogger(__name__)

# "Tue, 1 Jan 2024 10:00:00 +0000 (UTC)" -> drop the trailing "(UTC)"
_TRAILING_ZONE_COMMENT = re.compile(r"\s*\([^()]*\)\s*$")


def _utf8(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    try:
        return bytes(value).decode("utf-8")
    except UnicodeDecodeError:
        return None


def decode_subject(raw: Union[bytes, str, None]) -> Optional[str]:
    """Decode an envelope subject.

    RFC 2047 encoded words are decoded first; if that yields nothing the raw
    bytes are read as UTF-8; otherwise the subject is absent.
    """
    if raw is None:
        return None

    try:
        text = raw if isinstance(raw, str) else bytes(raw).decode("ascii")
        decoded = str(make_header(decode_header(text))).strip()
        if decoded:
            return decoded
    except (UnicodeError, LookupError, HeaderParseError) as exc:
        logger.debug(f"Encoded-word subject decoding failed: {exc}")

    fallback = (_utf8(raw) or "").strip()
    return fallback or None


def format_address(addresses: Optional[Sequence[Any]]) -> Optional[str]:
    """Render the first envelope address as ``mailbox@host``.

    Returns None when there is no address or it lacks a mailbox or host
    (for example an RFC 2822 group marker).
    """
    if not addresses:
        return None
    first = addresses[0]
    mailbox = _utf8(getattr(first, "mailbox", None))
    host = _utf8(getattr(first, "host", None))
    if mailbox and host:
        return f"{mailbox}@{host}"
    return None


def parse_sent_date(value: Union[datetime, bytes, str, None]) -> Optional[datetime]:
    """Parse an RFC 2822 date, tolerating trailing ``(UTC)``-style comments.

    Unparseable dates are logged and yield None.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

    text = _utf8(value)
    if not text or not text.strip():
        return None
    cleaned = _TRAILING_ZONE_COMMENT.sub("", text.strip())
    try:
        parsed = parsedate_to_datetime(cleaned)
    except (TypeError, ValueError, IndexError) as exc:
        logger.warning(f"Failed to parse date '{text}': {exc}")
        return None
    if parsed is None:
        logger.warning(f"Failed to parse date '{text}'")
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def serialize_flags(flags: Optional[Iterable[Any]]) -> Optional[str]:
    """JSON array of flag names, or None when there are no flags."""
    names = [_flag_name(flag) for flag in (flags or ())]
    if not names:
        return None
    return json.dumps(names)


def _flag_name(flag: Any) -> str:
    if isinstance(flag, bytes):
        return flag.decode("utf-8", errors="replace")
    return str(flag)


def parse_mime(raw: bytes) -> Optional[Message]:
    try:
        return message_from_bytes(raw, policy=email_policy)
    except Exception as exc:  # noqa: BLE001
        logger.warning(f"Failed to parse MIME structure: {exc}")
        return None


def extract_bodies(
    message: Optional[Message], raw: bytes
) -> Tuple[Optional[str], Optional[str]]:
    """Return the first ``text/plain`` and first ``text/html`` parts.

    When the MIME structure cannot be decoded, the whole payload is returned
    as lossy UTF-8 text with no HTML part.
    """
    try:
        if message is None:
            raise ValueError("message could not be parsed")
        body_text: Optional[str] = None
        body_html: Optional[str] = None
        for part in message.walk():
            if part.is_multipart() or part.get_content_disposition() == "attachment":
                continue
            content_type = part.get_content_type()
            if content_type == "text/plain" and body_text is None:
                body_text = part.get_content()
            elif content_type == "text/html" and body_html is None:
                body_html = part.get_content()
        return body_text, body_html
    except Exception as exc:  # noqa: BLE001
        logger.warning(f"Failed to decode MIME body, storing raw payload as text: {exc}")
        return raw.decode("utf-8", errors="replace"), None


def _header_date(message: Optional[Message]) -> Optional[str]:
    if message is None:
        return None
    try:
        value = message.get("Date")
    except Exception as exc:  # noqa: BLE001
        logger.debug(f"Unreadable Date header: {exc}")
        return None
    return str(value) if value is not None else None


def translate_message(
    envelope: Any,
    flags: Optional[Iterable[Any]],
    raw_body: bytes,
    internal_date: Optional[datetime],
    *,
    uid: int,
    mailbox_config_id: int,
    folder: str = "INBOX",
    fetched_at: Optional[datetime] = None,
) -> NewEmail:
    """Build a ``NewEmail`` from the parts of one FETCH response."""
    raw = bytes(raw_body)
    message = parse_mime(raw)
    body_text, body_html = extract_bodies(message, raw)

    subject = from_address = to_address = message_id = None
    date_sent: Optional[datetime] = None
    if envelope is not None:
        subject = decode_subject(getattr(envelope, "subject", None))
        from_address = format_address(getattr(envelope, "from_", None))
        to_address = format_address(getattr(envelope, "to", None))
        message_id = _utf8(getattr(envelope, "message_id", None))
        envelope_date = getattr(envelope, "date", None)
        # imapclient leaves the date empty when it cannot parse it itself
        date_sent = parse_sent_date(
            envelope_date if envelope_date is not None else _header_date(message)
        )

    return NewEmail(
        mailbox_config_id=mailbox_config_id,
        uid=uid,
        message_id=message_id,
        subject=subject,
        from_address=from_address,
        to_address=to_address,
        cc_address=None,
        bcc_address=None,
        reply_to=None,
        date_sent=date_sent,
        date_received=fetched_at or datetime.now(timezone.utc),
        internal_date=parse_sent_date(internal_date),
        body_text=body_text,
        body_html=body_html,
        raw_message=raw,
        flags=serialize_flags(flags),
        size_bytes=len(raw),
        has_attachments=False,
        folder_name=folder,
    )


def translate(
    result: FetchResult,
    *,
    mailbox_config_id: int,
    folder: str = "INBOX",
    fetched_at: Optional[datetime] = None,
) -> NewEmail:
    """Translate a ``FetchResult``.

    Raises:
        TranslationError: If the result has no UID or no body
    """
    if result.uid is None:
        raise TranslationError("Fetch result has no UID", details={"seq": result.seq})
    if result.body is None:
        raise TranslationError(
            f"Fetch result for UID {result.uid} has no body",
            details={"uid": result.uid},
        )
    return translate_message(
        result.envelope,
        result.flags,
        result.body,
        result.internal_date,
        uid=int(result.uid),
        mailbox_config_id=mailbox_config_id,
        folder=folder,
        fetched_at=fetched_at,
    )


__all__ = [
    "decode_subject",
    "extract_bodies",
    "format_address",
    "parse_sent_date",
    "serialize_flags",
    "translate",
    "translate_message",
]
