"""
Metadata extraction for provider message resources.

Turns a Gmail `users.messages.get` resource (format=metadata) into a
MessageMetadata record. Every field has a defined fallback, so a message
with missing or malformed headers still produces a usable record:

- from_address: "" when the From header is missing
- subject: "" when the Subject header is missing
- received_at: Date header, then internalDate, then fetch time (UTC)
- snippet: "" when missing, HTML entities unescaped otherwise
- history_id: None when missing

sender_email derives the bare address that tells inbound from outbound mail.
"""

from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from email.utils import parseaddr, parsedate_to_datetime
from typing import Optional

from bs4 import BeautifulSoup


@dataclass
class MessageMetadata:
    """Metadata of one remote message, ready to persist."""
    id: str
    thread_id: str
    from_address: str
    subject: str
    received_at: datetime
    snippet: str
    history_id: Optional[int]

    def to_dict(self) -> dict:
        data = asdict(self)
        data["received_at"] = self.received_at.isoformat() if self.received_at else None
        return data


def _utc_naive(value: datetime) -> datetime:
    """Normalize to naive UTC, the way timestamps are stored."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


MAX_ADDRESS_LENGTH = 320


def sender_email(from_header: Optional[str]) -> str:
    """
    Bare, lowercased address from a From header.

    "Bob <Bob@Example.com>" -> "bob@example.com". Returns "" when the header
    carries no address.
    """
    _, address = parseaddr(from_header or "")
    return address.strip().lower()[:MAX_ADDRESS_LENGTH]


def get_header(headers: list, name: str) -> Optional[str]:
    """Case-insensitive header lookup. Returns None when absent."""
    wanted = name.lower()
    for h in headers or []:
        if h.get("name", "").lower() == wanted:
            return h.get("value")
    return None


def parse_received_at(date_header: Optional[str], internal_date: Optional[str]) -> Optional[datetime]:
    """
    Resolve when a message was received.

    Tries the RFC 2822 Date header first, then Gmail's internalDate
    (epoch milliseconds). Returns None when neither is usable.
    """
    if date_header:
        try:
            return _utc_naive(parsedate_to_datetime(date_header))
        except (TypeError, ValueError, IndexError):
            pass

    if internal_date:
        try:
            return datetime.fromtimestamp(int(internal_date) / 1000, tz=timezone.utc).replace(tzinfo=None)
        except (TypeError, ValueError, OverflowError, OSError):
            pass

    return None


def clean_snippet(snippet: Optional[str]) -> str:
    """Gmail snippets carry HTML entities (&#39; etc.), decode them."""
    if not snippet:
        return ""
    return BeautifulSoup(snippet, "html.parser").get_text().strip()


def parse_history_id(value) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def extract_metadata(msg: dict, fetched_at: Optional[datetime] = None) -> MessageMetadata:
    """
    Build a MessageMetadata from a Gmail message resource.

    Args:
        msg: Message resource as returned by users.messages.get
        fetched_at: Fallback receive time; defaults to now (UTC)

    Returns:
        MessageMetadata with fallbacks applied per field
    """
    headers = msg.get("payload", {}).get("headers", [])

    received_at = parse_received_at(
        get_header(headers, "Date"),
        msg.get("internalDate"),
    )
    if received_at is None:
        received_at = fetched_at or datetime.now(timezone.utc).replace(tzinfo=None)

    return MessageMetadata(
        id=msg["id"],
        thread_id=msg.get("threadId") or "",
        from_address=get_header(headers, "From") or "",
        subject=get_header(headers, "Subject") or "",
        received_at=received_at,
        snippet=clean_snippet(msg.get("snippet")),
        history_id=parse_history_id(msg.get("historyId")),
    )
