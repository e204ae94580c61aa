"""
Database service layer for the mail server.

This module provides the persistence operations with idempotent insert logic:
- upsert_message_ignore_conflict: Insert a synced message unless its id exists
- upsert_cursor_ignore_conflict / max_cursor: Sync cursor bookkeeping
- Inbox queries with filtering and pagination
- Sent email audit trail
"""

from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from sqlalchemy import func
from typing import Optional

from mailserver.models.synced_message import SyncedMessage
from mailserver.models.sync_cursor import SyncCursor
from mailserver.models.sent_email import SentEmail
from mailserver.services.metadata import MessageMetadata, sender_email


# ============ SYNCED MESSAGE OPERATIONS ============

def upsert_message_ignore_conflict(db: Session, record: MessageMetadata) -> bool:
    """
    Insert a synced message unless one with the same id already exists.

    Never raises on duplicates: re-observing a message is a no-op.

    Args:
        db: Database session
        record: Message metadata from the provider

    Returns:
        bool: True if a new row was inserted, False if it already existed
    """
    # Check if message already exists (deduplication)
    existing = db.get(SyncedMessage, record.id)
    if existing:
        return False

    message = SyncedMessage(
        id=record.id,
        thread_id=record.thread_id,
        history_id=record.history_id,
        from_address=record.from_address,
        from_email=sender_email(record.from_address),
        subject=record.subject,
        snippet=record.snippet,
        received_at=record.received_at
    )

    db.add(message)

    try:
        db.commit()
        return True
    except IntegrityError:
        # Race condition - another writer stored it first
        db.rollback()
        return False


def _like_pattern(text: str) -> str:
    """Substring pattern for ilike with LIKE metacharacters taken literally."""
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _apply_filters(
    query,
    from_filter: str = None,
    inbound_only: bool = False,
    mailbox_address: str = None
):
    if from_filter:
        query = query.filter(SyncedMessage.from_address.ilike(_like_pattern(from_filter), escape="\\"))

    own = sender_email(mailbox_address)
    if inbound_only and own:
        query = query.filter(SyncedMessage.from_email != own)

    return query


def list_messages(
    db: Session,
    skip: int = 0,
    limit: int = 50,
    from_filter: str = None,
    inbound_only: bool = False,
    mailbox_address: str = None
) -> list[SyncedMessage]:
    """
    Get synced messages, most recently received first.

    Args:
        db: Database session
        skip: Offset for pagination
        limit: Max results (None for all)
        from_filter: Sender filter (partial, case-insensitive)
        inbound_only: Exclude messages sent from the mailbox itself
        mailbox_address: The mailbox's own address, used by inbound_only

    Returns:
        List of SyncedMessage objects
    """
    query = _apply_filters(
        db.query(SyncedMessage),
        from_filter=from_filter,
        inbound_only=inbound_only,
        mailbox_address=mailbox_address
    )

    query = query.order_by(SyncedMessage.received_at.desc(), SyncedMessage.id.desc())

    if skip:
        query = query.offset(skip)
    if limit is not None:
        query = query.limit(limit)

    return query.all()


def count_messages(
    db: Session,
    from_filter: str = None,
    inbound_only: bool = False,
    mailbox_address: str = None
) -> int:
    """Get total count of synced messages for pagination."""
    query = _apply_filters(
        db.query(func.count(SyncedMessage.id)),
        from_filter=from_filter,
        inbound_only=inbound_only,
        mailbox_address=mailbox_address
    )
    return query.scalar()


# ============ SYNC CURSOR OPERATIONS ============

def upsert_cursor_ignore_conflict(db: Session, value: int) -> bool:
    """
    Record a history position reached by a sync pass.

    Returns:
        bool: True if inserted, False if the exact value was already stored
    """
    existing = db.query(SyncCursor).filter(SyncCursor.value == value).first()
    if existing:
        return False

    db.add(SyncCursor(value=value))

    try:
        db.commit()
        return True
    except IntegrityError:
        db.rollback()
        return False


def max_cursor(db: Session) -> Optional[int]:
    """Highest stored history position, or None if never synchronized."""
    return db.query(func.max(SyncCursor.value)).scalar()


class SqlMessageStore:
    """
    Message and cursor store bound to one SQLAlchemy session.

    This is the store handed to the sync engine.
    """

    def __init__(self, db: Session):
        self.db = db

    def upsert_message_ignore_conflict(self, record: MessageMetadata) -> bool:
        return upsert_message_ignore_conflict(self.db, record)

    def upsert_cursor_ignore_conflict(self, value: int) -> bool:
        return upsert_cursor_ignore_conflict(self.db, value)

    def max_cursor(self) -> Optional[int]:
        return max_cursor(self.db)

    def rollback(self) -> None:
        self.db.rollback()


# ============ SENT EMAIL OPERATIONS ============

def save_sent_email(
    db: Session,
    email: str,
    subject: str,
    message: str,
    name: str = None,
    filename: str = None
) -> SentEmail:
    """Record a successfully sent message."""
    sent = SentEmail(
        name=name,
        email=email,
        subject=subject,
        message=message,
        filename=filename
    )

    db.add(sent)
    db.commit()
    db.refresh(sent)
    return sent


def get_sent_emails(db: Session, skip: int = 0, limit: int = None) -> list[SentEmail]:
    """Sent emails, newest first."""
    query = db.query(SentEmail).order_by(SentEmail.sent_at.desc(), SentEmail.id.desc())
    if skip:
        query = query.offset(skip)
    if limit is not None:
        query = query.limit(limit)
    return query.all()
