"""
SyncedMessage model - local cache of the remote inbox.

Rows are written only by the sync engine:
- Keyed by the provider-assigned message id (re-observing an id is a no-op)
- Append-only, never updated or deleted
"""

from sqlalchemy import Column, String, Text, DateTime, BigInteger, Index
from sqlalchemy.sql import func
from mailserver.database import Base


class SyncedMessage(Base):
    """
    Metadata of one message pulled from the remote mailbox.
    """
    __tablename__ = "synced_messages"

    # Provider identifier (primary key - prevents duplicates)
    id = Column(String(64), primary_key=True)
    thread_id = Column(String(64), index=True)

    # History position assigned by the provider at fetch time
    history_id = Column(BigInteger)

    # Header metadata, stored as received
    from_address = Column(Text)
    subject = Column(Text)
    snippet = Column(Text)

    # Bare lowercased sender address, used to tell inbound from outbound
    from_email = Column(String(320), nullable=False, default="")

    # Timestamps
    received_at = Column(DateTime, index=True)  # When the provider received it
    synced_at = Column(DateTime, server_default=func.now())  # When we stored it

    __table_args__ = (
        Index("ix_synced_messages_from_received", "from_email", "received_at"),
    )

    def __repr__(self):
        return f"<SyncedMessage(id={self.id}, from={self.from_address}, subject={self.subject[:30] if self.subject else ''})>"
