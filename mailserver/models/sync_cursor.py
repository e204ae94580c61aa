"""
SyncCursor model for the incremental sync position.

Each successful sync pass inserts the history id it reached. The current
cursor is the maximum value; an empty table means the mailbox has never
been synchronized.
"""

from sqlalchemy import Column, Integer, BigInteger, DateTime
from sqlalchemy.sql import func
from mailserver.database import Base


class SyncCursor(Base):
    """
    One observed history position per row.

    Persists across server restarts, unlike in-memory variables.
    """
    __tablename__ = "sync_cursors"

    id = Column(Integer, primary_key=True)
    value = Column(BigInteger, unique=True, nullable=False, index=True)
    created_at = Column(DateTime, server_default=func.now())

    def __repr__(self):
        return f"<SyncCursor(value={self.value})>"
