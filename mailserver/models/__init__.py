"""
SQLAlchemy models for the mail server.

This package contains:
- SyncedMessage: Local cache of the remote inbox (written by the sync engine)
- SyncCursor: History positions reached by successful sync passes
- SentEmail: Messages sent through SMTP
"""

from mailserver.models.synced_message import SyncedMessage
from mailserver.models.sync_cursor import SyncCursor
from mailserver.models.sent_email import SentEmail

__all__ = ["SyncedMessage", "SyncCursor", "SentEmail"]
