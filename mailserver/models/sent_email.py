"""
SentEmail model - audit trail of messages sent through SMTP.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.sql import func
from mailserver.database import Base


class SentEmail(Base):
    """One row per recipient that was successfully sent to."""
    __tablename__ = "sent_emails"

    id = Column(Integer, primary_key=True)

    name = Column(String(255))
    email = Column(String(255), nullable=False, index=True)
    subject = Column(String(1024))
    message = Column(Text)
    filename = Column(String(512))  # Attachment or imported spreadsheet name

    sent_at = Column(DateTime, server_default=func.now(), index=True)

    def __repr__(self):
        return f"<SentEmail(id={self.id}, email={self.email})>"
