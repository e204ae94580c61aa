"""
Outgoing mail over SMTP.
"""

import logging
import mimetypes
import smtplib
from dataclasses import dataclass, field
from email.message import EmailMessage
from typing import List, Optional, Protocol

from mailserver.config import SmtpConfig

logger = logging.getLogger(__name__)


@dataclass
class Attachment:
    filename: str
    content: bytes
    content_type: Optional[str] = None


@dataclass
class Envelope:
    """One message to one recipient."""
    to: str
    subject: str
    text: str
    attachments: List[Attachment] = field(default_factory=list)


@dataclass
class SendResult:
    recipient: str
    ok: bool
    error: Optional[str] = None


class MailSender(Protocol):
    def send(self, envelope: Envelope) -> SendResult: ...


def build_message(sender: str, envelope: Envelope) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = envelope.to
    msg["Subject"] = envelope.subject
    msg.set_content(envelope.text or "")

    for attachment in envelope.attachments:
        content_type = attachment.content_type or mimetypes.guess_type(attachment.filename)[0]
        maintype, _, subtype = (content_type or "application/octet-stream").partition("/")
        msg.add_attachment(
            attachment.content,
            maintype=maintype,
            subtype=subtype or "octet-stream",
            filename=attachment.filename
        )

    return msg


class SmtpMailSender:
    """
    Sends each envelope over a fresh SMTP connection.

    STARTTLS is used on plain connections; SMTP_USE_SSL switches to
    implicit TLS (port 465).
    """

    def __init__(self, config: SmtpConfig):
        self.config = config

    def _connect(self) -> smtplib.SMTP:
        if self.config.use_ssl:
            return smtplib.SMTP_SSL(self.config.host, self.config.port, timeout=self.config.timeout)

        smtp = smtplib.SMTP(self.config.host, self.config.port, timeout=self.config.timeout)
        smtp.starttls()
        return smtp

    def send(self, envelope: Envelope) -> SendResult:
        msg = build_message(self.config.user, envelope)

        try:
            with self._connect() as smtp:
                if self.config.user and self.config.password:
                    smtp.login(self.config.user, self.config.password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("❌ Failed to send to %s: %s", envelope.to, e)
            return SendResult(recipient=envelope.to, ok=False, error=str(e))

        logger.info("📤 Sent '%s' to %s", envelope.subject, envelope.to)
        return SendResult(recipient=envelope.to, ok=True)
