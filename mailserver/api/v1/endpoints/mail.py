"""
Outgoing mail endpoints.

- POST /send-email: send one message, optional attachment
- GET /sent-emails: audit trail of sent messages
- POST /import-emails: bulk send to recipients from an .xlsx file
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from mailserver.database import get_db
from mailserver.dependencies import get_mail_sender
from mailserver.services import db_service
from mailserver.services.mail_sender import Attachment, Envelope, MailSender
from mailserver.services.recipient_import import load_recipients

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Mail"])


# ============ Response Schemas ============

class SentEmailResponse(BaseModel):
    id: int
    name: Optional[str]
    email: str
    subject: Optional[str]
    message: Optional[str]
    filename: Optional[str]
    sent_at: Optional[datetime]

    class Config:
        from_attributes = True


class BulkImportResponse(BaseModel):
    message: str
    sent: int
    failedEmails: list[str]


# ============ SEND ============

@router.post("/send-email")
def send_email(
    email: str = Form(...),
    subject: str = Form(""),
    message: str = Form(""),
    name: Optional[str] = Form(None),
    attachment: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    sender: MailSender = Depends(get_mail_sender)
):
    """
    Send a single email, optionally with one attachment.

    **Returns:**
    - 200: Sent and recorded
    - 500: SMTP rejected the message
    """
    attachments = []
    filename = None
    if attachment is not None and attachment.filename:
        filename = attachment.filename
        attachments.append(Attachment(
            filename=filename,
            content=attachment.file.read(),
            content_type=attachment.content_type
        ))

    result = sender.send(Envelope(to=email, subject=subject, text=message, attachments=attachments))

    if not result.ok:
        return JSONResponse(
            status_code=500,
            content={"message": "Failed to send email", "error": result.error}
        )

    db_service.save_sent_email(
        db=db,
        name=name,
        email=email,
        subject=subject,
        message=message,
        filename=filename
    )

    return {"message": "✅ Email sent successfully!"}


@router.get("/sent-emails", response_model=list[SentEmailResponse])
def sent_emails(db: Session = Depends(get_db)):
    """Sent emails, newest first."""
    return db_service.get_sent_emails(db)


# ============ BULK IMPORT ============

@router.post("/import-emails", response_model=BulkImportResponse)
def import_emails(
    file: Optional[UploadFile] = File(None),
    subject: Optional[str] = Form(None),
    message: Optional[str] = Form(None),
    db: Session = Depends(get_db),
    sender: MailSender = Depends(get_mail_sender)
):
    """
    Send a message to every recipient listed in an .xlsx file.

    Columns: `email` | `name, email` | `name, email, subject, message`.
    `subject` and `message` form fields are used where a row has none.

    **Returns:**
    - 200: Processed; `failedEmails` lists recipients SMTP rejected
    - 400: No file, unreadable file, or missing subject/message
    """
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")

    if not subject or not message:
        raise HTTPException(status_code=400, detail="Subject and message are required")

    try:
        recipients = load_recipients(file.file.read(), subject, message)
    except Exception as e:
        raise HTTPException(status_code=400, detail=f"Could not read spreadsheet: {str(e)}")

    logger.info("📋 Importing %d recipients from %s", len(recipients), file.filename)

    sent = 0
    failed = []
    for recipient in recipients:
        result = sender.send(Envelope(to=recipient.email, subject=recipient.subject, text=recipient.message))

        if not result.ok:
            failed.append(recipient.email)
            continue

        db_service.save_sent_email(
            db=db,
            name=recipient.name,
            email=recipient.email,
            subject=recipient.subject,
            message=recipient.message,
            filename=file.filename
        )
        sent += 1

    return BulkImportResponse(
        message="✅ Bulk emails processed",
        sent=sent,
        failedEmails=failed
    )
