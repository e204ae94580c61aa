"""
Inbox sync endpoints.

POST /sync runs one sync pass (backfill on first run, incremental after).
GET /messages and GET /received-emails read the synced inbox.
"""

import math
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from mailserver.config import SyncConfig
from mailserver.database import get_db
from mailserver.dependencies import get_provider, get_sync_config
from mailserver.services import db_service
from mailserver.services.db_service import SqlMessageStore
from mailserver.services.sync_engine import SyncEngine, is_sync_running

router = APIRouter(tags=["Inbox Sync"])


# ============ Response Schemas ============

class MessageResponse(BaseModel):
    """One synced message."""
    id: str
    thread_id: Optional[str]
    history_id: Optional[int]
    from_address: Optional[str]
    subject: Optional[str]
    snippet: Optional[str]
    received_at: Optional[datetime]

    class Config:
        from_attributes = True


class MessagesListResponse(BaseModel):
    """Paginated list of synced messages."""
    page: int
    limit: int
    total: int
    totalPages: int
    messages: list[MessageResponse]


class SyncStatusResponse(BaseModel):
    cursor: Optional[int]
    messages_stored: int
    running: bool


# ============ SYNC TRIGGER ============

@router.post("/sync")
def trigger_sync(
    db: Session = Depends(get_db),
    provider=Depends(get_provider),
    config: SyncConfig = Depends(get_sync_config)
):
    """
    Run one inbox sync pass.

    **Returns:**
    - 200: `{mode, seeded?, added, messages?, skipped, cursor}`
    - 409: Another pass for this mailbox is still running
    - 500: Listing messages or history failed; nothing was advanced
    """
    engine = SyncEngine(provider, SqlMessageStore(db), config)
    result = engine.sync()

    if not result.ok:
        status_code = 409 if result.in_progress else 500
        return JSONResponse(status_code=status_code, content=result.to_dict())

    return result.to_dict()


@router.get("/sync/status", response_model=SyncStatusResponse)
def sync_status(
    db: Session = Depends(get_db),
    config: SyncConfig = Depends(get_sync_config)
):
    """Current cursor, stored message count and whether a pass is running."""
    return SyncStatusResponse(
        cursor=db_service.max_cursor(db),
        messages_stored=db_service.count_messages(db),
        running=is_sync_running(config.mailbox_address)
    )


# ============ INBOX QUERIES ============

@router.get("/messages", response_model=MessagesListResponse)
def list_messages(
    from_filter: Optional[str] = Query(None, alias="from", description="Filter by sender (partial match)"),
    page: int = Query(1, ge=1, description="Page number, starting at 1"),
    limit: int = Query(20, ge=1, le=100, description="Max results per page"),
    inbound: bool = Query(False, description="Only messages not sent by the mailbox itself"),
    db: Session = Depends(get_db),
    config: SyncConfig = Depends(get_sync_config)
):
    """
    List synced messages, most recently received first.

    **Example:**
    ```
    GET /api/v1/messages?from=alice@example.com&page=2&limit=10
    ```
    """
    filters = dict(
        from_filter=from_filter,
        inbound_only=inbound,
        mailbox_address=config.mailbox_address
    )

    total = db_service.count_messages(db, **filters)
    messages = db_service.list_messages(db, skip=(page - 1) * limit, limit=limit, **filters)

    return MessagesListResponse(
        page=page,
        limit=limit,
        total=total,
        totalPages=math.ceil(total / limit) if total else 0,
        messages=[MessageResponse.model_validate(m) for m in messages]
    )


@router.get("/received-emails", response_model=list[MessageResponse])
def received_emails(
    db: Session = Depends(get_db),
    config: SyncConfig = Depends(get_sync_config)
):
    """Inbound messages (not sent by the mailbox itself), newest first."""
    return db_service.list_messages(
        db,
        limit=None,
        inbound_only=True,
        mailbox_address=config.mailbox_address
    )
