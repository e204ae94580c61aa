"""
Scheduled sync tick.

When SYNC_INTERVAL_SECONDS > 0 the app runs a sync pass on that interval in
the background. Passes share the per-mailbox lock with POST /sync, so a tick
that overlaps a manual trigger is reported as "in progress" and skipped.
"""

import asyncio
import logging
from typing import Callable

from fastapi.concurrency import run_in_threadpool

from mailserver.config import SyncConfig
from mailserver.database import SessionLocal
from mailserver.services.db_service import SqlMessageStore
from mailserver.services.sync_engine import SyncEngine, SyncResult

logger = logging.getLogger(__name__)


def run_sync_pass(config: SyncConfig, provider_factory: Callable, session_factory=SessionLocal) -> SyncResult:
    """Run one pass with its own database session."""
    db = session_factory()
    try:
        engine = SyncEngine(provider_factory(), SqlMessageStore(db), config)
        return engine.sync()
    finally:
        db.close()


async def sync_periodically(config: SyncConfig, pass_fn: Callable[[], SyncResult]) -> None:
    """Loop forever, one pass every config.interval_seconds. Cancel to stop."""
    logger.info("⏰ Scheduled sync every %ds for %s", config.interval_seconds, config.mailbox_address)

    while True:
        await asyncio.sleep(config.interval_seconds)

        try:
            result = await run_in_threadpool(pass_fn)
        except Exception:
            logger.exception("Scheduled sync tick could not start")
            continue

        if result.ok:
            logger.info("🔄 Scheduled sync (%s): %d added", result.mode, result.added)
        elif result.in_progress:
            logger.info("Scheduled sync skipped: a pass is already running")
        else:
            logger.warning("Scheduled sync failed: %s", result.error)
