"""
Inbox sync engine.

Reconciles the remote mailbox with the local message store:
1. No stored cursor -> backfill: seed the store from the recency window
2. Stored cursor -> incremental: apply "message added" history deltas
3. Persist with upsert-ignore, then advance the cursor once, at the end

The engine keeps no state between passes. Everything it needs is read from
the store at the start of a pass, so a crashed pass can simply be re-run.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Tuple

from mailserver.config import SyncConfig
from mailserver.services.metadata import MessageMetadata, parse_history_id, sender_email

logger = logging.getLogger(__name__)

MODE_BACKFILL = "backfill"
MODE_INCREMENTAL = "incremental"


class ProviderClient(Protocol):
    def list_recent(self, window_days: int, max_results: int) -> List[dict]: ...

    def get_metadata(self, message_id: str) -> MessageMetadata: ...

    def list_history_since(self, cursor: int, max_results: int) -> List[dict]: ...


class MessageStore(Protocol):
    def upsert_message_ignore_conflict(self, record: MessageMetadata) -> bool: ...

    def upsert_cursor_ignore_conflict(self, value: int) -> bool: ...

    def max_cursor(self) -> Optional[int]: ...


# ============ PER-MAILBOX PASS LOCK ============

_mailbox_locks: Dict[str, threading.Lock] = {}
_mailbox_locks_guard = threading.Lock()


def mailbox_lock(mailbox_address: str) -> threading.Lock:
    """The lock serializing sync passes for one mailbox (process-wide)."""
    key = (mailbox_address or "").strip().lower()
    with _mailbox_locks_guard:
        lock = _mailbox_locks.get(key)
        if lock is None:
            lock = threading.Lock()
            _mailbox_locks[key] = lock
        return lock


def is_sync_running(mailbox_address: str) -> bool:
    return mailbox_lock(mailbox_address).locked()


# ============ RESULT ============

@dataclass
class SyncResult:
    """Summary of one sync pass, success or failure."""
    ok: bool
    mode: Optional[str] = None
    seeded: Optional[int] = None
    added: int = 0
    messages: List[MessageMetadata] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    cursor: Optional[int] = None
    error: Optional[str] = None
    in_progress: bool = False

    def to_dict(self) -> dict:
        if not self.ok:
            return {"error": self.error}

        data = {"mode": self.mode}
        if self.mode == MODE_BACKFILL:
            data["seeded"] = self.seeded
        data["added"] = self.added
        if self.mode == MODE_INCREMENTAL:
            data["messages"] = [m.to_dict() for m in self.messages]
        data["skipped"] = self.skipped
        data["cursor"] = self.cursor
        return data


def is_outbound(from_header: str, mailbox_address: str) -> bool:
    """True when the From header is the mailbox's own address."""
    own = sender_email(mailbox_address)
    if not own:
        return False
    return sender_email(from_header) == own


def _unique_ids(items: List[dict]) -> List[str]:
    seen = set()
    ids = []
    for item in items:
        message_id = item.get("id")
        if message_id and message_id not in seen:
            seen.add(message_id)
            ids.append(message_id)
    return ids


class SyncEngine:
    """
    Runs sync passes against injected collaborators.

    Args:
        provider: Remote mailbox client (list / get metadata / history)
        store: Message and cursor store
        config: Mailbox address, recency window, page size, fetch workers
    """

    def __init__(self, provider: ProviderClient, store: MessageStore, config: SyncConfig):
        self.provider = provider
        self.store = store
        self.config = config

    def sync(self) -> SyncResult:
        """
        Run one pass. Never raises; failures come back as SyncResult(ok=False).

        At most one pass per mailbox runs at a time. A call made while
        another pass holds the lock returns immediately with in_progress set.
        """
        lock = mailbox_lock(self.config.mailbox_address)
        if not lock.acquire(blocking=False):
            logger.warning("⏳ Sync already in progress for %s", self.config.mailbox_address)
            return SyncResult(
                ok=False,
                error="Sync already in progress for this mailbox",
                in_progress=True
            )

        try:
            return self._run_pass()
        finally:
            lock.release()

    def _run_pass(self) -> SyncResult:
        try:
            cursor = self.store.max_cursor()
            if cursor is None:
                logger.info("🆕 No cursor stored - backfilling last %d days", self.config.recency_window_days)
                return self._backfill(previous_cursor=cursor)

            logger.info("📊 Incremental sync from historyId: %s", cursor)
            return self._incremental(cursor)
        except Exception as e:
            logger.error("❌ Sync pass failed: %s", e, exc_info=True)
            self._rollback()
            return SyncResult(ok=False, error=str(e))

    def _rollback(self) -> None:
        rollback = getattr(self.store, "rollback", None)
        if rollback is None:
            return
        try:
            rollback()
        except Exception:
            logger.exception("Rollback after failed sync pass also failed")

    # ============ FETCH ============

    def _fetch_all(self, message_ids: List[str]) -> Tuple[Dict[str, MessageMetadata], List[str]]:
        """
        Fetch metadata for every id with bounded parallelism.

        Individual failures are logged and reported as skipped ids.
        """
        fetched: Dict[str, MessageMetadata] = {}
        if not message_ids:
            return fetched, []

        workers = max(1, min(self.config.fetch_workers, len(message_ids)))

        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {
                executor.submit(self.provider.get_metadata, message_id): message_id
                for message_id in message_ids
            }
            for future in as_completed(futures):
                message_id = futures[future]
                try:
                    fetched[message_id] = future.result()
                except Exception as e:
                    logger.warning("⚠️ Skipping message %s: %s", message_id, e)

        skipped = [message_id for message_id in message_ids if message_id not in fetched]
        return fetched, skipped

    # ============ BACKFILL ============

    def _backfill(self, previous_cursor: Optional[int]) -> SyncResult:
        listed = self.provider.list_recent(self.config.recency_window_days, self.config.page_size)
        message_ids = _unique_ids(listed)
        logger.info("📬 Found %d messages in the last %d days", len(message_ids), self.config.recency_window_days)

        fetched, skipped = self._fetch_all(message_ids)

        seeded = 0
        tokens = []
        for message_id in message_ids:
            record = fetched.get(message_id)
            if record is None:
                continue
            if self.store.upsert_message_ignore_conflict(record):
                seeded += 1
            if record.history_id is not None:
                tokens.append(record.history_id)

        # Catch anything that arrived while seeding. Only possible when a
        # previous cursor exists, so a first run adds nothing here.
        added: List[MessageMetadata] = []
        if previous_cursor is not None:
            deltas = self.provider.list_history_since(previous_cursor, self.config.page_size)
            added, last_token, catch_up_skipped = self._apply_deltas(deltas)
            skipped.extend(catch_up_skipped)
            if last_token is not None:
                tokens.append(last_token)

        new_cursor = max(tokens) if tokens else None
        if new_cursor is not None:
            self.store.upsert_cursor_ignore_conflict(new_cursor)
            logger.info("📝 Cursor set to historyId: %s", new_cursor)

        logger.info("✅ Backfill done: %d seeded, %d caught up, %d skipped", seeded, len(added), len(skipped))

        return SyncResult(
            ok=True,
            mode=MODE_BACKFILL,
            seeded=seeded,
            added=len(added),
            messages=added,
            skipped=skipped,
            cursor=new_cursor
        )

    # ============ INCREMENTAL ============

    def _incremental(self, cursor: int) -> SyncResult:
        deltas = self.provider.list_history_since(cursor, self.config.page_size)

        if not deltas:
            logger.info("📭 No new messages since historyId %s", cursor)
            return SyncResult(ok=True, mode=MODE_INCREMENTAL, added=0, cursor=cursor)

        logger.info("📬 Found %d history deltas", len(deltas))

        added, last_token, skipped = self._apply_deltas(deltas)

        new_cursor = cursor
        if last_token is not None:
            self.store.upsert_cursor_ignore_conflict(last_token)
            new_cursor = last_token
            logger.info("📝 Cursor advanced to historyId: %s", last_token)

        logger.info("✅ Incremental sync done: %d added, %d skipped", len(added), len(skipped))

        return SyncResult(
            ok=True,
            mode=MODE_INCREMENTAL,
            added=len(added),
            messages=added,
            skipped=skipped,
            cursor=new_cursor
        )

    def _apply_deltas(self, deltas: List[dict]) -> Tuple[List[MessageMetadata], Optional[int], List[str]]:
        """
        Fetch, classify and persist delta messages in provider order.

        The cursor candidate is the token of the last delta whose metadata
        was observed, not the largest token seen.

        Returns:
            (newly persisted inbound records, cursor candidate, skipped ids)
        """
        fetched, skipped = self._fetch_all(_unique_ids(deltas))

        added = []
        last_token = None
        for delta in deltas:
            record = fetched.get(delta.get("id"))
            if record is None:
                continue

            token = parse_history_id(delta.get("historyId"))
            if token is None:
                token = record.history_id
            if token is not None:
                last_token = token

            if is_outbound(record.from_address, self.config.mailbox_address):
                logger.debug("↪️ Skipping outbound message %s", record.id)
                continue

            if self.store.upsert_message_ignore_conflict(record):
                added.append(record)
                logger.info("💾 Saved message: %s", record.subject[:50])

        return added, last_token, skipped
