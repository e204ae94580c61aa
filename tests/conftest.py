import os

# Must be set before mailserver.database is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timedelta

import pytest
from sqlalchemy.orm import sessionmaker

from mailserver.config import SyncConfig
from mailserver.database import init_db, make_engine
from mailserver.services.errors import MessageNotFound
from mailserver.services.mail_sender import SendResult
from mailserver.services.metadata import MessageMetadata

MAILBOX = "me@example.com"

BASE_TIME = datetime(2025, 3, 1, 9, 0, 0)


def make_message(message_id, history_id, from_address="Alice <alice@example.com>", subject=None, minutes=0):
    return MessageMetadata(
        id=message_id,
        thread_id=f"t-{message_id}",
        from_address=from_address,
        subject=subject if subject is not None else f"Subject {message_id}",
        received_at=BASE_TIME + timedelta(minutes=minutes),
        snippet=f"snippet of {message_id}",
        history_id=history_id,
    )


class FakeProvider:
    """
    In-memory provider client.

    recent: messages returned by list_recent
    deltas: (message, token) pairs returned by list_history_since, in order
    missing: ids whose metadata fetch raises MessageNotFound
    """

    def __init__(self, recent=(), deltas=(), missing=(), list_error=None, history_error=None):
        self.recent = list(recent)
        self.deltas = list(deltas)
        self.missing = set(missing)
        self.list_error = list_error
        self.history_error = history_error
        self.messages = {m.id: m for m in self.recent}
        self.messages.update({m.id: m for m, _ in self.deltas})
        self.history_calls = []

    def list_recent(self, window_days, max_results):
        if self.list_error:
            raise self.list_error
        return [{"id": m.id, "threadId": m.thread_id} for m in self.recent]

    def list_history_since(self, cursor, max_results):
        self.history_calls.append(cursor)
        if self.history_error:
            raise self.history_error
        return [
            {"id": m.id, "threadId": m.thread_id, "historyId": str(token)}
            for m, token in self.deltas
        ]

    def get_metadata(self, message_id):
        if message_id in self.missing:
            raise MessageNotFound(message_id, "deleted before fetch")
        return self.messages[message_id]


class FakeSender:
    """Records envelopes; recipients in `failing` are rejected."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.sent = []

    def send(self, envelope):
        if envelope.to in self.failing:
            return SendResult(recipient=envelope.to, ok=False, error="550 mailbox unavailable")
        self.sent.append(envelope)
        return SendResult(recipient=envelope.to, ok=True)


@pytest.fixture
def session_factory():
    engine = make_engine("sqlite://")
    init_db(engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def sync_config():
    return SyncConfig(mailbox_address=MAILBOX, recency_window_days=30, page_size=100, fetch_workers=3)
