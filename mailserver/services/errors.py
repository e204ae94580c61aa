"""
Error taxonomy for the sync engine and its collaborators.

- TransientFetchError / MessageNotFound: one message could not be fetched,
  the pass skips it and continues
- ListError: the bulk list/history call failed, the pass is aborted

Duplicate inserts are not errors; the store ignores them.
"""


class SyncError(Exception):
    """Base class for sync failures."""


class TransientFetchError(SyncError):
    """Fetching metadata for a single message failed."""

    def __init__(self, message_id: str, reason: str = ""):
        self.message_id = message_id
        self.reason = reason
        super().__init__(f"Failed to fetch message {message_id}: {reason}" if reason else f"Failed to fetch message {message_id}")


class MessageNotFound(TransientFetchError):
    """The message was deleted between list and get."""


class ListError(SyncError):
    """Listing recent messages or history deltas failed."""
