"""
Gmail API access for the inbox sync.

- SharedCredentials: stored credentials, refreshed once and saved back
- get_gmail_service: builds an authenticated API client
- GmailProvider: the provider client used by the sync engine
"""

import logging
import os
import threading
from typing import Callable, List, Optional

from google.oauth2.credentials import Credentials
from google.auth.transport.requests import Request
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from mailserver.config import GoogleConfig
from mailserver.services.errors import ListError, MessageNotFound, TransientFetchError
from mailserver.services.metadata import MessageMetadata, extract_metadata

logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/gmail.readonly",
]

TOKEN_URI = "https://oauth2.googleapis.com/token"

METADATA_HEADERS = ["From", "Subject", "Date"]


def load_credentials(config: GoogleConfig) -> Credentials:
    """
    Load stored Gmail credentials.

    Uses the saved token file when present, otherwise the refresh token from
    the environment.

    Raises:
        RuntimeError: If no credentials are configured
    """
    creds = None

    # Load existing token if available
    if os.path.exists(config.token_file):
        creds = Credentials.from_authorized_user_file(config.token_file, SCOPES)
    elif config.refresh_token:
        creds = Credentials(
            None,
            refresh_token=config.refresh_token,
            token_uri=TOKEN_URI,
            client_id=config.client_id,
            client_secret=config.client_secret,
            scopes=SCOPES,
        )

    if creds is None:
        raise RuntimeError(
            f"No Gmail credentials: provide {config.token_file} or GOOGLE_REFRESH_TOKEN"
        )

    return creds


class SharedCredentials:
    """
    One set of credentials for every thread of a provider.

    Loaded on first use and refreshed only when no longer valid. Refreshed
    tokens are saved back to the token file so the next start reuses them.
    """

    def __init__(self, config: GoogleConfig):
        self._config = config
        self._creds: Optional[Credentials] = None
        self._lock = threading.Lock()

    def get(self) -> Credentials:
        with self._lock:
            if self._creds is None:
                self._creds = load_credentials(self._config)

            if not self._creds.valid and self._creds.refresh_token:
                self._creds.refresh(Request())
                self._save()

            return self._creds

    def _save(self) -> None:
        if not self._config.token_file:
            return
        # Save credentials for next run
        with open(self._config.token_file, "w") as token:
            token.write(self._creds.to_json())
        logger.info("🔑 Refreshed Gmail token saved to %s", self._config.token_file)


def get_gmail_service(config: GoogleConfig, credentials: Optional[SharedCredentials] = None):
    """
    Creates and returns an authenticated Gmail API service instance.

    Pass `credentials` to share one token between several service objects.

    Raises:
        RuntimeError: If no credentials are configured
    """
    credentials = credentials or SharedCredentials(config)
    return build("gmail", "v1", credentials=credentials.get(), cache_discovery=False)


class GmailProvider:
    """
    Provider client backed by the Gmail API.

    The googleapiclient service object is not thread-safe, so each worker
    thread gets its own instance from `service_factory`.
    """

    def __init__(self, service_factory: Callable[[], object], user_id: str = "me"):
        self._service_factory = service_factory
        self._user_id = user_id
        self._local = threading.local()

    def _service(self):
        service = getattr(self._local, "service", None)
        if service is None:
            service = self._service_factory()
            self._local.service = service
        return service

    def list_recent(self, window_days: int, max_results: int) -> List[dict]:
        """
        List inbox message ids received within the last `window_days`.

        Follows nextPageToken until exhausted, `max_results` ids per call.

        Returns:
            List of {"id", "threadId"} dicts, newest first

        Raises:
            ListError: If any list call fails
        """
        query = f"newer_than:{window_days}d"
        messages = []
        page_token = None

        while True:
            try:
                results = self._service().users().messages().list(
                    userId=self._user_id,
                    q=query,
                    labelIds=["INBOX"],
                    maxResults=max_results,
                    pageToken=page_token
                ).execute()
            except HttpError as e:
                raise ListError(f"messages.list failed: {e}") from e

            messages.extend(results.get("messages", []))

            page_token = results.get("nextPageToken")
            if not page_token:
                break

        logger.debug("Listed %d recent messages (window=%dd)", len(messages), window_days)
        return messages

    def list_history_since(self, cursor: int, max_results: int) -> List[dict]:
        """
        List "message added" history deltas after `cursor`.

        Returns:
            List of {"id", "threadId", "historyId"} dicts, oldest to newest.
            An empty list means nothing happened since the cursor.

        Raises:
            ListError: If any history call fails (including an expired cursor)
        """
        deltas = []
        page_token = None

        while True:
            try:
                results = self._service().users().history().list(
                    userId=self._user_id,
                    startHistoryId=str(cursor),
                    historyTypes=["messageAdded"],
                    maxResults=max_results,
                    pageToken=page_token
                ).execute()
            except HttpError as e:
                raise ListError(f"history.list from {cursor} failed: {e}") from e

            for record in results.get("history", []):
                for added in record.get("messagesAdded", []):
                    msg = added.get("message", {})
                    if "id" not in msg:
                        continue
                    deltas.append({
                        "id": msg["id"],
                        "threadId": msg.get("threadId", ""),
                        "historyId": record.get("id"),
                    })

            page_token = results.get("nextPageToken")
            if not page_token:
                break

        logger.debug("Listed %d history deltas since %s", len(deltas), cursor)
        return deltas

    def get_metadata(self, message_id: str) -> MessageMetadata:
        """
        Fetch From/Subject/Date, snippet and historyId for one message.

        Raises:
            MessageNotFound: The message was deleted after it was listed
            TransientFetchError: Any other API failure
        """
        try:
            msg = self._service().users().messages().get(
                userId=self._user_id,
                id=message_id,
                format="metadata",
                metadataHeaders=METADATA_HEADERS
            ).execute()
        except HttpError as e:
            if e.resp.status == 404:
                raise MessageNotFound(message_id, "deleted before fetch") from e
            raise TransientFetchError(message_id, str(e)) from e

        return extract_metadata(msg)


def build_gmail_provider(config: Optional[GoogleConfig] = None) -> GmailProvider:
    config = config or GoogleConfig.from_env()
    credentials = SharedCredentials(config)
    return GmailProvider(lambda: get_gmail_service(config, credentials))
