"""
Runtime configuration, read once from the environment (.env supported).

Each collaborator gets its own explicit config object instead of reading
os.environ on its own.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class SyncConfig:
    """Settings for the inbox sync engine."""
    mailbox_address: str
    recency_window_days: int = 30
    page_size: int = 100
    fetch_workers: int = 4
    interval_seconds: int = 0  # 0 disables the scheduled tick

    @classmethod
    def from_env(cls) -> "SyncConfig":
        return cls(
            mailbox_address=os.getenv("MAILBOX_ADDRESS", os.getenv("SMTP_USER", "")),
            recency_window_days=int(os.getenv("SYNC_WINDOW_DAYS", "30")),
            page_size=int(os.getenv("SYNC_PAGE_SIZE", "100")),
            fetch_workers=int(os.getenv("SYNC_FETCH_WORKERS", "4")),
            interval_seconds=int(os.getenv("SYNC_INTERVAL_SECONDS", "0")),
        )


@dataclass(frozen=True)
class SmtpConfig:
    """Settings for outgoing mail."""
    user: str
    password: str
    host: str = "smtp.gmail.com"
    port: int = 587
    use_ssl: bool = False
    timeout: float = 30.0

    @classmethod
    def from_env(cls) -> "SmtpConfig":
        return cls(
            user=os.getenv("SMTP_USER", ""),
            password=os.getenv("SMTP_PASS", ""),
            host=os.getenv("SMTP_HOST", "smtp.gmail.com"),
            port=int(os.getenv("SMTP_PORT", "587")),
            use_ssl=_env_bool("SMTP_USE_SSL"),
        )


@dataclass(frozen=True)
class GoogleConfig:
    """Credentials used to build the Gmail API client."""
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    refresh_token: Optional[str] = None
    token_file: str = "token.json"

    @classmethod
    def from_env(cls) -> "GoogleConfig":
        return cls(
            client_id=os.getenv("GOOGLE_CLIENT_ID"),
            client_secret=os.getenv("GOOGLE_CLIENT_SECRET"),
            refresh_token=os.getenv("GOOGLE_REFRESH_TOKEN"),
            token_file=os.getenv("GOOGLE_TOKEN_FILE", "token.json"),
        )
