"""
FastAPI dependencies for the mail server's collaborators.

Routes never build clients themselves; tests swap these out through
app.dependency_overrides.
"""

from functools import lru_cache

from mailserver.config import GoogleConfig, SmtpConfig, SyncConfig
from mailserver.services.gmail_service import GmailProvider, build_gmail_provider
from mailserver.services.mail_sender import MailSender, SmtpMailSender


@lru_cache
def get_sync_config() -> SyncConfig:
    return SyncConfig.from_env()


@lru_cache
def get_smtp_config() -> SmtpConfig:
    return SmtpConfig.from_env()


@lru_cache
def get_google_config() -> GoogleConfig:
    return GoogleConfig.from_env()


@lru_cache
def get_provider() -> GmailProvider:
    """Gmail provider shared by every pass, so its credentials are refreshed once."""
    return build_gmail_provider(get_google_config())


def get_mail_sender() -> MailSender:
    return SmtpMailSender(get_smtp_config())
