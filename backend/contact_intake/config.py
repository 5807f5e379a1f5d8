"""
Application settings.

All configuration is read from environment variables (optionally via a .env
file in the working directory). Nothing mail- or storage-related is
hard-coded: credentials, recipient and backends are configuration values.

Settings are loaded once per process through ``get_settings()`` and passed
explicitly to the services that need them.
"""

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv

_MB = 1024 * 1024

DEFAULT_MAX_UPLOAD_MB = 25
DEFAULT_SITE_NAME = "AQA Sports Academy"


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def _env_list(name: str) -> List[str]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for the intake pipeline and its collaborators."""

    # Uploads
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_MB * _MB
    # Empty means "any audio/*" (video/webm is always accepted).
    allowed_audio_types: tuple = ()
    upload_dir: str = "uploads"
    upload_archive_dir: Optional[str] = None

    # Submission log
    log_backend: str = "json"
    messages_file: str = "messages.json"

    # Mail
    mail_backend: str = "smtp"
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_use_ssl: bool = False
    smtp_timeout: float = 10.0
    email_user: Optional[str] = None
    email_pass: Optional[str] = None
    mail_from: Optional[str] = None
    recipient_email: Optional[str] = None
    resend_api_key: Optional[str] = None
    site_name: str = DEFAULT_SITE_NAME

    # HTTP surface
    admin_token: Optional[str] = None
    cors_origins: tuple = field(default_factory=lambda: ("*",))

    @property
    def max_upload_mb(self) -> int:
        return self.max_upload_bytes // _MB

    @property
    def sender(self) -> Optional[str]:
        """Address used in the From header (falls back to the SMTP user)."""
        return self.mail_from or self.email_user

    @property
    def recipient(self) -> Optional[str]:
        """Address notifications are delivered to (falls back to the SMTP user)."""
        return self.recipient_email or self.email_user


def load_settings() -> Settings:
    """
    Build a Settings instance from the current environment.

    Values in a local .env file are loaded first without overriding variables
    already present in the environment.
    """
    load_dotenv()

    max_mb = int(os.getenv("MAX_UPLOAD_MB", str(DEFAULT_MAX_UPLOAD_MB)))
    cors = _env_list("CORS_ORIGINS") or ["*"]

    return Settings(
        max_upload_bytes=max_mb * _MB,
        allowed_audio_types=tuple(t.lower() for t in _env_list("ALLOWED_AUDIO_TYPES")),
        upload_dir=os.getenv("UPLOAD_DIR", "uploads"),
        upload_archive_dir=os.getenv("UPLOAD_ARCHIVE_DIR") or None,
        log_backend=os.getenv("LOG_BACKEND", "json").lower().strip(),
        messages_file=os.getenv("MESSAGES_FILE", "messages.json"),
        mail_backend=os.getenv("MAIL_BACKEND", "smtp").lower().strip(),
        smtp_host=os.getenv("SMTP_HOST", "smtp.gmail.com"),
        smtp_port=int(os.getenv("SMTP_PORT", "587")),
        smtp_use_ssl=_env_bool("SMTP_USE_SSL"),
        smtp_timeout=float(os.getenv("SMTP_TIMEOUT", "10")),
        email_user=os.getenv("EMAIL_USER") or None,
        email_pass=os.getenv("EMAIL_PASS") or None,
        mail_from=os.getenv("MAIL_FROM") or None,
        recipient_email=os.getenv("RECIPIENT_EMAIL") or None,
        resend_api_key=os.getenv("RESEND_API_KEY") or None,
        site_name=os.getenv("SITE_NAME", DEFAULT_SITE_NAME),
        admin_token=os.getenv("ADMIN_TOKEN") or None,
        cors_origins=tuple(cors),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings, loading them on first use."""
    return load_settings()
