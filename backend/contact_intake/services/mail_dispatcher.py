"""
Mail dispatcher service.

Hands a composed NotificationPayload to a mail transport. The pipeline only
relies on the MailDispatcher protocol: send() returns normally on success
and raises MailError (TRANSIENT or PERMANENT) on failure.

Supported backends (MAIL_BACKEND):
  - smtp     (default) any SMTP relay, STARTTLS or implicit TLS
  - resend   Resend HTTP API (https://resend.com/docs/api-reference/emails)
  - console  logs the notification instead of sending it (local development)

Adding a new backend:
  1. Write a class implementing send() / verify() / close().
  2. Register its factory in _DISPATCHERS.
  3. Set MAIL_BACKEND=<name> in the environment.
"""

import base64
import logging
import smtplib
import ssl
from email.message import EmailMessage
from typing import Callable, Optional, Protocol

import httpx

from contact_intake.config import Settings
from contact_intake.errors import MailError, MailErrorKind
from contact_intake.models.submission import NotificationPayload

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
RESEND_DEFAULT_SENDER = "onboarding@resend.dev"

# HTTP statuses from Resend that are worth retrying
_RETRYABLE_STATUSES = {408, 429}


class MailDispatcher(Protocol):
    """Protocol implemented by every mail backend."""

    name: str

    def send(self, payload: NotificationPayload) -> None:  # pragma: no cover - protocol
        ...

    def verify(self) -> bool:  # pragma: no cover - protocol
        ...

    def close(self) -> None:  # pragma: no cover - protocol
        ...


def _transient(detail: str) -> MailError:
    return MailError(MailErrorKind.TRANSIENT, detail)


def _permanent(detail: str) -> MailError:
    return MailError(MailErrorKind.PERMANENT, detail)


# ---------------------------------------------------------------------------
# SMTP
# ---------------------------------------------------------------------------

class SmtpMailDispatcher:
    """Send notifications through an SMTP relay with the standard library client."""

    name = "smtp"

    def __init__(self, settings: Settings):
        self.settings = settings

    def _connect(self) -> smtplib.SMTP:
        s = self.settings
        context = ssl.create_default_context()
        if s.smtp_use_ssl:
            smtp = smtplib.SMTP_SSL(s.smtp_host, s.smtp_port, timeout=s.smtp_timeout, context=context)
        else:
            smtp = smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=s.smtp_timeout)
        try:
            if not s.smtp_use_ssl:
                smtp.starttls(context=context)
            if s.email_user and s.email_pass:
                smtp.login(s.email_user, s.email_pass)
        except Exception:
            smtp.close()
            raise
        return smtp

    def build_message(self, payload: NotificationPayload) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.settings.sender
        msg["To"] = self.settings.recipient
        msg["Subject"] = payload.subject
        if payload.reply_to:
            msg["Reply-To"] = payload.reply_to
        msg.set_content(payload.text)
        msg.add_alternative(payload.html, subtype="html")

        for handle in payload.attachments:
            maintype, _, subtype = handle.mime_type.partition("/")
            msg.add_attachment(
                handle.read_bytes(),
                maintype=maintype or "application",
                subtype=subtype or "octet-stream",
                filename=handle.original_name,
            )
        return msg

    def send(self, payload: NotificationPayload) -> None:
        if not self.settings.sender or not self.settings.recipient:
            raise _permanent("SMTP sender/recipient not configured (EMAIL_USER, RECIPIENT_EMAIL)")

        try:
            msg = self.build_message(payload)
        except ValueError as e:
            # e.g. CR/LF in a header value
            raise _permanent(f"Cannot build notification message: {e}")

        try:
            with self._connect() as smtp:
                smtp.send_message(msg)
        except smtplib.SMTPAuthenticationError as e:
            raise _permanent(f"SMTP authentication failed: {e.smtp_code} {e.smtp_error!r}")
        except smtplib.SMTPRecipientsRefused as e:
            raise _permanent(f"SMTP recipients refused: {list(e.recipients)}")
        except smtplib.SMTPSenderRefused as e:
            raise _permanent(f"SMTP sender refused: {e.sender}")
        except smtplib.SMTPResponseException as e:
            detail = f"SMTP error {e.smtp_code}: {e.smtp_error!r}"
            if e.smtp_code >= 500:
                raise _permanent(detail)
            raise _transient(detail)
        except (smtplib.SMTPException, OSError) as e:
            raise _transient(f"SMTP transport error: {e}")

        logger.info(f"Notification sent via SMTP to {self.settings.recipient}")

    def verify(self) -> bool:
        """Open a connection, authenticate and NOOP. Never raises."""
        try:
            with self._connect() as smtp:
                smtp.noop()
        except (smtplib.SMTPException, OSError) as e:
            logger.warning(f"Email configuration error: {e}")
            return False
        logger.info(f"Email server ready ({self.settings.smtp_host}:{self.settings.smtp_port})")
        return True

    def close(self) -> None:
        # Connections are opened per message
        pass


# ---------------------------------------------------------------------------
# Resend
# ---------------------------------------------------------------------------

class ResendMailDispatcher:
    """Send notifications through the Resend HTTP API."""

    name = "resend"

    def __init__(self, settings: Settings, client: Optional[httpx.Client] = None):
        self.settings = settings
        self._client = client or httpx.Client(timeout=settings.smtp_timeout)

    def _sender(self) -> str:
        return self.settings.sender or f"{self.settings.site_name} <{RESEND_DEFAULT_SENDER}>"

    def build_body(self, payload: NotificationPayload) -> dict:
        body = {
            "from": self._sender(),
            "to": [self.settings.recipient],
            "subject": payload.subject,
            "html": payload.html,
            "text": payload.text,
        }
        if payload.reply_to:
            body["reply_to"] = payload.reply_to
        if payload.attachments:
            body["attachments"] = [
                {
                    "filename": handle.original_name,
                    "content": base64.b64encode(handle.read_bytes()).decode(),
                    "content_type": handle.mime_type,
                }
                for handle in payload.attachments
            ]
        return body

    def send(self, payload: NotificationPayload) -> None:
        if not self.settings.resend_api_key:
            raise _permanent("RESEND_API_KEY is required for the resend mail backend")
        if not self.settings.recipient:
            raise _permanent("RECIPIENT_EMAIL is not configured")

        try:
            response = self._client.post(
                RESEND_API_URL,
                json=self.build_body(payload),
                headers={"Authorization": f"Bearer {self.settings.resend_api_key}"},
            )
        except httpx.TimeoutException as e:
            raise _transient(f"Resend request timed out: {e}")
        except httpx.TransportError as e:
            raise _transient(f"Resend transport error: {e}")

        if response.is_success:
            logger.info(f"Notification sent via Resend to {self.settings.recipient}")
            return

        detail = f"Resend returned {response.status_code}: {response.text[:500]}"
        if response.status_code in _RETRYABLE_STATUSES or response.status_code >= 500:
            raise _transient(detail)
        raise _permanent(detail)

    def verify(self) -> bool:
        if not self.settings.resend_api_key:
            logger.warning("Email configuration error: RESEND_API_KEY is not set")
            return False
        logger.info("Resend mail backend configured")
        return True

    def close(self) -> None:
        self._client.close()


# ---------------------------------------------------------------------------
# Console
# ---------------------------------------------------------------------------

class ConsoleMailDispatcher:
    """Log notifications instead of sending them."""

    name = "console"

    def __init__(self, settings: Settings):
        self.settings = settings

    def send(self, payload: NotificationPayload) -> None:
        logger.info(
            f"[console mail] to={self.settings.recipient!r} subject={payload.subject!r} "
            f"attachments={[a.original_name for a in payload.attachments]}"
        )

    def verify(self) -> bool:
        return True

    def close(self) -> None:
        pass


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

_DISPATCHERS: dict[str, Callable[[Settings], MailDispatcher]] = {
    "smtp": SmtpMailDispatcher,
    "resend": ResendMailDispatcher,
    "console": ConsoleMailDispatcher,
}


def build_dispatcher(settings: Settings) -> MailDispatcher:
    """
    Create the dispatcher selected by settings.mail_backend.

    Raises ValueError for unknown backend names.
    """
    factory = _DISPATCHERS.get(settings.mail_backend)
    if factory is None:
        raise ValueError(
            f"Unknown mail backend {settings.mail_backend!r}. "
            f"Supported backends: {sorted(_DISPATCHERS)}"
        )
    return factory(settings)
