"""
Pydantic models for contact / voice-message submissions.

Models:
  SubmissionFields        — raw text fields as received from the form
  UploadHandle            — a stored audio payload plus its metadata
  ValidatedSubmission     — fields + upload after validation (immutable)
  Submission              — a submission attempt and its dispatch status
  NotificationPayload     — derived email content (never persisted)
  JsonSubmissionRequest   — request body for the JSON/base64 ingest endpoint
  SubmitResponse / ErrorResponse / HealthResponse — API responses
"""

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr


class SubmissionStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Upload handle
# ---------------------------------------------------------------------------

class UploadHandle(BaseModel):
    """
    Reference to an uploaded audio file on disk.

    The handle is owned by the submission that created it until the cleanup
    coordinator releases it. Once released the file may be gone (or archived)
    and the handle must not be read again.
    """

    key: str                # stored file name, collision resistant
    path: str               # absolute or working-dir relative path
    original_name: str
    size_bytes: int
    mime_type: str

    _released: bool = PrivateAttr(default=False)

    @property
    def released(self) -> bool:
        return self._released

    def mark_released(self) -> None:
        self._released = True

    @property
    def size_mb(self) -> float:
        return round(self.size_bytes / 1024 / 1024, 2)

    def read_bytes(self) -> bytes:
        """Return the stored payload. Raises RuntimeError once released."""
        if self._released:
            raise RuntimeError(f"Upload {self.key!r} has been released")
        return Path(self.path).read_bytes()


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------

class SubmissionFields(BaseModel):
    """Text fields of a submission. Every field is optional."""
    name: Optional[str] = None
    email: Optional[str] = None
    message: Optional[str] = None


class ValidatedSubmission(BaseModel):
    """Output of the validator: stripped fields, empty strings become None."""
    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    email: Optional[str] = None
    message: Optional[str] = None
    audio: Optional[UploadHandle] = None


def _new_id() -> str:
    return uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Submission(BaseModel):
    """
    One contact / voice-message event.

    Created PENDING on receipt. Moves exactly once to SENT or FAILED; after
    that only the cleaned_up flag may change.
    """

    id: str = Field(default_factory=_new_id)
    received_at: datetime = Field(default_factory=_utcnow)
    name: Optional[str] = None
    email: Optional[str] = None
    message: Optional[str] = None
    audio: Optional[UploadHandle] = None
    status: SubmissionStatus = SubmissionStatus.PENDING
    error_kind: Optional[str] = None
    cleaned_up: bool = False

    @classmethod
    def from_validated(cls, validated: ValidatedSubmission) -> "Submission":
        return cls(
            name=validated.name,
            email=validated.email,
            message=validated.message,
            audio=validated.audio,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status != SubmissionStatus.PENDING

    def _require_pending(self) -> None:
        if self.is_terminal:
            raise ValueError(
                f"Submission {self.id} is already {self.status.value}"
            )

    def mark_sent(self) -> None:
        self._require_pending()
        self.status = SubmissionStatus.SENT

    def mark_failed(self, error_kind: str) -> None:
        self._require_pending()
        self.status = SubmissionStatus.FAILED
        self.error_kind = error_kind

    def mark_cleaned_up(self) -> None:
        self.cleaned_up = True


# ---------------------------------------------------------------------------
# Notification
# ---------------------------------------------------------------------------

class NotificationPayload(BaseModel):
    """Email content derived from a submission. Not persisted."""
    subject: str
    text: str
    html: str
    reply_to: Optional[str] = None
    attachments: List[UploadHandle] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# API request / response bodies
# ---------------------------------------------------------------------------

class JsonSubmissionRequest(BaseModel):
    """
    Body for POST /send-message.

    audio is the base64-encoded recording; audioName its original file name.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: Optional[str] = None
    email: Optional[str] = None
    message: Optional[str] = None
    audio: Optional[str] = None
    audio_name: Optional[str] = Field(default=None, alias="audioName")


class SubmitResponse(BaseModel):
    success: bool = True
    message: str
    id: Optional[str] = None


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    error_code: Optional[str] = None


class HealthResponse(BaseModel):
    status: str = "OK"
    timestamp: str
