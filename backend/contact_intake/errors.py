"""
Error taxonomy for the submission intake pipeline.

ValidationError   -> HTTP 400, message is safe to show to the user.
MailError         -> HTTP 500, detail stays in the server logs.
IntakeIOError     -> storage problems; LogCorrupt is recovered locally.
"""

from enum import Enum


class IntakeError(Exception):
    """Base class for every error raised by the pipeline."""
    def __init__(self, message: str, error_code: str):
        super().__init__(message)
        self.error_code = error_code
        self.message = message


# ---------------------------------------------------------------------------
# Validation errors (client side problems)
# ---------------------------------------------------------------------------

class ValidationError(IntakeError):
    """Raised when a submission or its upload is rejected."""


class EmptySubmission(ValidationError):
    def __init__(self):
        super().__init__(
            "At least one of name, email, message or an audio recording is required.",
            "empty_submission",
        )


class FileTooLarge(ValidationError):
    def __init__(self, max_mb: int):
        super().__init__(
            f"File too large. Maximum size is {max_mb}MB.",
            "file_too_large",
        )
        self.max_mb = max_mb


class UnsupportedType(ValidationError):
    def __init__(self, mime_type: str):
        super().__init__("Only audio files are allowed.", "unsupported_type")
        self.mime_type = mime_type


class TooManyFiles(ValidationError):
    def __init__(self):
        super().__init__("Only one audio file may be sent per message.", "too_many_files")


class InvalidField(ValidationError):
    def __init__(self, field_name: str, reason: str):
        super().__init__(f"Invalid {field_name}: {reason}.", "invalid_field")
        self.field_name = field_name


class InvalidAudioEncoding(ValidationError):
    def __init__(self):
        super().__init__("Audio content is not valid base64.", "invalid_audio_encoding")


# ---------------------------------------------------------------------------
# Mail errors
# ---------------------------------------------------------------------------

class MailErrorKind(str, Enum):
    TRANSIENT = "transient"
    PERMANENT = "permanent"


class MailError(IntakeError):
    """
    Raised by a mail dispatcher when a notification could not be delivered.

    TRANSIENT: network trouble, timeouts, provider throttling (retry may work).
    PERMANENT: bad recipient, auth failure, payload rejected by the provider.
    """
    def __init__(self, kind: MailErrorKind, detail: str):
        super().__init__(detail, f"mail_{kind.value}")
        self.kind = kind
        self.detail = detail

    @property
    def retryable(self) -> bool:
        return self.kind == MailErrorKind.TRANSIENT


# ---------------------------------------------------------------------------
# Storage errors
# ---------------------------------------------------------------------------

class IntakeIOError(IntakeError):
    """Raised when upload storage or the submission log cannot be used."""


class StorageUnavailable(IntakeIOError):
    def __init__(self, detail: str):
        super().__init__(detail, "storage_unavailable")


class LogCorrupt(IntakeIOError):
    def __init__(self, detail: str):
        super().__init__(detail, "log_corrupt")
