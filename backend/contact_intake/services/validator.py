"""
Submission validator.

The one business rule every form variant shares: a submission must carry at
least one of name, email, message or an audio recording. Field-level limits
keep notification emails readable and reject obviously broken addresses.
"""

import re
from typing import Optional

from contact_intake.errors import EmptySubmission, InvalidField
from contact_intake.models.submission import SubmissionFields, UploadHandle, ValidatedSubmission

MAX_NAME_LENGTH = 200
MAX_EMAIL_LENGTH = 254
MAX_MESSAGE_LENGTH = 5000

_EMAIL_RE = re.compile(r"^[^@\s<>]+@[^@\s<>]+\.[^@\s<>]+$")
_LINE_BREAK_RE = re.compile(r"[\r\n]")


def _clean(value: Optional[str]) -> Optional[str]:
    """Strip surrounding whitespace; empty strings become None."""
    if value is None:
        return None
    value = value.strip()
    return value or None


def validate(fields: SubmissionFields, upload: Optional[UploadHandle] = None) -> ValidatedSubmission:
    """
    Validate submission fields and return a new ValidatedSubmission.

    Pure function: the input model is not modified.

    Raises:
        EmptySubmission: name, email and message are all empty and no upload
        InvalidField:    a present field violates its length/format limit,
                         or the name spans several lines
    """
    name = _clean(fields.name)
    email = _clean(fields.email)
    message = _clean(fields.message)

    if name is None and email is None and message is None and upload is None:
        raise EmptySubmission()

    if name is not None:
        if len(name) > MAX_NAME_LENGTH:
            raise InvalidField("name", f"must be at most {MAX_NAME_LENGTH} characters")
        # Ends up in the Subject header
        if _LINE_BREAK_RE.search(name):
            raise InvalidField("name", "must be a single line")
    if email is not None:
        if len(email) > MAX_EMAIL_LENGTH:
            raise InvalidField("email", f"must be at most {MAX_EMAIL_LENGTH} characters")
        if not _EMAIL_RE.match(email):
            raise InvalidField("email", "not a valid email address")
    if message is not None and len(message) > MAX_MESSAGE_LENGTH:
        raise InvalidField("message", f"must be at most {MAX_MESSAGE_LENGTH} characters")

    return ValidatedSubmission(name=name, email=email, message=message, audio=upload)
