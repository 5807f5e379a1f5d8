"""
Upload receiver: accepts an audio file from a multipart submission and
stores it in the temporary upload directory.

Checks run before any bytes are written when possible:
  1. declared MIME type against the audio allow-list
  2. declared size (UploadFile.size) against the configured ceiling

The payload is then streamed to disk in chunks; the copy aborts with
FileTooLarge as soon as the limit is crossed and the partial file is removed.
"""

import logging
import mimetypes
import os
import re
import secrets
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fastapi import UploadFile

from contact_intake.config import Settings
from contact_intake.errors import FileTooLarge, StorageUnavailable, UnsupportedType
from contact_intake.models.submission import UploadHandle

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024
_DEFAULT_EXTENSION = ".webm"
_GENERIC_TYPES = ("", "application/octet-stream")

# mimetypes does not know every recorder output
_EXTENSION_BY_TYPE = {
    "audio/webm": ".webm",
    "video/webm": ".webm",
    "audio/ogg": ".ogg",
    "audio/mpeg": ".mp3",
    "audio/mp3": ".mp3",
    "audio/mp4": ".m4a",
    "audio/x-m4a": ".m4a",
    "audio/wav": ".wav",
    "audio/x-wav": ".wav",
    "audio/aac": ".aac",
}


# ---------------------------------------------------------------------------
# Type and naming helpers
# ---------------------------------------------------------------------------

def normalize_mime_type(mime_type: Optional[str]) -> str:
    """Lower-case the type and drop parameters such as ';codecs=opus'."""
    return (mime_type or "").split(";", 1)[0].strip().lower()


def is_allowed_audio(mime_type: Optional[str], filename: Optional[str], settings: Settings) -> bool:
    """
    Return True if the declared type is an accepted audio type.

    Browser recorders (MediaRecorder) often label webm audio as video/webm,
    and some clients send webm files with no useful type at all, so both are
    accepted alongside audio/*.
    """
    mime = normalize_mime_type(mime_type)
    if mime == "video/webm":
        return True
    if mime in _GENERIC_TYPES:
        return (filename or "").lower().endswith(".webm")
    if not mime.startswith("audio/"):
        return False
    if settings.allowed_audio_types:
        return mime in settings.allowed_audio_types
    return True


def _extension_for(filename: Optional[str], mime_type: str) -> str:
    suffix = Path(filename or "").suffix.lower()
    if suffix and re.fullmatch(r"\.[a-z0-9]{1,8}", suffix):
        return suffix
    return (
        _EXTENSION_BY_TYPE.get(mime_type)
        or mimetypes.guess_extension(mime_type or "")
        or _DEFAULT_EXTENSION
    )


def generate_storage_key(filename: Optional[str], mime_type: str) -> str:
    """
    Build a collision resistant file name.

    Format: voice_message_{UTC timestamp with microseconds}_{8 hex}{ext}
    """
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
    suffix = secrets.token_hex(4)
    return f"voice_message_{timestamp}_{suffix}{_extension_for(filename, mime_type)}"


def ensure_upload_dir(settings: Settings) -> Path:
    """Create the upload directory if it does not exist yet (idempotent)."""
    directory = Path(settings.upload_dir)
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise StorageUnavailable(f"Cannot create upload directory {directory}: {e}")
    return directory


def _remove_partial(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Could not remove partial upload {path}: {e}")


def _check_type(mime_type: str, filename: Optional[str], settings: Settings) -> None:
    if not is_allowed_audio(mime_type, filename, settings):
        logger.info(f"Rejected upload {filename!r}: unsupported type {mime_type!r}")
        raise UnsupportedType(mime_type)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def receive(file: Optional[UploadFile], settings: Settings) -> Optional[UploadHandle]:
    """
    Validate and store an uploaded audio file.

    Returns None when no file was sent (absent field, or an empty part with
    no filename, which is what browsers send for an untouched file input).

    Raises:
        UnsupportedType:     declared type is not an accepted audio type
        FileTooLarge:        payload exceeds settings.max_upload_bytes
        StorageUnavailable:  the upload directory cannot be written
    """
    if file is None or not file.filename:
        return None

    mime_type = normalize_mime_type(file.content_type)
    _check_type(mime_type, file.filename, settings)
    if mime_type in _GENERIC_TYPES:
        mime_type = "audio/webm"

    # Declared size check (before reading any content)
    if file.size is not None and file.size > settings.max_upload_bytes:
        raise FileTooLarge(settings.max_upload_mb)

    directory = ensure_upload_dir(settings)
    key = generate_storage_key(file.filename, mime_type)
    path = directory / key

    written = 0
    try:
        with open(path, "wb") as out:
            while True:
                chunk = await file.read(_CHUNK_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                # Double-check size while streaming (in case .size was not set)
                if written > settings.max_upload_bytes:
                    raise FileTooLarge(settings.max_upload_mb)
                out.write(chunk)
    except FileTooLarge:
        _remove_partial(path)
        raise
    except OSError as e:
        _remove_partial(path)
        raise StorageUnavailable(f"Failed to store upload: {e}")
    except BaseException:
        # Client disconnect / cancellation mid-copy
        _remove_partial(path)
        raise

    if written == 0:
        _remove_partial(path)
        return None

    logger.info(f"Stored upload {key} ({written} bytes, {mime_type})")
    return UploadHandle(
        key=key,
        path=str(path),
        original_name=file.filename,
        size_bytes=written,
        mime_type=mime_type,
    )


def store_bytes(
    content: bytes,
    original_name: Optional[str],
    mime_type: Optional[str],
    settings: Settings,
) -> Optional[UploadHandle]:
    """
    Store an already-decoded payload (JSON/base64 ingest).

    The MIME type is guessed from original_name when not given, so a
    "recording.webm" sent without a type is treated as video/webm.
    """
    if not content:
        return None

    resolved = normalize_mime_type(mime_type)
    if not resolved and original_name:
        resolved = normalize_mime_type(mimetypes.guess_type(original_name)[0])
    name = original_name or f"voice-message{_extension_for(None, resolved)}"
    _check_type(resolved, name, settings)
    if resolved in _GENERIC_TYPES:
        resolved = "audio/webm"

    if len(content) > settings.max_upload_bytes:
        raise FileTooLarge(settings.max_upload_mb)

    directory = ensure_upload_dir(settings)
    key = generate_storage_key(name, resolved)
    path = directory / key
    try:
        with open(path, "wb") as out:
            out.write(content)
    except OSError as e:
        _remove_partial(path)
        raise StorageUnavailable(f"Failed to store upload: {e}")

    logger.info(f"Stored upload {key} ({len(content)} bytes, {resolved})")
    return UploadHandle(
        key=key,
        path=str(path),
        original_name=name,
        size_bytes=len(content),
        mime_type=resolved,
    )
