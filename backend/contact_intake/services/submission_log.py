"""
Submission log: append-only record of submissions for the admin view.

Backends (LOG_BACKEND):
  - json      (default) a JSON array in MESSAGES_FILE
  - supabase  rows in the "submissions" table
  - none      persistence disabled

JSON backend recovery policy
----------------------------
A missing file is an empty log. A corrupt file (invalid JSON, or JSON that is
not an array) is reported as LogCorrupt in the server logs and treated as an
empty log, so the next append rewrites the file as [new submission]. Bytes
that are not valid UTF-8 count as corrupt too. The corrupt content is given
up; new submissions are never dropped because of it.

Appends are read-modify-write, so they are serialised with a lock and the
file is replaced atomically (temp file + os.replace). Readers never see a
half-written array.

The lock is per process. Run a single worker with the JSON backend
(``uvicorn --workers 1``); concurrent appends from several worker processes
can overwrite each other. Use LOG_BACKEND=supabase for multi-worker
deployments.
"""

import json
import logging
import os
import threading
from pathlib import Path
from typing import Callable, List, Optional, Protocol
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from contact_intake.config import Settings
from contact_intake.db import get_supabase_admin
from contact_intake.errors import LogCorrupt, StorageUnavailable
from contact_intake.models.submission import Submission

logger = logging.getLogger(__name__)


class SubmissionLog(Protocol):
    name: str

    def append(self, submission: Submission) -> None:  # pragma: no cover - protocol
        ...

    def list_all(self) -> List[Submission]:  # pragma: no cover - protocol
        ...


def _parse_entries(entries: list) -> List[Submission]:
    submissions: List[Submission] = []
    for entry in entries:
        try:
            submissions.append(Submission.model_validate(entry))
        except PydanticValidationError as e:
            logger.warning(f"Skipping unreadable submission log entry: {e.error_count()} error(s)")
    return submissions


# ---------------------------------------------------------------------------
# JSON file
# ---------------------------------------------------------------------------

class JsonFileSubmissionLog:
    """Submission log stored as a pretty-printed JSON array on disk."""

    name = "json"

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read_entries(self) -> list:
        """Load the raw array. Caller must hold the lock."""
        if not self.path.exists():
            return []
        try:
            raw = self.path.read_bytes()
        except OSError as e:
            raise StorageUnavailable(f"Cannot read submission log {self.path}: {e}")
        if not raw.strip():
            return []

        try:
            data = json.loads(raw.decode("utf-8"))
            if not isinstance(data, list):
                raise LogCorrupt(f"expected a JSON array, found {type(data).__name__}")
        except (UnicodeDecodeError, json.JSONDecodeError, LogCorrupt) as e:
            logger.warning(f"Submission log {self.path} is corrupt ({e}); starting from an empty log")
            return []
        return data

    def _write_entries(self, entries: list) -> None:
        """Atomically replace the log file. Caller must hold the lock."""
        tmp_path = self.path.with_name(f".{self.path.name}.{uuid4().hex}.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as fh:
                json.dump(entries, fh, indent=2, ensure_ascii=False)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, self.path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise StorageUnavailable(f"Cannot write submission log {self.path}: {e}")

    def append(self, submission: Submission) -> None:
        entry = submission.model_dump(mode="json")
        with self._lock:
            entries = self._read_entries()
            entries.append(entry)
            self._write_entries(entries)
        logger.info(f"Logged submission {submission.id} ({submission.status.value})")

    def list_all(self) -> List[Submission]:
        with self._lock:
            entries = self._read_entries()
        return _parse_entries(entries)


# ---------------------------------------------------------------------------
# Supabase
# ---------------------------------------------------------------------------

class SupabaseSubmissionLog:
    """Submission log stored in a Supabase table (audio metadata as jsonb)."""

    name = "supabase"
    table = "submissions"

    def __init__(self, client=None):
        self._client = client or get_supabase_admin()
        if self._client is None:
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY are required for the supabase log backend")

    def append(self, submission: Submission) -> None:
        try:
            self._client.table(self.table).insert(submission.model_dump(mode="json")).execute()
        except Exception as e:
            raise StorageUnavailable(f"Failed to insert submission {submission.id}: {e}")
        logger.info(f"Logged submission {submission.id} ({submission.status.value})")

    def list_all(self) -> List[Submission]:
        try:
            result = (
                self._client.table(self.table)
                .select("*")
                .order("received_at")
                .execute()
            )
        except Exception as e:
            raise StorageUnavailable(f"Failed to load submissions: {e}")
        return _parse_entries(result.data or [])


# ---------------------------------------------------------------------------
# Disabled
# ---------------------------------------------------------------------------

class DisabledSubmissionLog:
    """Used when LOG_BACKEND=none: submissions are mailed but not recorded."""

    name = "none"

    def append(self, submission: Submission) -> None:
        pass

    def list_all(self) -> List[Submission]:
        return []


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

_LOGS: dict[str, Callable[[Settings], SubmissionLog]] = {
    "json": lambda settings: JsonFileSubmissionLog(settings.messages_file),
    "supabase": lambda settings: SupabaseSubmissionLog(),
    "none": lambda settings: DisabledSubmissionLog(),
}


def build_submission_log(settings: Settings) -> SubmissionLog:
    """
    Create the log selected by settings.log_backend.

    Raises ValueError for unknown backend names.
    """
    factory: Optional[Callable[[Settings], SubmissionLog]] = _LOGS.get(settings.log_backend)
    if factory is None:
        raise ValueError(
            f"Unknown log backend {settings.log_backend!r}. "
            f"Supported backends: {sorted(_LOGS)}"
        )
    return factory(settings)
