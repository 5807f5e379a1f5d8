"""
Submission intake pipeline.

    received -> validating -> rejected
                           -> composing -> dispatching -> sent | failed

The upload is stored first (size and type are enforced while receiving), then
validated, composed and handed to the mail dispatcher. The cleanup
coordinator wraps the whole attempt, so the temporary upload is released on
every exit path. The submission log is written once the attempt has reached a
terminal state and the upload has been released.

Policies:
  - A failed dispatch is a FAILED result (HTTP 500). The submission is still
    logged, with status "failed" and the error kind, so the admin view lists
    messages that never reached the mailbox.
  - Any other exception raised by the dispatcher is treated the same way,
    with error kind "unexpected" and the traceback in the server log.
  - A log write failure after a successful dispatch is logged server-side
    and does not change the result: the message was delivered.
  - Blocking work (mail transport, log I/O) runs in the thread pool; the log
    lock is never held while dispatching.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

from contact_intake.config import Settings
from contact_intake.errors import IntakeError, IntakeIOError, MailError, ValidationError
from contact_intake.models.submission import Submission, SubmissionFields, UploadHandle
from contact_intake.services import composer, upload_receiver, validator
from contact_intake.services.cleanup import CleanupCoordinator
from contact_intake.services.mail_dispatcher import MailDispatcher
from contact_intake.services.submission_log import SubmissionLog

logger = logging.getLogger(__name__)

# error_kind recorded when a dispatcher fails with something other than MailError
UNEXPECTED_ERROR_KIND = "unexpected"


class PipelineState(str, Enum):
    RECEIVED = "received"
    VALIDATING = "validating"
    REJECTED = "rejected"
    COMPOSING = "composing"
    DISPATCHING = "dispatching"
    SENT = "sent"
    FAILED = "failed"


@dataclass
class PipelineResult:
    """Terminal outcome of one submission attempt."""
    state: PipelineState
    submission: Optional[Submission] = None
    error: Optional[IntakeError] = None

    @property
    def ok(self) -> bool:
        return self.state == PipelineState.SENT


StoreStep = Callable[[], Awaitable[Optional[UploadHandle]]]


class SubmissionPipeline:
    """One parameterised pipeline shared by every ingest endpoint."""

    def __init__(
        self,
        settings: Settings,
        dispatcher: MailDispatcher,
        submission_log: SubmissionLog,
    ):
        self.settings = settings
        self.dispatcher = dispatcher
        self.submission_log = submission_log

    async def process(
        self,
        fields: SubmissionFields,
        upload_file: Optional[UploadFile] = None,
    ) -> PipelineResult:
        """Run the pipeline for a multipart submission."""
        async def store() -> Optional[UploadHandle]:
            return await upload_receiver.receive(upload_file, self.settings)

        return await self._run(fields, store)

    async def process_bytes(
        self,
        fields: SubmissionFields,
        content: Optional[bytes],
        original_name: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> PipelineResult:
        """Run the pipeline for an already-decoded audio payload (JSON ingest)."""
        async def store() -> Optional[UploadHandle]:
            if not content:
                return None
            return await run_in_threadpool(
                upload_receiver.store_bytes, content, original_name, mime_type, self.settings
            )

        return await self._run(fields, store)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run(self, fields: SubmissionFields, store: StoreStep) -> PipelineResult:
        cleanup = CleanupCoordinator(self.settings.upload_archive_dir)

        async def attempt(cleanup: CleanupCoordinator) -> PipelineResult:
            return await self._attempt(cleanup, fields, store)

        result = await cleanup.run(attempt)

        if result.submission is not None:
            result.submission.mark_cleaned_up()
            await self._record(result.submission)
        return result

    async def _attempt(
        self,
        cleanup: CleanupCoordinator,
        fields: SubmissionFields,
        store: StoreStep,
    ) -> PipelineResult:
        logger.info(f"Submission {PipelineState.RECEIVED.value}")

        try:
            handle = cleanup.track(await store())
            logger.info(f"Submission {PipelineState.VALIDATING.value}")
            validated = validator.validate(fields, handle)
        except ValidationError as e:
            logger.info(f"Submission {PipelineState.REJECTED.value}: {e.error_code}")
            return PipelineResult(PipelineState.REJECTED, error=e)

        submission = Submission.from_validated(validated)
        logger.info(f"Submission {submission.id} {PipelineState.COMPOSING.value}")
        payload = composer.compose(submission, site_name=self.settings.site_name)

        logger.info(f"Submission {submission.id} {PipelineState.DISPATCHING.value} via {self.dispatcher.name}")
        try:
            await run_in_threadpool(self.dispatcher.send, payload)
        except MailError as e:
            logger.error(
                f"Submission {submission.id} {PipelineState.FAILED.value}: "
                f"{e.kind.value} mail error: {e.detail}"
            )
            submission.mark_failed(e.kind.value)
            return PipelineResult(PipelineState.FAILED, submission=submission, error=e)
        except Exception:
            logger.exception(
                f"Submission {submission.id} {PipelineState.FAILED.value}: unexpected dispatch error"
            )
            submission.mark_failed(UNEXPECTED_ERROR_KIND)
            return PipelineResult(
                PipelineState.FAILED,
                submission=submission,
                error=IntakeError("Unexpected dispatch error", "dispatch_failed"),
            )

        submission.mark_sent()
        cleanup.archive_on_release()
        logger.info(f"Submission {submission.id} {PipelineState.SENT.value}")
        return PipelineResult(PipelineState.SENT, submission=submission)

    async def _record(self, submission: Submission) -> None:
        try:
            await run_in_threadpool(self.submission_log.append, submission)
        except IntakeIOError as e:
            logger.error(f"Could not log submission {submission.id}: {e.message}")

