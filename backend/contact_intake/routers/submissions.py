"""
Submission router.

Endpoints:
  POST /upload         — multipart form: name, email, message + one audio file
  POST /send-message   — JSON body with an optional base64 audio recording
  GET  /messages       — logged submissions, oldest first (admin view)
  GET  /submissions    — alias of /messages

Response shapes:
  200  {"success": true,  "message": "...", "id": "<submission id>"}
  400  {"success": false, "error": "<user-facing reason>", "error_code": "..."}
  500  {"success": false, "error": "Failed to send message", "error_code": "..."}

Environment variables
---------------------
ADMIN_TOKEN   When set, GET /messages requires a matching X-Admin-Token header.
"""

import base64
import binascii
import logging
import re
import secrets
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Header, HTTPException, UploadFile
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from contact_intake.config import Settings
from contact_intake.dependencies import get_app_settings, get_pipeline, get_submission_log
from contact_intake.errors import InvalidAudioEncoding, TooManyFiles
from contact_intake.models.submission import (
    ErrorResponse,
    JsonSubmissionRequest,
    Submission,
    SubmissionFields,
    SubmitResponse,
)
from contact_intake.services.pipeline import PipelineResult, PipelineState, SubmissionPipeline
from contact_intake.services.submission_log import SubmissionLog

logger = logging.getLogger(__name__)

router = APIRouter()

# data:audio/webm;codecs=opus;base64,....  (FileReader.readAsDataURL output)
_DATA_URL_RE = re.compile(r"^data:(?P<mime>[^;,]*)(?:;[^,]*)?;base64,", re.IGNORECASE)

SUCCESS_MESSAGE = "Message received successfully"
DISPATCH_FAILED_MESSAGE = "Failed to send message"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _result_response(result: PipelineResult) -> JSONResponse:
    """Map a terminal pipeline state to the HTTP response."""
    if result.state == PipelineState.SENT:
        body = SubmitResponse(message=SUCCESS_MESSAGE, id=result.submission.id)
        return JSONResponse(status_code=200, content=body.model_dump())

    if result.state == PipelineState.REJECTED:
        body = ErrorResponse(error=result.error.message, error_code=result.error.error_code)
        return JSONResponse(status_code=400, content=body.model_dump())

    # FAILED: mail detail stays in the server logs
    body = ErrorResponse(
        error=DISPATCH_FAILED_MESSAGE,
        error_code=result.error.error_code if result.error else "dispatch_failed",
    )
    return JSONResponse(status_code=500, content=body.model_dump())


def _pick_audio(*candidates: Optional[UploadFile]) -> Optional[UploadFile]:
    """
    Return the single audio file sent under any of the accepted field names.

    Browsers submit an untouched file input as an empty part without a
    filename; those are ignored.
    """
    present = [f for f in candidates if f is not None and f.filename]
    if len(present) > 1:
        raise TooManyFiles()
    return present[0] if present else None


def _decode_audio(encoded: Optional[str]) -> tuple[Optional[bytes], Optional[str]]:
    """Decode base64 (optionally a data: URL). Returns (content, mime_type)."""
    if not encoded:
        return None, None

    mime_type = None
    match = _DATA_URL_RE.match(encoded)
    if match:
        mime_type = match.group("mime") or None
        encoded = encoded[match.end():]

    try:
        content = base64.b64decode("".join(encoded.split()), validate=True)
    except (binascii.Error, ValueError):
        raise InvalidAudioEncoding()
    return content, mime_type


def _verify_admin_token(
    x_admin_token: Optional[str] = Header(None),
    settings: Settings = Depends(get_app_settings),
) -> None:
    """
    Protect the admin view when ADMIN_TOKEN is configured.

    Without ADMIN_TOKEN the view is open, matching a local-only deployment.
    """
    expected = settings.admin_token
    if not expected:
        return
    if not x_admin_token or not secrets.compare_digest(x_admin_token, expected):
        raise HTTPException(status_code=401, detail="Invalid admin token")


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/upload")
async def upload_submission(
    name: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    message: Optional[str] = Form(None),
    client_name: Optional[str] = Form(None, alias="clientName"),
    client_email: Optional[str] = Form(None, alias="clientEmail"),
    audio_file: Optional[UploadFile] = File(None, alias="audioFile"),
    audio: Optional[UploadFile] = File(None),
    file: Optional[UploadFile] = File(None),
    pipeline: SubmissionPipeline = Depends(get_pipeline),
) -> JSONResponse:
    """
    Receive a contact / voice-message submission and email it.

    The audio recording may be sent as audioFile, audio or file (at most one).
    clientName / clientEmail are accepted as aliases of name / email.
    """
    upload = _pick_audio(audio_file, audio, file)
    fields = SubmissionFields(
        name=name or client_name,
        email=email or client_email,
        message=message,
    )
    logger.info(
        f"Upload request received: has_audio={upload is not None}, "
        f"content_type={upload.content_type if upload else None!r}"
    )

    result = await pipeline.process(fields, upload)
    return _result_response(result)


@router.post("/send-message")
async def send_message(
    body: JsonSubmissionRequest,
    pipeline: SubmissionPipeline = Depends(get_pipeline),
) -> JSONResponse:
    """
    JSON variant of /upload for clients that base64-encode the recording.

    The MIME type is taken from a data: URL prefix when present, otherwise
    guessed from audioName.
    """
    content, mime_type = _decode_audio(body.audio)
    fields = SubmissionFields(name=body.name, email=body.email, message=body.message)

    result = await pipeline.process_bytes(fields, content, body.audio_name, mime_type)
    return _result_response(result)


@router.get("/messages", response_model=List[Submission], dependencies=[Depends(_verify_admin_token)])
@router.get("/submissions", response_model=List[Submission], dependencies=[Depends(_verify_admin_token)])
async def list_submissions(
    submission_log: SubmissionLog = Depends(get_submission_log),
) -> List[Submission]:
    """Return every logged submission in arrival order."""
    return await run_in_threadpool(submission_log.list_all)
