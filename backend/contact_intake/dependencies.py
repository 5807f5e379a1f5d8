"""
Process-wide services and their lifecycle.

The mail dispatcher, the submission log and the pipeline are built once per
process from Settings and injected into endpoints with FastAPI's Depends().
shutdown_services() releases transports and clears the cache so the next
request (or test) builds fresh instances.
"""

import logging
from functools import lru_cache

from contact_intake.config import Settings, get_settings
from contact_intake.services.mail_dispatcher import MailDispatcher, build_dispatcher
from contact_intake.services.pipeline import SubmissionPipeline
from contact_intake.services.submission_log import SubmissionLog, build_submission_log

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_dispatcher() -> MailDispatcher:
    settings = get_settings()
    dispatcher = build_dispatcher(settings)
    logger.info(f"Mail backend: {dispatcher.name}")
    return dispatcher


@lru_cache(maxsize=1)
def get_submission_log() -> SubmissionLog:
    settings = get_settings()
    submission_log = build_submission_log(settings)
    logger.info(f"Submission log backend: {submission_log.name}")
    return submission_log


def get_pipeline() -> SubmissionPipeline:
    return SubmissionPipeline(get_settings(), get_dispatcher(), get_submission_log())


def get_app_settings() -> Settings:
    return get_settings()


def shutdown_services() -> None:
    """Close the mail transport and forget every cached service."""
    if get_dispatcher.cache_info().currsize:
        get_dispatcher().close()
    get_dispatcher.cache_clear()
    get_submission_log.cache_clear()
    get_settings.cache_clear()
