"""
Shared fixtures for the contact intake tests.

Everything runs against a temporary directory and a fake mail dispatcher;
no SMTP server, Resend API or Supabase project is contacted.
"""

import os
from unittest.mock import patch

import pytest

# Ensure env vars are set before importing anything that triggers app imports
os.environ.setdefault("MAIL_BACKEND", "console")
os.environ.setdefault("LOG_BACKEND", "none")

from fastapi.testclient import TestClient

from contact_intake.config import Settings
from contact_intake.models.submission import NotificationPayload
from contact_intake.services.pipeline import SubmissionPipeline
from contact_intake.services.submission_log import JsonFileSubmissionLog


class FakeDispatcher:
    """Records notifications; raises `error` from send() when set."""

    name = "fake"

    def __init__(self, error: Exception | None = None):
        self.error = error
        self.sent: list[NotificationPayload] = []
        self.attachment_bytes: list[bytes] = []
        self.attachment_existed: list[bool] = []

    def send(self, payload: NotificationPayload) -> None:
        for handle in payload.attachments:
            self.attachment_existed.append(os.path.exists(handle.path))
            self.attachment_bytes.append(handle.read_bytes())
        self.sent.append(payload)
        if self.error is not None:
            raise self.error

    def verify(self) -> bool:
        return True

    def close(self) -> None:
        pass


@pytest.fixture()
def settings(tmp_path):
    return Settings(
        max_upload_bytes=1024 * 1024,  # 1 MB keeps oversize tests cheap
        upload_dir=str(tmp_path / "uploads"),
        messages_file=str(tmp_path / "messages.json"),
        mail_backend="console",
        email_user="site@example.com",
        recipient_email="owner@example.com",
        site_name="AQA Sports Academy",
    )


@pytest.fixture()
def fake_dispatcher():
    return FakeDispatcher()


@pytest.fixture()
def json_log(settings):
    return JsonFileSubmissionLog(settings.messages_file)


@pytest.fixture()
def pipeline(settings, fake_dispatcher, json_log):
    return SubmissionPipeline(settings, fake_dispatcher, json_log)


@pytest.fixture()
def client(settings, fake_dispatcher, json_log):
    """TestClient with settings, dispatcher and log replaced by test doubles."""
    from contact_intake.dependencies import (
        get_app_settings,
        get_dispatcher,
        get_pipeline,
        get_submission_log,
    )
    from contact_intake.main import app

    app.dependency_overrides[get_app_settings] = lambda: settings
    app.dependency_overrides[get_dispatcher] = lambda: fake_dispatcher
    app.dependency_overrides[get_submission_log] = lambda: json_log
    app.dependency_overrides[get_pipeline] = lambda: SubmissionPipeline(settings, fake_dispatcher, json_log)

    with patch("contact_intake.main.get_settings", return_value=settings):
        yield TestClient(app)

    app.dependency_overrides.clear()

