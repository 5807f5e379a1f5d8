"""
Unit tests for the notification composer.
Subject, text/HTML bodies, omitted sections and the attachment list.
"""

from datetime import datetime, timezone

from contact_intake.models.submission import Submission, UploadHandle
from contact_intake.services.composer import compose


def _submission(**kwargs) -> Submission:
    defaults = {
        "id": "abc123",
        "received_at": datetime(2026, 3, 1, 14, 30, tzinfo=timezone.utc),
    }
    defaults.update(kwargs)
    return Submission(**defaults)


def _audio(size_bytes: int = 1572864) -> UploadHandle:
    return UploadHandle(
        key="voice_message_20260301T143000000000_deadbeef.webm",
        path="/tmp/voice.webm",
        original_name="message-vocal.webm",
        size_bytes=size_bytes,
        mime_type="video/webm",
    )


class TestSubject:
    """Subject line built from the site name and the sender name."""

    def test_subject_includes_sender_name(self):
        payload = compose(_submission(name="Alice"), site_name="AQA Sports Academy")
        assert payload.subject == "New message from AQA Sports Academy - Alice"

    def test_subject_without_name(self):
        payload = compose(_submission(message="Bonjour"), site_name="AQA Sports Academy")
        assert payload.subject == "New message from AQA Sports Academy"


class TestBody:

    def test_all_fields_present(self):
        payload = compose(
            _submission(name="Alice", email="alice@example.com", message="Bonjour\nà bientôt")
        )
        assert "Name: Alice" in payload.text
        assert "Email: alice@example.com" in payload.text
        assert "Bonjour\nà bientôt" in payload.text
        assert '<a href="mailto:alice@example.com">alice@example.com</a>' in payload.html
        assert "Bonjour<br>à bientôt" in payload.html
        assert "abc123" in payload.text

    def test_absent_fields_are_omitted(self):
        payload = compose(_submission(message="Bonjour"))
        assert "Name:" not in payload.text
        assert "Email:" not in payload.text
        assert "mailto:" not in payload.html
        assert "Voice message" not in payload.text
        assert "Not provided" not in payload.text

    def test_html_is_escaped(self):
        payload = compose(_submission(name="<script>alert(1)</script>", message="a < b & c"))
        assert "<script>" not in payload.html
        assert "&lt;script&gt;" in payload.html
        assert "a &lt; b &amp; c" in payload.html

    def test_audio_note_with_size_in_mb(self):
        payload = compose(_submission(audio=_audio(size_bytes=1572864)))
        assert "message-vocal.webm (1.50 MB)" in payload.text
        assert "message-vocal.webm (1.50 MB)" in payload.html

    def test_audio_size_rounded_to_two_decimals(self):
        payload = compose(_submission(audio=_audio(size_bytes=1234567)))
        assert "(1.18 MB)" in payload.text


class TestAttachmentsAndReplyTo:

    def test_audio_is_attached(self):
        audio = _audio()
        payload = compose(_submission(audio=audio))
        assert payload.attachments == [audio]

    def test_no_audio_no_attachments(self):
        payload = compose(_submission(name="Alice"))
        assert payload.attachments == []

    def test_reply_to_is_sender_email(self):
        payload = compose(_submission(email="alice@example.com"))
        assert payload.reply_to == "alice@example.com"

    def test_reply_to_absent_without_email(self):
        payload = compose(_submission(name="Alice"))
        assert payload.reply_to is None

    def test_subject_is_single_line(self):
        payload = compose(_submission(name="Alice\nBcc: x@example.com\t "), site_name="AQA Sports Academy")
        assert payload.subject == "New message from AQA Sports Academy - Alice Bcc: x@example.com"
        assert "\n" not in payload.subject and "\r" not in payload.subject
