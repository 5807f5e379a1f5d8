"""
Notification composer: turns a submission into the email sent to the
business owner.

Pure functions, no I/O. Absent fields are left out entirely instead of
being rendered as "not provided" placeholders.
"""

from html import escape
from typing import List

from contact_intake.config import DEFAULT_SITE_NAME
from contact_intake.models.submission import NotificationPayload, Submission

_HTML_WRAPPER = (
    '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
    "{content}"
    "</div>"
)


def _single_line(value: str) -> str:
    return " ".join(value.split())


def build_subject(submission: Submission, site_name: str = DEFAULT_SITE_NAME) -> str:
    """Header-safe subject: any line break or run of whitespace becomes one space."""
    subject = f"New message from {site_name}"
    if submission.name:
        subject += f" - {submission.name}"
    return _single_line(subject)


def _received_label(submission: Submission) -> str:
    return submission.received_at.strftime("%Y-%m-%d %H:%M:%S %Z").strip()


def _audio_note(submission: Submission) -> str:
    audio = submission.audio
    return f"{audio.original_name} ({audio.size_mb:.2f} MB)"


def build_text_body(submission: Submission, site_name: str = DEFAULT_SITE_NAME) -> str:
    lines: List[str] = [f"Received: {_received_label(submission)}", ""]
    if submission.name:
        lines.append(f"Name: {submission.name}")
    if submission.email:
        lines.append(f"Email: {submission.email}")
    if submission.message:
        lines.append("Message:")
        lines.append(submission.message)
    if submission.audio:
        lines.append("")
        lines.append(f"Voice message attached: {_audio_note(submission)}")
    lines.append("")
    lines.append(f"Sent from the contact form on {site_name}. Message ID: {submission.id}")
    return "\n".join(lines)


def build_html_body(submission: Submission, site_name: str = DEFAULT_SITE_NAME) -> str:
    parts: List[str] = [
        f"<h2>New message from {escape(site_name)}</h2>",
        f"<p><strong>Received:</strong> {escape(_received_label(submission))}</p>",
    ]
    if submission.name:
        parts.append(f"<p><strong>Name:</strong> {escape(submission.name)}</p>")
    if submission.email:
        email = escape(submission.email, quote=True)
        parts.append(
            f'<p><strong>Email:</strong> <a href="mailto:{email}">{email}</a></p>'
        )
    if submission.message:
        # Preserve the sender's line breaks
        body = "<br>".join(escape(line) for line in submission.message.splitlines())
        parts.append(f"<p><strong>Message:</strong></p><div>{body}</div>")
    if submission.audio:
        parts.append(
            "<p><strong>Voice message attached:</strong> "
            f"{escape(_audio_note(submission))}</p>"
        )
    parts.append(f"<hr><p><small>Message ID: {escape(submission.id)}</small></p>")
    return _HTML_WRAPPER.format(content="".join(parts))


def compose(submission: Submission, site_name: str = DEFAULT_SITE_NAME) -> NotificationPayload:
    """Build the notification email for a validated submission."""
    return NotificationPayload(
        subject=build_subject(submission, site_name),
        text=build_text_body(submission, site_name),
        html=build_html_body(submission, site_name),
        reply_to=submission.email,
        attachments=[submission.audio] if submission.audio else [],
    )
