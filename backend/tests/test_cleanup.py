"""
Unit tests for the cleanup coordinator.
Exactly-once release on every exit path, idempotence, archiving.
"""

import asyncio
import os
from unittest.mock import patch

import pytest

from contact_intake.models.submission import UploadHandle
from contact_intake.services.cleanup import CleanupCoordinator


def _stored_handle(directory, name: str = "voice_message_1.webm", content: bytes = b"audio") -> UploadHandle:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_bytes(content)
    return UploadHandle(
        key=name,
        path=str(path),
        original_name="recording.webm",
        size_bytes=len(content),
        mime_type="audio/webm",
    )


class TestRelease:

    def test_release_deletes_file_and_voids_handle(self, tmp_path):
        handle = _stored_handle(tmp_path / "uploads")
        CleanupCoordinator().release(handle)

        assert not os.path.exists(handle.path)
        assert handle.released
        with pytest.raises(RuntimeError):
            handle.read_bytes()

    def test_second_release_is_noop(self, tmp_path):
        handle = _stored_handle(tmp_path / "uploads")
        cleanup = CleanupCoordinator()
        cleanup.release(handle)
        cleanup.release(handle)  # must not raise
        assert handle.released

    def test_release_of_already_missing_file_does_not_raise(self, tmp_path):
        handle = _stored_handle(tmp_path / "uploads")
        os.remove(handle.path)
        CleanupCoordinator().release(handle)
        assert handle.released

    def test_deletion_error_is_logged_not_raised(self, tmp_path, caplog):
        handle = _stored_handle(tmp_path / "uploads")
        with patch("pathlib.Path.unlink", side_effect=PermissionError("read-only")):
            CleanupCoordinator().release(handle)
        assert handle.released
        assert "Failed to release upload" in caplog.text


class TestScope:

    def test_context_exit_releases_tracked_uploads(self, tmp_path):
        first = _stored_handle(tmp_path / "uploads", "a.webm")
        second = _stored_handle(tmp_path / "uploads", "b.webm")

        with CleanupCoordinator() as cleanup:
            cleanup.track(first)
            cleanup.track(second)
            cleanup.track(None)
            assert os.path.exists(first.path)

        assert not os.path.exists(first.path)
        assert not os.path.exists(second.path)

    def test_release_on_exception(self, tmp_path):
        handle = _stored_handle(tmp_path / "uploads")

        with pytest.raises(ValueError):
            with CleanupCoordinator() as cleanup:
                cleanup.track(handle)
                raise ValueError("boom")

        assert not os.path.exists(handle.path)

    def test_each_upload_released_exactly_once(self, tmp_path):
        handle = _stored_handle(tmp_path / "uploads")
        with patch("pathlib.Path.unlink") as mock_unlink:
            with CleanupCoordinator() as cleanup:
                cleanup.track(handle)
                cleanup.track(handle)
                cleanup.release(handle)
        assert mock_unlink.call_count == 1

    @pytest.mark.asyncio
    async def test_run_releases_after_cancellation(self, tmp_path):
        handle = _stored_handle(tmp_path / "uploads")

        async def attempt(cleanup):
            cleanup.track(handle)
            raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await CleanupCoordinator().run(attempt)

        assert not os.path.exists(handle.path)

    @pytest.mark.asyncio
    async def test_run_returns_attempt_result(self, tmp_path):
        handle = _stored_handle(tmp_path / "uploads")

        async def attempt(cleanup):
            cleanup.track(handle)
            return "done"

        assert await CleanupCoordinator().run(attempt) == "done"
        assert handle.released


class TestArchive:

    def test_archive_moves_file_when_requested(self, tmp_path):
        archive = tmp_path / "archive"
        handle = _stored_handle(tmp_path / "uploads")

        with CleanupCoordinator(archive_dir=str(archive)) as cleanup:
            cleanup.track(handle)
            cleanup.archive_on_release()

        assert (archive / handle.key).read_bytes() == b"audio"
        assert handle.path == str(archive / handle.key)
        assert not (tmp_path / "uploads" / handle.key).exists()

    def test_without_request_archive_dir_still_deletes(self, tmp_path):
        archive = tmp_path / "archive"
        handle = _stored_handle(tmp_path / "uploads")

        with CleanupCoordinator(archive_dir=str(archive)) as cleanup:
            cleanup.track(handle)

        assert not os.path.exists(handle.path)
        assert not archive.exists()

    def test_archive_request_ignored_without_archive_dir(self, tmp_path):
        handle = _stored_handle(tmp_path / "uploads")

        with CleanupCoordinator() as cleanup:
            cleanup.track(handle)
            cleanup.archive_on_release()

        assert not os.path.exists(handle.path)
