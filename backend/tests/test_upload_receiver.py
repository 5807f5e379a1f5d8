"""
Unit tests for the upload receiver.
Type allow-list, size limits, stored file integrity and naming.
"""

import io
import os
from dataclasses import replace

import pytest
from fastapi import UploadFile
from starlette.datastructures import Headers

from contact_intake.errors import FileTooLarge, StorageUnavailable, UnsupportedType
from contact_intake.services.upload_receiver import (
    ensure_upload_dir,
    generate_storage_key,
    is_allowed_audio,
    receive,
    store_bytes,
)


def _upload(content: bytes, filename: str = "recording.webm", content_type: str = "audio/webm", size=True):
    return UploadFile(
        file=io.BytesIO(content),
        filename=filename,
        headers=Headers({"content-type": content_type}),
        size=len(content) if size else None,
    )


class TestAllowList:

    @pytest.mark.parametrize(
        "mime_type",
        ["audio/webm", "audio/ogg", "audio/mpeg", "audio/wav", "audio/mp4", "audio/webm;codecs=opus"],
    )
    def test_audio_types_accepted(self, settings, mime_type):
        assert is_allowed_audio(mime_type, "a.bin", settings)

    def test_video_webm_accepted(self, settings):
        assert is_allowed_audio("video/webm", "recording.webm", settings)

    def test_generic_type_accepted_for_webm_name(self, settings):
        assert is_allowed_audio("application/octet-stream", "recording.webm", settings)

    @pytest.mark.parametrize(
        "mime_type,filename",
        [
            ("application/pdf", "doc.pdf"),
            ("video/mp4", "clip.mp4"),
            ("image/png", "photo.png"),
            ("application/octet-stream", "file.bin"),
        ],
    )
    def test_non_audio_rejected(self, settings, mime_type, filename):
        assert not is_allowed_audio(mime_type, filename, settings)

    def test_configured_allow_list_restricts_audio(self, settings):
        restricted = replace(settings, allowed_audio_types=("audio/webm", "audio/ogg"))
        assert is_allowed_audio("audio/ogg", "a.ogg", restricted)
        assert not is_allowed_audio("audio/mpeg", "a.mp3", restricted)
        # Recorder exception still applies
        assert is_allowed_audio("video/webm", "a.webm", restricted)


class TestReceive:

    @pytest.mark.asyncio
    async def test_stores_exact_bytes(self, settings):
        content = os.urandom(200_000)
        handle = await receive(_upload(content), settings)

        assert handle is not None
        assert handle.size_bytes == len(content)
        assert handle.original_name == "recording.webm"
        assert handle.mime_type == "audio/webm"
        with open(handle.path, "rb") as fh:
            assert fh.read() == content

    @pytest.mark.asyncio
    async def test_creates_upload_dir(self, settings):
        assert not os.path.exists(settings.upload_dir)
        await receive(_upload(b"abc"), settings)
        assert os.path.isdir(settings.upload_dir)

    @pytest.mark.asyncio
    async def test_none_when_no_file(self, settings):
        assert await receive(None, settings) is None

    @pytest.mark.asyncio
    async def test_none_for_empty_part_without_filename(self, settings):
        assert await receive(_upload(b"", filename=""), settings) is None

    @pytest.mark.asyncio
    async def test_video_webm_is_accepted(self, settings):
        handle = await receive(_upload(b"webm-bytes", content_type="video/webm"), settings)
        assert handle.mime_type == "video/webm"
        assert handle.key.endswith(".webm")

    @pytest.mark.asyncio
    async def test_codec_parameters_are_dropped(self, settings):
        handle = await receive(_upload(b"x", content_type="audio/webm;codecs=opus"), settings)
        assert handle.mime_type == "audio/webm"

    @pytest.mark.asyncio
    async def test_unsupported_type_writes_nothing(self, settings):
        with pytest.raises(UnsupportedType):
            await receive(_upload(b"%PDF-1.4", filename="doc.pdf", content_type="application/pdf"), settings)
        assert not os.path.exists(settings.upload_dir) or os.listdir(settings.upload_dir) == []

    @pytest.mark.asyncio
    async def test_declared_size_over_limit_writes_nothing(self, settings):
        content = b"x" * (settings.max_upload_bytes + 1)
        with pytest.raises(FileTooLarge) as exc_info:
            await receive(_upload(content), settings)
        assert exc_info.value.error_code == "file_too_large"
        assert not os.path.exists(settings.upload_dir)

    @pytest.mark.asyncio
    async def test_streamed_size_over_limit_removes_partial_file(self, settings):
        content = b"x" * (settings.max_upload_bytes + 1)
        with pytest.raises(FileTooLarge):
            await receive(_upload(content, size=False), settings)
        assert os.listdir(settings.upload_dir) == []

    @pytest.mark.asyncio
    async def test_exactly_at_limit_is_accepted(self, settings):
        content = b"x" * settings.max_upload_bytes
        handle = await receive(_upload(content), settings)
        assert handle.size_bytes == settings.max_upload_bytes

    @pytest.mark.asyncio
    async def test_rapid_uploads_get_distinct_names(self, settings):
        handles = [await receive(_upload(b"a"), settings) for _ in range(20)]
        assert len({h.key for h in handles}) == 20


class TestStoreBytes:

    def test_stores_decoded_payload(self, settings):
        handle = store_bytes(b"ID3-data", "note.mp3", None, settings)
        assert handle.mime_type == "audio/mpeg"
        assert handle.size_bytes == 8
        with open(handle.path, "rb") as fh:
            assert fh.read() == b"ID3-data"

    def test_webm_name_without_type_is_accepted(self, settings):
        handle = store_bytes(b"webm", "recording.webm", None, settings)
        assert handle.key.endswith(".webm")

    def test_empty_content_returns_none(self, settings):
        assert store_bytes(b"", "note.ogg", None, settings) is None

    def test_oversized_payload_rejected(self, settings):
        with pytest.raises(FileTooLarge):
            store_bytes(b"x" * (settings.max_upload_bytes + 1), "note.ogg", "audio/ogg", settings)
        assert not os.path.exists(settings.upload_dir)

    def test_non_audio_rejected(self, settings):
        with pytest.raises(UnsupportedType):
            store_bytes(b"png", "photo.png", None, settings)


class TestNaming:

    def test_key_format(self):
        key = generate_storage_key("My Voice (1).mp3", "audio/mpeg")
        assert key.startswith("voice_message_")
        assert key.endswith(".mp3")
        assert " " not in key and "(" not in key

    def test_extension_from_type_when_name_has_none(self):
        assert generate_storage_key("blob", "audio/ogg").endswith(".ogg")

    def test_default_extension_is_webm(self):
        assert generate_storage_key(None, "").endswith(".webm")

    def test_ensure_upload_dir_is_idempotent(self, settings):
        first = ensure_upload_dir(settings)
        second = ensure_upload_dir(settings)
        assert first == second
        assert first.is_dir()

    def test_ensure_upload_dir_failure_raises_storage_unavailable(self, settings, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("file in the way")
        broken = replace(settings, upload_dir=str(blocker / "uploads"))
        with pytest.raises(StorageUnavailable):
            ensure_upload_dir(broken)
