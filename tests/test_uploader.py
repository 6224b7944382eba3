"""Tests for document upload."""
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from clm_migrator.errors import RequestTimeoutError, UploadError
from clm_migrator.models import LocalFileRecord
from clm_migrator.services import diagnostics as channels
from clm_migrator.services.uploader import DocumentUploader
from clm_migrator.utils.retry import RetryPolicy
from conftest import read_channel


def _uploader(client, diagnostics, sleeps, attempts=5):
    return DocumentUploader(client, diagnostics, RetryPolicy.fixed(2.0, attempts), sleep=sleeps)


class TestDocumentUploader:
    @pytest.mark.asyncio
    async def test_success_after_three_failures(self, fake_clm, diagnostics, sleeps):
        fake_clm.upload_statuses = [500, 502, 409]

        document_id = await _uploader(fake_clm, diagnostics, sleeps).upload("a.pdf", b"%PDF", "f1")

        assert fake_clm.documents[document_id] == ("f1", "a.pdf", b"%PDF")
        assert len(fake_clm.uploads()) == 4
        assert sleeps.delays == [2.0, 2.0, 2.0]
        processed = read_channel(diagnostics, channels.PROCESSED).splitlines()
        assert processed == [f"Processed: a.pdf -> {document_id}"]

    @pytest.mark.asyncio
    async def test_exhaustion(self, fake_clm, diagnostics, sleeps):
        fake_clm.failing_uploads.add("bad.pdf")

        with pytest.raises(UploadError) as info:
            await _uploader(fake_clm, diagnostics, sleeps, attempts=3).upload("bad.pdf", b"x", "f1")

        assert info.value.file_name == "bad.pdf"
        assert info.value.folder_id == "f1"
        assert info.value.attempts == 3
        assert sleeps.delays == [2.0, 2.0]
        log = read_channel(diagnostics, channels.UPLOAD_ERRORS)
        assert "Request error: bad.pdf (folder f1)" in log
        assert read_channel(diagnostics, channels.PROCESSED) == ""

    @pytest.mark.asyncio
    async def test_timeout_fails_call(self, fake_clm, diagnostics, sleeps):
        fake_clm.timeouts.add("slow.pdf")

        with pytest.raises(RequestTimeoutError):
            await _uploader(fake_clm, diagnostics, sleeps).upload("slow.pdf", b"x", "f1")

        assert len(fake_clm.uploads()) == 1
        assert "Request timeout: slow.pdf" in read_channel(diagnostics, channels.UPLOAD_ERRORS)

    @pytest.mark.asyncio
    async def test_upload_file_reads_content(self, tmp_path, fake_clm, diagnostics, sleeps):
        path = tmp_path / "100" / "a.pdf"
        path.parent.mkdir()
        path.write_bytes(b"%PDF-1.4")

        document_id = await _uploader(fake_clm, diagnostics, sleeps).upload_file(LocalFileRecord.from_path(path), "f1")
        assert fake_clm.documents[document_id][2] == b"%PDF-1.4"

    @pytest.mark.asyncio
    async def test_unreadable_file(self, diagnostics, sleeps):
        client = AsyncMock()
        record = LocalFileRecord(parent_folder="100", file_name="gone.pdf", absolute_path=Path("/nonexistent/gone.pdf"))

        with pytest.raises(FileNotFoundError):
            await _uploader(client, diagnostics, sleeps).upload_file(record, "f1")

        client.upload_document.assert_not_called()
        assert "gone.pdf" in read_channel(diagnostics, channels.UNPROCESSED)
