"""
Document upload - transmits file content into a resolved remote folder.

Retries non-success responses after a fixed delay. Every upload creates a
new document; there is no existence check by name.
"""
import asyncio
import logging
from pathlib import Path
from typing import Optional

from ..errors import (
    InvalidResourceReference,
    RequestTimeoutError,
    TransientNetworkError,
    UploadError,
)
from ..models import LocalFileRecord
from ..protocols import ICLMClient, IDiagnosticLog
from ..utils.hrefs import href_from_response
from ..utils.retry import RetryPolicy, Sleeper
from . import diagnostics as channels

logger = logging.getLogger(__name__)

HTTP_CREATED = 201


async def read_content(path: Path) -> bytes:
    """Read file bytes without blocking the event loop."""
    return await asyncio.to_thread(Path(path).read_bytes)


class DocumentUploader:
    """Uploads documents with a fixed-delay retry loop."""

    def __init__(
        self,
        client: ICLMClient,
        diagnostics: IDiagnosticLog,
        policy: RetryPolicy,
        sleep: Optional[Sleeper] = None,
    ):
        self._client = client
        self._diagnostics = diagnostics
        self._policy = policy
        self._sleep = sleep

    async def upload(self, file_name: str, content: bytes, folder_id: str) -> str:
        """
        Upload `content` as `file_name` into `folder_id`.

        Returns:
            The remote document id.

        Raises:
            UploadError: every attempt failed.
            RequestTimeoutError: a request exceeded its deadline.
        """
        state = self._policy.start()
        last_status: Optional[int] = None

        while not state.exhausted:
            try:
                response = await self._client.upload_document(folder_id, file_name, content)
                last_status = response.status_code
                if response.status_code == HTTP_CREATED:
                    document_id = href_from_response(response)
                    self._diagnostics.write(channels.PROCESSED, f"Processed: {file_name} -> {document_id}")
                    logger.info(f"Uploaded {file_name} (document: {document_id}, attempt {state.attempt + 1})")
                    return document_id
                error = f"upload returned status {last_status}"
            except RequestTimeoutError:
                logger.error(f"Upload of {file_name} to folder {folder_id} timed out")
                self._diagnostics.write(
                    channels.UPLOAD_ERRORS,
                    f"Request timeout: {file_name} (folder {folder_id})",
                )
                raise
            except (TransientNetworkError, InvalidResourceReference, ValueError) as exc:
                last_status = getattr(exc, "status", None) or last_status
                error = str(exc)

            delay = state.record_failure()
            logger.warning(
                f"Upload of {file_name} failed: {error} (attempt {state.attempt}/{state.max_attempts})"
            )
            await state.wait(delay, self._sleep)

        self._diagnostics.write(
            channels.UPLOAD_ERRORS,
            f"Request error: {file_name} (folder {folder_id}) after {state.attempt} attempts, last status {last_status}",
        )
        raise UploadError(file_name, folder_id, state.attempt, last_status)

    async def upload_file(self, record: LocalFileRecord, folder_id: str) -> str:
        """Read `record` from disk and upload it. Read failures go to the unprocessed channel."""
        try:
            content = await read_content(record.absolute_path)
        except OSError:
            self._diagnostics.write(channels.UNPROCESSED, f"Unprocessed: {record.absolute_path}")
            raise
        logger.debug(f"Read {record.absolute_path} ({len(content)} bytes)")
        return await self.upload(record.file_name, content, folder_id)
