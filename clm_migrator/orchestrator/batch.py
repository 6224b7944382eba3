"""Bounded batch execution with typed per-file outcomes."""
import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar

from ..errors import MigrationError
from ..models import BatchResult, LocalFileRecord, UploadResult, UploadStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")
Worker = Callable[[LocalFileRecord], Awaitable[UploadResult]]


def paginate(items: Sequence[T], size: Optional[int]) -> List[List[T]]:
    """Split `items` into pages of `size`; None or 0 means a single page."""
    items = list(items)
    if not items:
        return []
    if not size or size <= 0:
        return [items]
    return [items[i:i + size] for i in range(0, len(items), size)]


def _describe_exception(exc: BaseException) -> str:
    message = str(exc).strip()
    if message:
        return message
    return f"{type(exc).__name__}: {repr(exc)}"


class BatchRunner:
    """
    Runs one batch of files concurrently and waits for every member to settle.

    Peak in-flight work is the batch width. A failing member never cancels
    its siblings.
    """

    async def run(self, batch: Sequence[LocalFileRecord], worker: Worker) -> BatchResult:
        outcomes = await asyncio.gather(*(worker(record) for record in batch), return_exceptions=True)

        result = BatchResult()
        for record, outcome in zip(batch, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                logger.error(f"Unhandled error for {record.file_name}: {_describe_exception(outcome)}")
                result.failed.append((record, outcome))
                result.results.append(UploadResult.fail(record, _describe_exception(outcome)))
                continue

            result.results.append(outcome)
            if outcome.status == UploadStatus.SUCCESS and outcome.document_id:
                result.succeeded.append(outcome.document_id)
            elif outcome.status == UploadStatus.FAILED:
                result.failed.append((record, MigrationError(outcome.error or "upload failed")))

        logger.info(f"Batch settled: {len(result.succeeded)} uploaded, {len(result.failed)} failed")
        return result
