"""Core orchestrator - drives folder-by-folder migration runs."""
import asyncio
import logging
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from ..errors import FileTypeUndetected, MigrationError
from ..models import (
    AttributeSet,
    FolderMigrationResult,
    FolderPhase,
    LocalFileRecord,
    MigrationConfig,
    MigrationReport,
    UploadResult,
)
from ..protocols import ICLMClient, IDiagnosticLog
from ..services import diagnostics as channels
from ..services.file_type import FileTypeResolver
from ..services.folders import RemoteFolderResolver
from ..services.metadata import (
    DEFAULT_ATTRIBUTE_MAPPING,
    AttributeMapping,
    MetadataAttacher,
    build_attribute_set,
)
from ..services.uploader import DocumentUploader
from ..settings import Settings
from ..utils import events
from ..utils.retry import RetryPolicy, Sleeper
from ..utils.text import normalize_cell
from .batch import BatchRunner, paginate, _describe_exception
from .extensions import ExtensionRepairer
from .file_collector import FileCollector

logger = logging.getLogger(__name__)

# Failures that abort one folder or one file, never the run
_RECOVERABLE = (MigrationError, OSError)


class MigrationOrchestrator:
    """
    Migrates local folders into the CLM repository.

    Folders are processed strictly one after another; files inside a folder
    go up in batches of `config.batch_size`, concurrently within a batch.
    A failure is contained to the file or folder it concerns.

    Usage:
        async with CLMApiClient(settings, token) as client:
            with DiagnosticLog(settings.log_dir) as diagnostics:
                orchestrator = MigrationOrchestrator.build(client, diagnostics, settings, config)
                orchestrator.on("file_complete", on_file)
                report = await orchestrator.migrate_tree(source_dir)

    Events:
        folder_start(logical_path), folder_resolved(logical_path, folder_id),
        folder_failed(FolderMigrationResult), file_complete(UploadResult),
        file_fail(UploadResult), file_skipped(UploadResult),
        batch_complete(logical_path, BatchResult), finish(MigrationReport)
    """

    def __init__(
        self,
        resolver: RemoteFolderResolver,
        uploader: DocumentUploader,
        attacher: MetadataAttacher,
        repairer: ExtensionRepairer,
        collector: Optional[FileCollector] = None,
        diagnostics: Optional[IDiagnosticLog] = None,
        config: Optional[MigrationConfig] = None,
    ):
        self._resolver = resolver
        self._uploader = uploader
        self._attacher = attacher
        self._repairer = repairer
        self._collector = collector or FileCollector()
        self._diagnostics = diagnostics
        self._config = config or MigrationConfig()
        self._runner = BatchRunner()
        self._events = events.MigrationEvents()
        self._cancelled = asyncio.Event()

    @classmethod
    def build(
        cls,
        client: ICLMClient,
        diagnostics: IDiagnosticLog,
        settings: Settings,
        config: MigrationConfig,
        sleep: Optional[Sleeper] = None,
        file_types: Optional[FileTypeResolver] = None,
    ) -> "MigrationOrchestrator":
        """Wire the default services around one API client."""
        folder_policy = RetryPolicy.exponential_backoff(
            settings.folder_backoff_base, settings.max_retries, settings.max_backoff
        )
        upload_policy = RetryPolicy.fixed(settings.upload_retry_delay, settings.max_retries)
        file_types = file_types or FileTypeResolver(diagnostics)
        return cls(
            resolver=RemoteFolderResolver(client, diagnostics, folder_policy, sleep=sleep),
            uploader=DocumentUploader(client, diagnostics, upload_policy, sleep=sleep),
            attacher=MetadataAttacher(client, diagnostics),
            repairer=ExtensionRepairer(file_types, diagnostics),
            collector=FileCollector(),
            diagnostics=diagnostics,
            config=config,
        )

    @property
    def config(self) -> MigrationConfig:
        return self._config

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def on(self, event_name: str, callback):
        """Subscribe to an orchestration event."""
        self._events.subscribe(event_name, callback)

    def off(self, event_name: str, callback):
        self._events.unsubscribe(event_name, callback)

    def cancel(self):
        """
        Request a stop. The batch in flight is allowed to settle; no new
        folder or batch is started afterwards.
        """
        if not self._cancelled.is_set():
            logger.warning("Cancellation requested, stopping after the current batch")
        self._cancelled.set()

    def _write(self, channel: str, message: str):
        if self._diagnostics is not None:
            self._diagnostics.write(channel, message)

    # ------------------------------------------------------------------
    # Full-tree mode
    # ------------------------------------------------------------------

    async def migrate_tree(self, source_dir: Path) -> MigrationReport:
        """
        Migrate every top-level folder of `source_dir`, recursively.

        Each local folder becomes a remote folder under the configured
        root path; nested folders are created under their parent's id.
        Files directly inside `source_dir` have no folder and are skipped.
        """
        source_dir = Path(source_dir)
        report = MigrationReport()

        loose = await asyncio.to_thread(self._collector.list_files, source_dir)
        for record in loose:
            logger.warning(f"File outside any folder skipped: {record.absolute_path}")

        folders = await asyncio.to_thread(self._collector.list_folders, source_dir)
        logger.info(f"Migrating {len(folders)} folders from {source_dir}")

        for folder in folders:
            if self.cancelled:
                break
            await self._migrate_folder(folder, (folder.name,), self._config.parent_folder_id, report)

        return await self._finish(report)

    async def _migrate_folder(
        self,
        folder: Path,
        parts: Tuple[str, ...],
        parent_folder_id: str,
        report: MigrationReport,
    ):
        logical_path = self._config.logical_path(*parts)
        result = FolderMigrationResult(logical_path=logical_path)
        report.folders.append(result)
        await self._events.publish(events.FOLDER_START, logical_path)

        try:
            result.phase = FolderPhase.RESOLVE_REMOTE_FOLDER
            folder_id = await self._resolver.resolve(logical_path, parent_folder_id)
            result.folder_id = folder_id
            await self._events.publish(events.FOLDER_RESOLVED, logical_path, folder_id)

            result.phase = FolderPhase.LIST_FILES
            records = await asyncio.to_thread(self._collector.list_files, folder)
            subfolders = await asyncio.to_thread(self._collector.list_folders, folder)

            result.phase = FolderPhase.BATCH_UPLOAD
            ready = await self._prepare(records, result)
            completed = await self._upload_batches(ready, folder_id, result)
        except _RECOVERABLE as e:
            await self._fail_folder(result, folder, e)
            return

        if not completed:
            return
        result.phase = FolderPhase.DONE
        logger.info(
            f"Folder {logical_path} done: {result.uploaded_files} uploaded, "
            f"{result.failed_files} failed, {result.skipped_files} skipped"
        )

        for sub in subfolders:
            if self.cancelled:
                return
            await self._migrate_folder(sub, parts + (sub.name,), folder_id, report)

    async def _fail_folder(self, result: FolderMigrationResult, folder, error: BaseException):
        result.phase = FolderPhase.FOLDER_FAILED
        result.error = _describe_exception(error)
        logger.error(f"Folder {result.logical_path} failed: {result.error}")
        self._write(channels.FOLDER_ERRORS, f"PATH: {folder}\nERROR: {result.error}\nFolder skipped")
        await self._events.publish(events.FOLDER_FAILED, result)

    async def _prepare_one(self, record: LocalFileRecord) -> LocalFileRecord:
        return await self._repairer.repair_file(record, detect=self._config.repair_extensions)

    async def _prepare(
        self, records: Sequence[LocalFileRecord], result: FolderMigrationResult
    ) -> List[LocalFileRecord]:
        """Repair names ahead of upload; skipped and broken files never reach a batch."""
        ready = []
        for page in paginate(records, self._config.batch_size):
            outcomes = await asyncio.gather(*(self._prepare_one(r) for r in page), return_exceptions=True)
            for record, outcome in zip(page, outcomes):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                if isinstance(outcome, FileTypeUndetected):
                    skipped = UploadResult.skipped(record, "no detectable extension")
                    result.results.append(skipped)
                    await self._events.publish(events.FILE_SKIPPED, skipped)
                elif isinstance(outcome, BaseException):
                    failed = UploadResult.fail(record, _describe_exception(outcome))
                    result.results.append(failed)
                    self._write(channels.UPLOAD_ERRORS, f"Error on file: {record.absolute_path}. {failed.error}")
                    await self._events.publish(events.FILE_FAIL, failed)
                else:
                    ready.append(outcome)
        return ready

    async def _upload_batches(
        self,
        records: Sequence[LocalFileRecord],
        folder_id: str,
        result: FolderMigrationResult,
        attributes: Optional[Dict[LocalFileRecord, AttributeSet]] = None,
    ) -> bool:
        """Upload `records` page by page. Returns False when cancelled before finishing."""
        attributes = attributes or {}

        async def worker(record: LocalFileRecord) -> UploadResult:
            return await self._upload_one(record, folder_id, attributes.get(record))

        batches = paginate(records, self._config.batch_size)
        for index, batch in enumerate(batches, start=1):
            if self.cancelled:
                logger.warning(f"Cancelled before batch {index}/{len(batches)} of {result.logical_path}")
                return False
            logger.info(f"Batch {index}/{len(batches)} of {result.logical_path}: {len(batch)} files")
            batch_result = await self._runner.run(batch, worker)
            result.results.extend(batch_result.results)
            for record, error in batch_result.failed:
                logger.error(f"Failed to upload {record.absolute_path}: {_describe_exception(error)}")
            await self._events.publish(events.BATCH_COMPLETE, result.logical_path, batch_result)
        return True

    async def _upload_one(
        self,
        record: LocalFileRecord,
        folder_id: str,
        attributes: Optional[AttributeSet] = None,
    ) -> UploadResult:
        try:
            document_id = await self._uploader.upload_file(record, folder_id)
        except _RECOVERABLE as e:
            # the uploader already wrote the diagnostic record for this failure
            failed = UploadResult.fail(record, _describe_exception(e))
            await self._events.publish(events.FILE_FAIL, failed)
            return failed

        attached = False
        if attributes and self._config.attach_metadata:
            attached = await self._attacher.attach(attributes, document_id)

        uploaded = UploadResult.ok(record, document_id, metadata_attached=attached)
        await self._events.publish(events.FILE_COMPLETE, uploaded)
        return uploaded

    async def _finish(self, report: MigrationReport) -> MigrationReport:
        report.cancelled = self.cancelled
        logger.info(
            f"Migration finished: {report.uploaded_files} uploaded, {report.failed_files} failed, "
            f"{report.skipped_files} skipped, {len(report.failed_folders)} folders failed"
            + (" (cancelled)" if report.cancelled else "")
        )
        await self._events.publish(events.FINISH, report)
        return report

    # ------------------------------------------------------------------
    # Unitary and sheet-driven modes
    # ------------------------------------------------------------------

    async def _resolve_nested(self, folder: str) -> str:
        """Resolve `a/b/c` level by level so each folder is created under its parent."""
        parts = [p for p in folder.replace("\\", "/").split("/") if p.strip()]
        if not parts:
            raise MigrationError(f"Empty folder name: {folder!r}")
        parent_id = self._config.parent_folder_id
        for depth in range(1, len(parts) + 1):
            parent_id = await self._resolver.resolve(self._config.logical_path(*parts[:depth]), parent_id)
        return parent_id

    async def migrate_unitary(
        self,
        record: LocalFileRecord,
        attributes: Optional[AttributeSet] = None,
        folder: Optional[str] = None,
    ) -> UploadResult:
        """
        Upload one file into the remote folder named by `folder` (defaults to
        the record's parent folder) and attach `attributes` when given.
        """
        folder = folder or record.parent_folder
        if not record.absolute_path.is_file():
            failed = UploadResult.fail(record, f"File not found: {record.absolute_path}")
            self._write(channels.UNPROCESSED, f"Unprocessed: {record.absolute_path}")
            await self._events.publish(events.FILE_FAIL, failed)
            return failed

        try:
            folder_id = await self._resolve_nested(folder)
        except _RECOVERABLE as e:
            failed = UploadResult.fail(record, _describe_exception(e))
            self._write(channels.UPLOAD_ERRORS, f"Error on file: {record.absolute_path}. {failed.error}")
            await self._events.publish(events.FILE_FAIL, failed)
            return failed

        return await self._upload_one(record, folder_id, attributes)

    async def migrate_rows(
        self,
        rows: Sequence[Mapping[str, str]],
        source_dir: Path,
        folder_column: str = "subfolder",
        file_column: str = "file",
        mapping: AttributeMapping = DEFAULT_ATTRIBUTE_MAPPING,
    ) -> MigrationReport:
        """
        Upload the files listed in a metadata sheet, one folder at a time,
        attaching each row's attributes to the document it uploaded.
        """
        source_dir = Path(source_dir)
        grouped: Dict[str, Dict[LocalFileRecord, AttributeSet]] = {}
        for number, row in enumerate(rows, start=2):
            folder = normalize_cell(row.get(folder_column))
            name = normalize_cell(row.get(file_column))
            if not folder or not name:
                logger.warning(f"Row {number} skipped: missing {folder_column!r} or {file_column!r}")
                continue
            path = source_dir / folder / name
            record = LocalFileRecord(parent_folder=Path(folder).name, file_name=name, absolute_path=path)
            files = grouped.setdefault(folder, {})
            if record in files:
                logger.warning(f"Row {number} skipped: {folder}/{name} already listed")
                continue
            files[record] = build_attribute_set(row, mapping)

        report = MigrationReport()
        logger.info(f"Migrating {sum(len(f) for f in grouped.values())} sheet rows in {len(grouped)} folders")

        for folder, files in grouped.items():
            if self.cancelled:
                break
            logical_path = self._config.logical_path(folder)
            result = FolderMigrationResult(logical_path=logical_path)
            report.folders.append(result)
            await self._events.publish(events.FOLDER_START, logical_path)
            try:
                result.phase = FolderPhase.RESOLVE_REMOTE_FOLDER
                folder_id = await self._resolve_nested(folder)
                result.folder_id = folder_id
                await self._events.publish(events.FOLDER_RESOLVED, logical_path, folder_id)
                result.phase = FolderPhase.BATCH_UPLOAD
                completed = await self._upload_batches(list(files), folder_id, result, files)
            except _RECOVERABLE as e:
                await self._fail_folder(result, source_dir / folder, e)
                continue
            if completed:
                result.phase = FolderPhase.DONE

        return await self._finish(report)
