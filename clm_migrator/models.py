"""
Models for the migration pipeline.

Records that cross component boundaries are immutable dataclasses;
per-batch and per-folder aggregations are mutable and owned by the
orchestrator that creates them.
"""
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple

# attribute-group name -> field name -> value
AttributeSet = Dict[str, Dict[str, str]]


@dataclass(frozen=True)
class LocalFileRecord:
    """A file discovered on disk."""
    parent_folder: str
    file_name: str
    absolute_path: Path

    @classmethod
    def from_path(cls, path: Path) -> "LocalFileRecord":
        path = Path(path).resolve()
        return cls(parent_folder=path.parent.name, file_name=path.name, absolute_path=path)

    def renamed(self, new_name: str) -> "LocalFileRecord":
        return LocalFileRecord(
            parent_folder=self.parent_folder,
            file_name=new_name,
            absolute_path=self.absolute_path.with_name(new_name),
        )


@dataclass(frozen=True)
class FileType:
    """Best-effort content classification."""
    extension: str
    mime_type: str


@dataclass(frozen=True)
class AccountContext:
    """Account a set of authenticated calls is made on behalf of."""
    account_id: str
    token: str


class UploadStatus(Enum):
    """Outcome of one file."""
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"  # no detectable extension


@dataclass(frozen=True)
class UploadResult:
    """Immutable result of processing one file."""
    record: LocalFileRecord
    status: UploadStatus = UploadStatus.SUCCESS
    document_id: Optional[str] = None
    error: Optional[str] = None
    metadata_attached: bool = False

    @property
    def success(self) -> bool:
        return self.status == UploadStatus.SUCCESS

    @property
    def filename(self) -> str:
        return self.record.file_name

    @classmethod
    def ok(cls, record: LocalFileRecord, document_id: str, metadata_attached: bool = False):
        return cls(
            record=record,
            status=UploadStatus.SUCCESS,
            document_id=document_id,
            metadata_attached=metadata_attached,
        )

    @classmethod
    def fail(cls, record: LocalFileRecord, error: str):
        return cls(record=record, status=UploadStatus.FAILED, error=error)

    @classmethod
    def skipped(cls, record: LocalFileRecord, reason: str):
        return cls(record=record, status=UploadStatus.SKIPPED, error=reason)


@dataclass
class BatchResult:
    """Per-batch aggregation, consumed by the failure log."""
    succeeded: List[str] = field(default_factory=list)
    failed: List[Tuple[LocalFileRecord, Exception]] = field(default_factory=list)
    results: List[UploadResult] = field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.succeeded) + len(self.failed)


class FolderPhase(Enum):
    """State of one logical folder inside a run."""
    DISCOVER_FOLDER = "discover_folder"
    RESOLVE_REMOTE_FOLDER = "resolve_remote_folder"
    LIST_FILES = "list_files"
    BATCH_UPLOAD = "batch_upload"
    DONE = "done"
    FOLDER_FAILED = "folder_failed"


@dataclass
class FolderMigrationResult:
    """Result of migrating one logical folder (not its subfolders)."""
    logical_path: str
    phase: FolderPhase = FolderPhase.DISCOVER_FOLDER
    folder_id: Optional[str] = None
    results: List[UploadResult] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def uploaded_files(self) -> int:
        return sum(1 for r in self.results if r.status == UploadStatus.SUCCESS)

    @property
    def failed_files(self) -> int:
        return sum(1 for r in self.results if r.status == UploadStatus.FAILED)

    @property
    def skipped_files(self) -> int:
        return sum(1 for r in self.results if r.status == UploadStatus.SKIPPED)

    @property
    def success(self) -> bool:
        return self.phase == FolderPhase.DONE and self.failed_files == 0


@dataclass
class MigrationReport:
    """Result of a whole run."""
    folders: List[FolderMigrationResult] = field(default_factory=list)
    cancelled: bool = False

    @property
    def uploaded_files(self) -> int:
        return sum(f.uploaded_files for f in self.folders)

    @property
    def failed_files(self) -> int:
        return sum(f.failed_files for f in self.folders)

    @property
    def skipped_files(self) -> int:
        return sum(f.skipped_files for f in self.folders)

    @property
    def failed_folders(self) -> List[FolderMigrationResult]:
        return [f for f in self.folders if f.phase == FolderPhase.FOLDER_FAILED]

    @property
    def all_success(self) -> bool:
        return not self.cancelled and not self.failed_folders and self.failed_files == 0


@dataclass(frozen=True)
class MigrationConfig:
    """Immutable run-level configuration."""
    root_path: str = ""
    parent_folder_id: str = ""
    batch_size: Optional[int] = 50  # None/0: one batch per folder
    repair_extensions: bool = True
    attach_metadata: bool = True

    def logical_path(self, *parts: str) -> str:
        """Join the remote root path with local folder names."""
        segments = [self.root_path.strip("/")] + [p.strip("/") for p in parts]
        joined = "/".join(s for s in segments if s)
        return f"/{joined}" if self.root_path.startswith("/") else joined
