"""
CLM Migrator - batch migration of local document trees into a CLM repository.

Usage:
    from clm_migrator import CLMApiClient, DiagnosticLog, MigrationConfig, MigrationOrchestrator, Settings

    settings = Settings.from_env()
    config = MigrationConfig(root_path=settings.root_path, parent_folder_id=settings.parent_folder_id)

    async with CLMApiClient(settings, token) as client:
        with DiagnosticLog(settings.log_dir) as diagnostics:
            orchestrator = MigrationOrchestrator.build(client, diagnostics, settings, config)
            report = await orchestrator.migrate_tree(source_dir)

    # One file with metadata
    result = await orchestrator.migrate_unitary(record, attributes)

    # Files and metadata listed in a sheet
    report = await orchestrator.migrate_rows(read_sheet(sheet_path), source_dir)
"""
from .errors import (
    ConfigurationError,
    CredentialError,
    FolderResolutionError,
    MigrationError,
    UploadError,
)
from .models import (
    FolderMigrationResult,
    FolderPhase,
    LocalFileRecord,
    MigrationConfig,
    MigrationReport,
    UploadResult,
    UploadStatus,
)
from .orchestrator import MigrationOrchestrator
from .services import (
    CLMApiClient,
    DiagnosticLog,
    DocumentUploader,
    FileTypeResolver,
    MakeDataStoreTokenSource,
    MetadataAttacher,
    RemoteFolderResolver,
    StaticTokenSource,
)
from .services.sheet import read_sheet, write_inventory
from .settings import Settings

__version__ = "0.1.0"
__all__ = [
    # Main
    "MigrationOrchestrator",
    "Settings",
    # Models
    "FolderMigrationResult",
    "FolderPhase",
    "LocalFileRecord",
    "MigrationConfig",
    "MigrationReport",
    "UploadResult",
    "UploadStatus",
    # Services
    "CLMApiClient",
    "DiagnosticLog",
    "DocumentUploader",
    "FileTypeResolver",
    "MakeDataStoreTokenSource",
    "MetadataAttacher",
    "RemoteFolderResolver",
    "StaticTokenSource",
    "read_sheet",
    "write_inventory",
    # Errors
    "MigrationError",
    "ConfigurationError",
    "CredentialError",
    "FolderResolutionError",
    "UploadError",
]
