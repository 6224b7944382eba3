"""Orchestrator package - coordinates migration workflows."""
from .batch import BatchRunner, paginate
from .core import MigrationOrchestrator
from .extensions import ExtensionReport, ExtensionRepairer
from .file_collector import FileCollector, FolderListing
from .validation import find_missing_documents

__all__ = [
    "MigrationOrchestrator",
    "BatchRunner",
    "paginate",
    "ExtensionRepairer",
    "ExtensionReport",
    "FileCollector",
    "FolderListing",
    "find_missing_documents",
]
