"""
Error taxonomy for the migration pipeline.

File-scoped errors never abort sibling files; folder-scoped errors abort
only that folder's subtree. Nothing here is fatal to a whole run.
"""
from typing import Optional


class MigrationError(Exception):
    """Base class for every error raised by the migration pipeline."""


class ConfigurationError(MigrationError):
    """Raised when a required setting is missing or malformed."""


class CredentialError(MigrationError):
    """Raised when a token or secret cannot be obtained."""


class TransientNetworkError(MigrationError):
    """Retryable failure: non-success HTTP status or connection failure."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class RequestTimeoutError(MigrationError):
    """The per-request deadline expired; terminal for the current call."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class InvalidResourceReference(MigrationError):
    """A returned Href did not contain an identifier segment."""


class RetryExhaustedError(MigrationError):
    """All attempts of a retry loop failed."""

    def __init__(self, message: str, target: str, attempts: int, last_status: Optional[int] = None):
        super().__init__(message)
        self.target = target
        self.attempts = attempts
        self.last_status = last_status


class FolderResolutionError(RetryExhaustedError):
    """A logical folder path could not be looked up or created."""

    def __init__(self, logical_path: str, attempts: int, last_status: Optional[int] = None):
        super().__init__(
            f"Could not resolve folder '{logical_path}' after {attempts} attempts "
            f"(last status: {last_status})",
            target=logical_path,
            attempts=attempts,
            last_status=last_status,
        )
        self.logical_path = logical_path


class UploadError(RetryExhaustedError):
    """A document could not be uploaded into its folder."""

    def __init__(self, file_name: str, folder_id: str, attempts: int, last_status: Optional[int] = None):
        super().__init__(
            f"Could not upload '{file_name}' to folder {folder_id} after {attempts} attempts "
            f"(last status: {last_status})",
            target=file_name,
            attempts=attempts,
            last_status=last_status,
        )
        self.file_name = file_name
        self.folder_id = folder_id


class FileTypeUndetected(MigrationError):
    """Content sniffing could not classify a file. Non-fatal, causes a skip."""

    def __init__(self, path):
        super().__init__(f"File type not detected: {path}")
        self.path = path


class MetadataAttachError(MigrationError):
    """Attribute patch failed. Logged and swallowed by the attacher."""

    def __init__(self, document_id: str, status: Optional[int] = None, reason: str = ""):
        detail = f"status {status}" if status is not None else reason
        super().__init__(f"Metadata update failed for document {document_id}: {detail}")
        self.document_id = document_id
        self.status = status
