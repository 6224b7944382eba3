"""Services for the migration pipeline."""
from .api_client import CLMApiClient
from .credentials import (
    EnvSecretSource,
    GcpSecretSource,
    MakeDataStoreTokenSource,
    StaticTokenSource,
)
from .diagnostics import DiagnosticLog
from .file_type import FileTypeResolver
from .folders import RemoteFolderResolver
from .metadata import (
    DEFAULT_ATTRIBUTE_MAPPING,
    AttributeMapping,
    MetadataAttacher,
    build_attribute_set,
)
from .uploader import DocumentUploader

__all__ = [
    "CLMApiClient",
    "DiagnosticLog",
    "DocumentUploader",
    "EnvSecretSource",
    "FileTypeResolver",
    "GcpSecretSource",
    "MakeDataStoreTokenSource",
    "MetadataAttacher",
    "RemoteFolderResolver",
    "StaticTokenSource",
    "AttributeMapping",
    "DEFAULT_ATTRIBUTE_MAPPING",
    "build_attribute_set",
]
