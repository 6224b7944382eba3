"""
Protocols (Interfaces) for the collaborators the pipeline depends on.

Small, focused interfaces so tests and alternative adapters can stand in
for the remote API, credential sources and the diagnostic sink.
"""
from typing import Any, Dict, Protocol, runtime_checkable


@runtime_checkable
class ICLMClient(Protocol):
    """Interface for the remote CLM HTTP API."""

    async def get_folder_by_path(self, logical_path: str) -> Any:
        """GET /folders/path?path=..."""
        ...

    async def create_folder(self, name: str, parent_folder_id: str) -> Any:
        """POST /folders."""
        ...

    async def upload_document(self, folder_id: str, file_name: str, content: bytes) -> Any:
        """POST /folders/{id}/documents?name=..."""
        ...

    async def patch_document(self, document_id: str, payload: Dict[str, Any]) -> Any:
        """PATCH /documents/{id}."""
        ...


@runtime_checkable
class ITokenSource(Protocol):
    """Supplies a bearer token for a client/company name."""

    async def get_token(self, client_name: str) -> str:
        ...


@runtime_checkable
class ISecretSource(Protocol):
    """Reads a named secret."""

    async def get_secret(self, name: str) -> str:
        ...


@runtime_checkable
class IDiagnosticLog(Protocol):
    """Append-only, channel-per-category diagnostic sink."""

    def write(self, channel: str, message: str) -> None:
        ...
