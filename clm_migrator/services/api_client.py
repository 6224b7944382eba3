"""HTTP adapter for the CLM REST API."""
from __future__ import annotations

import asyncio
import base64
import logging
from typing import Any, Dict, Optional

import httpx

from ..errors import RequestTimeoutError, TransientNetworkError
from ..models import AccountContext
from ..settings import Settings

logger = logging.getLogger(__name__)


class CLMApiClient:
    """
    HTTP client adapter for CLM calls.

    Implements ICLMClient. Responses are returned untouched so callers can
    branch on status codes; only transport failures raise. Every request
    carries its own deadline, never shared with a concurrent request.

    Usage:
        async with CLMApiClient(settings, token) as client:
            response = await client.get_folder_by_path("/Accounts/100")
    """

    def __init__(
        self,
        settings: Settings,
        token: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._settings = settings
        self._account = AccountContext(account_id=settings.account_id, token=token)
        self._timeout = timeout if timeout is not None else settings.request_timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def account(self) -> AccountContext:
        return self._account

    async def __aenter__(self):
        self._client = httpx.AsyncClient(transport=self._transport)
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None

    def folder_href(self, folder_id: str) -> str:
        return f"{self._settings.api_base_url}/folders/{folder_id}"

    def _headers(self, extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        headers: Dict[str, Any] = {"Authorization": f"Bearer {self._account.token}"}
        if extra:
            headers.update(extra)
        return headers

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        if not self._client:
            raise RuntimeError("CLMApiClient not initialized. Use 'async with' context.")

        # The outer deadline covers the whole exchange, including a body that trickles in
        try:
            return await asyncio.wait_for(
                self._client.request(
                    method,
                    url,
                    timeout=httpx.Timeout(self._timeout),
                    **kwargs,
                ),
                self._timeout,
            )
        except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
            logger.warning(f"{method} {url} exceeded the {self._timeout}s deadline")
            raise RequestTimeoutError(f"{method} {url} timed out after {self._timeout}s", url=url) from exc
        except httpx.RequestError as exc:
            raise TransientNetworkError(f"{method} {url} failed: {exc}") from exc

    async def get_folder_by_path(self, logical_path: str) -> httpx.Response:
        return await self._request(
            "GET",
            f"{self._settings.api_base_url}/folders/path",
            params={"path": logical_path},
            headers=self._headers({"Accept": "application/json"}),
        )

    async def create_folder(self, name: str, parent_folder_id: str) -> httpx.Response:
        return await self._request(
            "POST",
            f"{self._settings.api_base_url}/folders",
            json={"Name": name, "ParentFolder": {"Href": self.folder_href(parent_folder_id)}},
            headers=self._headers({"Accept": "application/json"}),
        )

    async def upload_document(self, folder_id: str, file_name: str, content: bytes) -> httpx.Response:
        return await self._request(
            "POST",
            f"{self._settings.upload_base_url}/folders/{folder_id}/documents",
            params={"name": file_name},
            content=base64.b64encode(content),
            headers=self._headers(
                {
                    # Non-ASCII names are common; send the header as UTF-8 bytes
                    "Content-Disposition": f'form-data; filename="{file_name}"'.encode("utf-8"),
                    "Content-Transfer-Encoding": "base64",
                }
            ),
        )

    async def patch_document(self, document_id: str, payload: Dict[str, Any]) -> httpx.Response:
        return await self._request(
            "PATCH",
            f"{self._settings.api_base_url}/documents/{document_id}",
            json=payload,
            headers=self._headers(),
        )
