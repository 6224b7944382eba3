"""
Credential sources: bearer tokens and named secrets.

Failures surface as CredentialError so the dependent stage stops instead
of continuing with an undefined token.
"""
from __future__ import annotations

import asyncio
import logging
import os
from typing import Mapping, Optional

import httpx

from ..errors import CredentialError
from ..protocols import IDiagnosticLog
from . import diagnostics as channels

logger = logging.getLogger(__name__)


class StaticTokenSource:
    """Token handed over directly (flag or environment)."""

    def __init__(self, token: str):
        if not token:
            raise CredentialError("empty access token")
        self._token = token

    async def get_token(self, client_name: str = "") -> str:
        return self._token


class MakeDataStoreTokenSource:
    """
    Looks up per-client access tokens stored in an automation-platform data store.

    The store answers {"records": [{"data": {<client_field>: ..., <token_field>: ...}}]}.
    """

    def __init__(
        self,
        url: str,
        api_token: str,
        client_field: str = "Client",
        token_field: str = "Access token",
        timeout: float = 60.0,
        diagnostics: Optional[IDiagnosticLog] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not url:
            raise CredentialError("token data store URL is not configured")
        if not api_token:
            raise CredentialError("token data store API token is not configured")
        self._url = url
        self._api_token = api_token
        self._client_field = client_field
        self._token_field = token_field
        self._timeout = timeout
        self._diagnostics = diagnostics
        self._transport = transport

    def _fail(self, message: str) -> CredentialError:
        logger.error(message)
        if self._diagnostics is not None:
            self._diagnostics.write(channels.CREDENTIALS, message)
        return CredentialError(message)

    async def get_token(self, client_name: str) -> str:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.get(self._url, headers={"Authorization": f"Token {self._api_token}"})
        except httpx.TimeoutException as exc:
            raise self._fail(f"Token lookup timed out after {self._timeout}s") from exc
        except httpx.RequestError as exc:
            raise self._fail(f"Token lookup failed: {exc}") from exc

        if not response.is_success:
            raise self._fail(f"Token lookup failed: status {response.status_code}")

        try:
            records = response.json().get("records") or []
        except (ValueError, AttributeError) as exc:
            raise self._fail(f"Token lookup returned an unreadable payload: {exc}") from exc

        for record in records:
            data = record.get("data") if isinstance(record, dict) else None
            if isinstance(data, dict) and data.get(self._client_field) == client_name:
                token = data.get(self._token_field)
                if not token:
                    raise self._fail(f"Client {client_name!r} has no {self._token_field!r}")
                return str(token)

        raise self._fail(f"No token record for client {client_name!r}")


class EnvSecretSource:
    """Secrets read from environment variables."""

    def __init__(self, env: Optional[Mapping[str, str]] = None):
        self._env = env

    async def get_secret(self, name: str) -> str:
        env = os.environ if self._env is None else self._env
        value = env.get(name)
        if not value:
            raise CredentialError(f"secret {name!r} is not set")
        return value


class GcpSecretSource:
    """
    Secrets from Google Cloud Secret Manager.

    `name` is a full version resource, e.g.
    "projects/my-project/secrets/make-token/versions/latest".
    Requires the `gcp` extra.
    """

    def __init__(self, client=None):
        self._client = client

    def _access(self, name: str) -> str:
        if self._client is None:
            from google.cloud import secretmanager

            self._client = secretmanager.SecretManagerServiceClient()
        response = self._client.access_secret_version(name=name)
        return response.payload.data.decode("utf-8")

    async def get_secret(self, name: str) -> str:
        try:
            value = await asyncio.to_thread(self._access, name)
        except ImportError as exc:
            raise CredentialError("google-cloud-secret-manager is not installed (pip install clm-migrator[gcp])") from exc
        except Exception as exc:
            raise CredentialError(f"could not read secret {name!r}: {exc}") from exc
        if not value:
            raise CredentialError(f"secret {name!r} is empty")
        return value
