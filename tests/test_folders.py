"""Tests for remote folder resolution."""
from unittest.mock import AsyncMock

import httpx
import pytest

from clm_migrator.errors import FolderResolutionError, RequestTimeoutError, TransientNetworkError
from clm_migrator.services import diagnostics as channels
from clm_migrator.services.folders import RemoteFolderResolver
from clm_migrator.utils.retry import RetryPolicy
from conftest import API, ROOT_ID, read_channel


def _resolver(client, diagnostics, sleeps, attempts=3):
    return RemoteFolderResolver(client, diagnostics, RetryPolicy.exponential_backoff(3.0, attempts), sleep=sleeps)


class TestRemoteFolderResolver:
    @pytest.mark.asyncio
    async def test_creates_missing_folder(self, diagnostics, sleeps):
        client = AsyncMock()
        client.get_folder_by_path.return_value = httpx.Response(404)
        client.create_folder.return_value = httpx.Response(201, json={"Href": f"{API}/folders/abc123"})

        folder_id = await _resolver(client, diagnostics, sleeps).resolve("/Accounts/100", ROOT_ID)

        assert folder_id == "abc123"
        client.get_folder_by_path.assert_awaited_once_with("/Accounts/100")
        client.create_folder.assert_awaited_once_with("100", ROOT_ID)
        assert sleeps.delays == []

    @pytest.mark.asyncio
    async def test_existing_folder_is_not_created(self, diagnostics, sleeps):
        client = AsyncMock()
        client.get_folder_by_path.return_value = httpx.Response(200, json={"Href": f"{API}/folders/old1/"})

        assert await _resolver(client, diagnostics, sleeps).resolve("/Accounts/100", ROOT_ID) == "old1"
        client.create_folder.assert_not_called()

    @pytest.mark.asyncio
    async def test_idempotent_within_run(self, fake_clm, diagnostics, sleeps):
        resolver = _resolver(fake_clm, diagnostics, sleeps)
        first = await resolver.resolve("/Accounts/100", ROOT_ID)
        second = await resolver.resolve("/Accounts/100/", ROOT_ID)

        assert first == second
        assert len(fake_clm.folder_posts()) == 1
        assert resolver.cached == {"/Accounts/100": first}

    @pytest.mark.asyncio
    async def test_idempotent_across_runs(self, fake_clm, diagnostics, sleeps):
        first = await _resolver(fake_clm, diagnostics, sleeps).resolve("/Accounts/100", ROOT_ID)
        second = await _resolver(fake_clm, diagnostics, sleeps).resolve("/Accounts/100", ROOT_ID)

        assert first == second
        assert len(fake_clm.folder_posts()) == 1

    @pytest.mark.asyncio
    async def test_backoff_then_success(self, fake_clm, diagnostics, sleeps):
        fake_clm.create_statuses = [500, 503]
        folder_id = await _resolver(fake_clm, diagnostics, sleeps, attempts=5).resolve("/Accounts/100", ROOT_ID)

        assert folder_id == fake_clm.folders["/Accounts/100"]
        assert sleeps.delays == [3.0, 6.0]
        assert read_channel(diagnostics, channels.FOLDER_ERRORS).count("PATH: /Accounts/100") == 2

    @pytest.mark.asyncio
    async def test_exhaustion_raises_with_path(self, fake_clm, diagnostics, sleeps):
        fake_clm.failing_folders.add("100")
        with pytest.raises(FolderResolutionError) as info:
            await _resolver(fake_clm, diagnostics, sleeps, attempts=3).resolve("/Accounts/100", ROOT_ID)

        assert info.value.logical_path == "/Accounts/100"
        assert info.value.attempts == 3
        assert info.value.last_status == 500
        assert len(fake_clm.folder_posts()) == 3
        # no wait after the final attempt
        assert sleeps.delays == [3.0, 6.0]
        log = read_channel(diagnostics, channels.FOLDER_ERRORS)
        assert "Attempt: 3" in log

    @pytest.mark.asyncio
    async def test_transient_network_errors_are_retried(self, diagnostics, sleeps):
        client = AsyncMock()
        client.get_folder_by_path.side_effect = [
            TransientNetworkError("connection reset"),
            httpx.Response(200, json={"Href": f"{API}/folders/f9"}),
        ]
        assert await _resolver(client, diagnostics, sleeps).resolve("/Accounts/9", ROOT_ID) == "f9"
        assert sleeps.delays == [3.0]

    @pytest.mark.asyncio
    async def test_timeout_is_terminal(self, diagnostics, sleeps):
        client = AsyncMock()
        client.get_folder_by_path.side_effect = RequestTimeoutError("GET timed out")

        with pytest.raises(RequestTimeoutError):
            await _resolver(client, diagnostics, sleeps).resolve("/Accounts/100", ROOT_ID)

        assert client.get_folder_by_path.await_count == 1
        assert sleeps.delays == []
        assert "GET timed out" in read_channel(diagnostics, channels.FOLDER_ERRORS)
