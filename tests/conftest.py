"""Shared fixtures: an in-memory CLM API, diagnostic logs and recorded sleeps."""
import asyncio
import itertools
from pathlib import Path
from typing import Dict, List, Optional

import httpx
import pytest

from clm_migrator.errors import RequestTimeoutError
from clm_migrator.models import MigrationConfig
from clm_migrator.orchestrator import MigrationOrchestrator
from clm_migrator.services.diagnostics import DiagnosticLog
from clm_migrator.services.file_type import FileTypeResolver
from clm_migrator.settings import Settings

API = "https://apina11.springcm.com/v2/acct"
ROOT_ID = "root"
ROOT_PATH = "/Accounts"


class FakeCLM:
    """
    In-memory CLM API speaking the same response shapes as the real one.

    Scripted status lists are consumed first; names in the failing sets
    answer 500 forever; names in `timeouts` raise RequestTimeoutError.
    """

    def __init__(self):
        self.paths: Dict[str, str] = {ROOT_ID: ROOT_PATH}
        self.folders: Dict[str, str] = {ROOT_PATH: ROOT_ID}
        self.documents: Dict[str, tuple] = {}
        self.patches: List[tuple] = []
        self.calls: List[tuple] = []
        self.create_statuses: List[int] = []
        self.upload_statuses: List[int] = []
        self.failing_folders = set()
        self.failing_uploads = set()
        self.timeouts = set()
        self.patch_status = 200
        self.in_flight = 0
        self.peak_in_flight = 0
        self._ids = itertools.count(1)

    def folder_posts(self) -> List[tuple]:
        return [c for c in self.calls if c[0] == "POST"]

    def uploads(self) -> List[tuple]:
        return [c for c in self.calls if c[0] == "UPLOAD"]

    async def get_folder_by_path(self, logical_path: str):
        self.calls.append(("GET", logical_path))
        folder_id = self.folders.get(logical_path)
        if folder_id is None:
            return httpx.Response(404, json={"Error": "not found"})
        return httpx.Response(200, json={"Href": f"{API}/folders/{folder_id}"})

    async def create_folder(self, name: str, parent_folder_id: str):
        self.calls.append(("POST", name, parent_folder_id))
        if self.create_statuses:
            status = self.create_statuses.pop(0)
            if status != 201:
                return httpx.Response(status)
        if name in self.failing_folders:
            return httpx.Response(500)
        folder_id = f"f{next(self._ids)}"
        path = f"{self.paths[parent_folder_id]}/{name}"
        self.paths[folder_id] = path
        self.folders[path] = folder_id
        return httpx.Response(201, json={"Href": f"{API}/folders/{folder_id}"})

    async def upload_document(self, folder_id: str, file_name: str, content: bytes):
        self.calls.append(("UPLOAD", folder_id, file_name))
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if file_name in self.timeouts:
                raise RequestTimeoutError(f"upload of {file_name} timed out")
            if self.upload_statuses:
                status = self.upload_statuses.pop(0)
                if status != 201:
                    return httpx.Response(status)
            if file_name in self.failing_uploads:
                return httpx.Response(500)
            document_id = f"d{next(self._ids)}"
            self.documents[document_id] = (folder_id, file_name, content)
            return httpx.Response(201, json={"Href": f"{API}/documents/{document_id}"})
        finally:
            self.in_flight -= 1

    async def patch_document(self, document_id: str, payload):
        self.patches.append((document_id, payload))
        return httpx.Response(self.patch_status)


class SleepRecorder:
    """Replaces asyncio.sleep in retry loops and records every delay."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def fake_sniff(content: bytes) -> Optional[str]:
    """Signature check that only knows real PDF and PNG headers."""
    if content.startswith(b"%PDF"):
        return "application/pdf"
    if content.startswith(b"\x89PNG"):
        return "image/png"
    if not content:
        return "application/x-empty"
    return "text/plain"


def read_channel(diagnostics: DiagnosticLog, channel: str) -> str:
    path = diagnostics.path_for(channel)
    return path.read_text(encoding="utf-8") if path.exists() else ""


def make_tree(root: Path, files: Dict[str, bytes]) -> Path:
    """Create `root/<relative path>` files with the given content."""
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
    return root


@pytest.fixture
def fake_clm():
    return FakeCLM()


@pytest.fixture
def diagnostics(tmp_path):
    log = DiagnosticLog(tmp_path / "logs")
    yield log
    log.close()


@pytest.fixture
def sleeps():
    return SleepRecorder()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        account_id="acct",
        endpoint_instance="na11",
        root_path=ROOT_PATH,
        parent_folder_id=ROOT_ID,
        log_dir=tmp_path / "logs",
        max_retries=3,
    )


@pytest.fixture
def make_orchestrator(fake_clm, diagnostics, sleeps, settings):
    def factory(**overrides) -> MigrationOrchestrator:
        config = MigrationConfig(
            root_path=ROOT_PATH,
            parent_folder_id=ROOT_ID,
            **{"batch_size": 50, **overrides},
        )
        return MigrationOrchestrator.build(
            fake_clm,
            diagnostics,
            settings,
            config,
            sleep=sleeps,
            file_types=FileTypeResolver(diagnostics, sniffer=fake_sniff),
        )

    return factory
