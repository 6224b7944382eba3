"""Tests for clm_migrator CLI helpers and commands."""
import logging
import os

import openpyxl
import pytest

from clm_migrator import cli
from clm_migrator.cli import CLIError, _load_env_file, _setup_logging, run_cli
from clm_migrator.services import diagnostics as channels
from clm_migrator.services.diagnostics import DiagnosticLog
from conftest import FakeCLM, make_tree, read_channel

PDF = b"%PDF-1.4\n"


@pytest.fixture(autouse=True)
def restore_logging(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


@pytest.fixture
def remote_env(tmp_path, monkeypatch):
    for key in ("CLM_ACCESS_TOKEN", "MAKE_API_TOKEN", "MAKE_DATA_STORE_URL", "CLM_BATCH_SIZE", "CLM_LOG_DIR"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("CLM_ACCOUNT_ID", "acct")
    monkeypatch.setenv("CLM_ENDPOINT_INSTANCE", "na11")
    monkeypatch.setenv("CLM_ROOT_PATH", "/Accounts")
    monkeypatch.setenv("CLM_PARENT_FOLDER_ID", "root")
    monkeypatch.setenv("CLM_MAX_RETRIES", "2")
    monkeypatch.setenv("CLM_FOLDER_BACKOFF_BASE", "0")
    monkeypatch.setenv("CLM_UPLOAD_RETRY_DELAY", "0")


@pytest.fixture
def fake_remote(monkeypatch):
    fake = FakeCLM()
    tokens = []

    class FakeClientContext:
        def __init__(self, settings, token):
            tokens.append(token)

        async def __aenter__(self):
            return fake

        async def __aexit__(self, *args):
            return None

    monkeypatch.setattr(cli, "CLMApiClient", FakeClientContext)
    fake.tokens = tokens
    return fake


def test_load_env_file(tmp_path, monkeypatch):
    env_path = tmp_path / "custom.env"
    env_path.write_text(
        "\n".join(
            [
                "# comment",
                "CLM_ACCOUNT_ID=1234",
                "CLM_ROOT_PATH='/Accounts/Legal'",
                "export CLM_ENDPOINT_INSTANCE=na11",
                "not a pair",
            ]
        ),
        encoding="utf-8",
    )
    for key in ("CLM_ACCOUNT_ID", "CLM_ROOT_PATH", "CLM_ENDPOINT_INSTANCE"):
        monkeypatch.delenv(key, raising=False)

    _load_env_file(env_path)

    assert os.environ["CLM_ACCOUNT_ID"] == "1234"
    assert os.environ["CLM_ROOT_PATH"] == "/Accounts/Legal"
    assert os.environ["CLM_ENDPOINT_INSTANCE"] == "na11"


def test_load_env_file_keeps_existing(tmp_path, monkeypatch):
    env_path = tmp_path / "custom.env"
    env_path.write_text("CLM_ACCOUNT_ID=from-file\n", encoding="utf-8")
    monkeypatch.setenv("CLM_ACCOUNT_ID", "from-env")

    _load_env_file(env_path)
    assert os.environ["CLM_ACCOUNT_ID"] == "from-env"


def test_load_env_file_missing(tmp_path):
    with pytest.raises(CLIError):
        _load_env_file(tmp_path / "nope.env")


def test_silent_logging_keeps_diagnostic_channels(tmp_path):
    mode = _setup_logging(debug=False, silent=True, log_level=None)

    assert mode == "silent"
    assert logging.getLogger().isEnabledFor(logging.CRITICAL) is False
    assert logging.root.manager.disable == logging.NOTSET
    with DiagnosticLog(tmp_path / "logs") as log:
        log.write(channels.UPLOAD_ERRORS, "still recorded")
        assert read_channel(log, channels.UPLOAD_ERRORS) == "still recorded\n"


def test_debug_logging():
    assert _setup_logging(debug=True, silent=False, log_level=None) == "DEBUG"
    assert logging.getLogger().isEnabledFor(logging.DEBUG) is True


def test_explicit_log_level():
    assert _setup_logging(debug=False, silent=False, log_level="warning") == "WARNING"


def test_no_command_prints_help(capsys):
    assert run_cli([]) == 0
    assert "clm-migrate" in capsys.readouterr().out


def test_missing_account_is_usage_error(tmp_path, monkeypatch, capsys):
    monkeypatch.delenv("CLM_ACCOUNT_ID", raising=False)
    source = make_tree(tmp_path / "src", {"1/a.pdf": PDF})

    assert run_cli(["migrate", str(source), "--silent", "--token", "t"]) == 2
    assert "CLM_ACCOUNT_ID" in capsys.readouterr().err


def test_missing_source_is_usage_error(tmp_path):
    assert run_cli(["inventory", str(tmp_path / "nope"), "--output", "x.xlsx", "--silent"]) == 2


def test_inventory_command(tmp_path):
    source = make_tree(tmp_path / "src", {"100/a.pdf": PDF, "100/sub/b.pdf": PDF})
    output = tmp_path / "inventory.xlsx"

    assert run_cli(["inventory", str(source), "--output", str(output), "--label", "Batch", "--silent"]) == 0

    rows = list(openpyxl.load_workbook(output).worksheets[0].iter_rows(values_only=True))
    assert rows == [("Folder", "Subfolder", "File"), ("Batch", "100", "a.pdf"), ("Batch", "100/sub", "b.pdf")]


def test_check_command(tmp_path):
    source = make_tree(tmp_path / "src", {"100/a.pdf": PDF})
    sheet = tmp_path / "meta.xlsx"
    workbook = openpyxl.Workbook()
    workbook.active.append(["Subfolder", "File"])
    workbook.active.append(["100", "a.pdf"])
    workbook.active.append(["100", "ghost.pdf"])
    workbook.save(sheet)

    code = run_cli(["check", str(source), "--sheet", str(sheet), "--log-dir", str(tmp_path / "logs"), "--silent"])

    assert code == 1
    assert "ghost.pdf" in (tmp_path / "logs" / f"{channels.MISSING_DOCUMENTS}.txt").read_text(encoding="utf-8")


def test_strip_extensions_command(tmp_path, capsys):
    source = make_tree(tmp_path / "src", {"1/a.pdf": PDF, "1/b.docx": b""})

    assert run_cli(["strip-extensions", str(source), "--ext", "pdf", "--silent"]) == 0
    assert sorted(p.name for p in (source / "1").iterdir()) == ["a", "b.docx"]
    assert "stripped=1" in capsys.readouterr().out


def test_repair_extensions_dry_run(tmp_path, monkeypatch, capsys):
    monkeypatch.setattr(
        "clm_migrator.services.file_type.libmagic_sniff",
        lambda content: "application/pdf" if content.startswith(b"%PDF") else "text/plain",
    )
    source = make_tree(tmp_path / "src", {"1/scan": PDF})

    code = run_cli(["repair-extensions", str(source), "--dry-run", "--log-dir", str(tmp_path / "logs"), "--silent"])

    assert code == 0
    assert (source / "1" / "scan").exists()
    assert "noted=1" in capsys.readouterr().out


def test_migrate_command(tmp_path, remote_env, fake_remote):
    source = make_tree(tmp_path / "src", {"100/a.pdf": PDF, "100/b.pdf": PDF})

    code = run_cli(["migrate", str(source), "--token", "tok", "--log-dir", str(tmp_path / "logs"), "--silent"])

    assert code == 0
    assert fake_remote.tokens == ["tok"]
    assert sorted(name for _, name, _ in fake_remote.documents.values()) == ["a.pdf", "b.pdf"]
    assert (tmp_path / "logs" / f"{channels.PROCESSED}.txt").exists()


def test_migrate_command_reports_failures(tmp_path, remote_env, fake_remote):
    source = make_tree(tmp_path / "src", {"100/a.pdf": PDF, "100/bad.pdf": PDF})
    fake_remote.failing_uploads.add("bad.pdf")

    code = run_cli(["migrate", str(source), "--token", "tok", "--log-dir", str(tmp_path / "logs"), "--silent"])

    assert code == 1
    assert "bad.pdf" in (tmp_path / "logs" / f"{channels.UPLOAD_ERRORS}.txt").read_text(encoding="utf-8")


def test_migrate_needs_a_token(tmp_path, remote_env, fake_remote):
    source = make_tree(tmp_path / "src", {"100/a.pdf": PDF})
    assert run_cli(["migrate", str(source), "--log-dir", str(tmp_path / "logs"), "--silent"]) == 2
    assert fake_remote.calls == []


def test_upload_command_attaches_metadata(tmp_path, remote_env, fake_remote, monkeypatch):
    monkeypatch.setenv("CLM_ACCESS_TOKEN", "env-token")
    source = make_tree(tmp_path / "src", {"100/a.pdf": PDF})
    sheet = tmp_path / "meta.xlsx"
    workbook = openpyxl.Workbook()
    workbook.active.append(["Subfolder", "File", "Company Name"])
    workbook.active.append(["100", "a.pdf", "ACME"])
    workbook.save(sheet)

    code = run_cli(["upload", str(source), "--sheet", str(sheet), "--log-dir", str(tmp_path / "logs"), "--silent"])

    assert code == 0
    assert fake_remote.tokens == ["env-token"]
    assert len(fake_remote.patches) == 1
