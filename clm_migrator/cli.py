"""Command line interface for clm_migrator package."""
from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import os
import signal
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from .cli_progress import MigrationProgressDisplay, render_configuration_summary, render_report
from .errors import MigrationError
from .models import MigrationConfig, MigrationReport
from .orchestrator import ExtensionRepairer, FileCollector, MigrationOrchestrator, find_missing_documents
from .services import (
    DEFAULT_ATTRIBUTE_MAPPING,
    AttributeMapping,
    CLMApiClient,
    DiagnosticLog,
    FileTypeResolver,
    GcpSecretSource,
    MakeDataStoreTokenSource,
    StaticTokenSource,
)
from .services.sheet import read_sheet, write_inventory
from .settings import DEFAULT_LOG_DIR, Settings

logger = logging.getLogger(__name__)


class CLIError(RuntimeError):
    """Raised when CLI validation/execution fails."""


def _setup_logging(debug: bool, silent: bool, log_level: Optional[str]) -> str:
    """
    Configure console logging.

    Diagnostic channels write to their own files whatever the console mode;
    silent mode only raises the root level, it never disables logging.
    Returns a string describing effective mode.
    """
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    if silent:
        root_logger.setLevel(logging.CRITICAL + 1)
        return "silent"

    if debug:
        level = logging.DEBUG
    elif log_level:
        level = getattr(logging, log_level.upper(), logging.INFO)
    else:
        env_level = os.getenv("LOG_LEVEL")
        level = getattr(logging, (env_level or "INFO").upper(), logging.INFO)

    from rich.logging import RichHandler

    handler = RichHandler(rich_tracebacks=True, markup=False, show_time=True, show_path=False)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
    return logging.getLevelName(level)


def _strip_optional_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def _load_env_file(path: Path, override: bool = False) -> None:
    if not path.exists():
        raise CLIError(f"env file not found: {path}")
    if not path.is_file():
        raise CLIError(f"env path is not a file: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CLIError(f"could not read env file {path}: {exc}") from exc

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].strip()
        if "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue

        value = _strip_optional_quotes(value.strip())
        if override or key not in os.environ:
            os.environ[key] = value


def _resolve_default_env_file() -> Optional[Path]:
    default_env = Path(".env")
    return default_env if default_env.exists() and default_env.is_file() else None


def _require_dir(source: Path) -> Path:
    source = Path(source).expanduser()
    if not source.exists():
        raise CLIError(f"source does not exist: {source}")
    if not source.is_dir():
        raise CLIError(f"source is not a directory: {source}")
    return source


def _require_file(path: Path, what: str) -> Path:
    path = Path(path).expanduser()
    if not path.is_file():
        raise CLIError(f"{what} not found: {path}")
    return path


def _log_dir(args) -> Path:
    return Path(args.log_dir or os.getenv("CLM_LOG_DIR") or DEFAULT_LOG_DIR)


def _load_settings(args) -> Settings:
    try:
        settings = Settings.from_env()
    except MigrationError as exc:
        raise CLIError(str(exc)) from exc

    overrides = {"log_dir": _log_dir(args)}
    if args.timeout is not None:
        overrides["request_timeout"] = args.timeout
    if args.max_retries is not None:
        if args.max_retries < 1:
            raise CLIError("--max-retries must be at least 1")
        overrides["max_retries"] = args.max_retries
    if args.batch_size is not None:
        if args.batch_size < 0:
            raise CLIError("--batch-size cannot be negative")
        overrides["batch_size"] = args.batch_size
    return dataclasses.replace(settings, **overrides)


async def _resolve_token(args, settings: Settings, diagnostics: DiagnosticLog) -> str:
    if args.token:
        return await StaticTokenSource(args.token).get_token()
    if args.client:
        api_token = settings.make_api_token
        secret_name = os.getenv("MAKE_API_TOKEN_SECRET")
        if not api_token and secret_name:
            api_token = await GcpSecretSource().get_secret(secret_name)
        if not settings.make_data_store_url or not api_token:
            raise CLIError("--client needs MAKE_DATA_STORE_URL and MAKE_API_TOKEN (or MAKE_API_TOKEN_SECRET)")
        source = MakeDataStoreTokenSource(
            settings.make_data_store_url,
            api_token,
            timeout=settings.request_timeout,
            diagnostics=diagnostics,
        )
        return await source.get_token(args.client)
    if settings.access_token:
        return await StaticTokenSource(settings.access_token).get_token()
    raise CLIError("no access token: pass --token, --client or set CLM_ACCESS_TOKEN")


def _install_cancel_handler(orchestrator: MigrationOrchestrator) -> None:
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGTERM, orchestrator.cancel)
    except (NotImplementedError, RuntimeError):
        logger.debug("SIGTERM handler not supported on this platform")


async def _run_remote(args, settings: Settings, source: Path, rows: Optional[List[dict]] = None) -> int:
    config = MigrationConfig(
        root_path=settings.root_path,
        parent_folder_id=settings.parent_folder_id,
        batch_size=settings.batch_size,
        repair_extensions=not args.no_repair,
        attach_metadata=rows is not None,
    )

    with DiagnosticLog(settings.log_dir) as diagnostics:
        token = await _resolve_token(args, settings, diagnostics)
        async with CLMApiClient(settings, token) as client:
            orchestrator = MigrationOrchestrator.build(client, diagnostics, settings, config)
            display = MigrationProgressDisplay(
                total_files=len(rows) if rows is not None else None,
                live=not args.silent,
            ).attach(orchestrator)
            _install_cancel_handler(orchestrator)

            try:
                if rows is None:
                    report = await orchestrator.migrate_tree(source)
                else:
                    mapping = AttributeMapping.from_json(args.mapping) if args.mapping else DEFAULT_ATTRIBUTE_MAPPING
                    report = await orchestrator.migrate_rows(
                        rows,
                        source,
                        folder_column=args.folder_column.lower(),
                        file_column=args.file_column.lower(),
                        mapping=mapping,
                    )
            finally:
                display.close()

    if not args.silent:
        render_report(report)
    logger.debug(f"Console tally: {display.stats}")
    return _exit_code(report)


def _exit_code(report: MigrationReport) -> int:
    return 0 if report.all_success else 1


def _summary(args, source: Path, extra: dict) -> None:
    if args.silent:
        return
    render_configuration_summary(
        {
            "Command": args.command,
            "Source": str(source),
            **extra,
            "Log Dir": str(_log_dir(args)),
        }
    )


def _cmd_migrate(args) -> int:
    source = _require_dir(args.source)
    settings = _load_settings(args)
    _summary(args, source, {
        "Account": settings.account_id,
        "API": settings.api_base_url,
        "Root Path": settings.root_path or "/",
        "Batch Size": settings.batch_size or "whole folder",
        "Repair Extensions": "no" if args.no_repair else "yes",
        "Max Retries": settings.max_retries,
    })
    return asyncio.run(_run_remote(args, settings, source))


def _cmd_upload(args) -> int:
    source = _require_dir(args.source)
    sheet = _require_file(args.sheet, "sheet")
    settings = _load_settings(args)
    rows = read_sheet(sheet, max_columns=args.max_columns, max_rows=args.max_rows)
    _summary(args, source, {
        "Sheet": f"{sheet} ({len(rows)} rows)",
        "Account": settings.account_id,
        "Root Path": settings.root_path or "/",
        "Batch Size": settings.batch_size or "whole folder",
        "Mapping": str(args.mapping) if args.mapping else "default",
    })
    return asyncio.run(_run_remote(args, settings, source, rows))


def _cmd_repair(args) -> int:
    source = _require_dir(args.source)
    _summary(args, source, {"Dry Run": "yes" if args.dry_run else "no", "Limit": args.limit or "-"})

    async def run() -> int:
        with DiagnosticLog(_log_dir(args)) as diagnostics:
            repairer = ExtensionRepairer(FileTypeResolver(diagnostics), diagnostics)
            tree = await asyncio.to_thread(FileCollector.list_tree, source)
            report = await repairer.repair_tree(tree, batch_size=args.batch_size, limit=args.limit, dry_run=args.dry_run)
        print(
            f"renamed={len(report.renamed)} noted={len(report.noted)} unchanged={len(report.unchanged)} "
            f"undetected={len(report.undetected)} errors={len(report.errors)}"
        )
        return 1 if report.errors else 0

    return asyncio.run(run())


def _cmd_strip(args) -> int:
    source = _require_dir(args.source)
    _summary(args, source, {"Extensions": ", ".join(args.ext)})
    renamed = ExtensionRepairer.strip_extensions(FileCollector.list_tree(source), args.ext)
    print(f"stripped={renamed}")
    return 0


def _cmd_inventory(args) -> int:
    source = _require_dir(args.source)
    label = args.label or source.name
    _summary(args, source, {"Output": str(args.output), "Sheet": label})
    rows = FileCollector.inventory_rows(FileCollector.list_tree(source), label)
    write_inventory(rows, args.output, label, append=args.append)
    print(f"inventory written to {args.output}")
    return 0


def _cmd_check(args) -> int:
    source = _require_dir(args.source)
    sheet = _require_file(args.sheet, "sheet")
    _summary(args, source, {"Sheet": str(sheet)})
    rows = read_sheet(sheet, max_columns=args.max_columns, max_rows=args.max_rows)
    with DiagnosticLog(_log_dir(args)) as diagnostics:
        missing = find_missing_documents(
            rows, source, args.folder_column.lower(), args.file_column.lower(), diagnostics
        )
    print(f"rows={len(rows)} missing={len(missing)}")
    return 1 if missing else 0


def _add_shared(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("source", type=Path, help="Local source directory")
    parser.add_argument("--env-file", type=Path, default=None, help="Load environment variables from this .env file")
    parser.add_argument("--debug", action="store_true", help="Enable debug logs")
    parser.add_argument("--silent", action="store_true", help="Only write diagnostic files")
    parser.add_argument("--log-level", default=None, help="Explicit log level (DEBUG/INFO/WARNING/ERROR)")
    parser.add_argument("--log-dir", type=Path, default=None, help="Diagnostic channel directory (default CLM_LOG_DIR or ./logs)")


def _add_remote(parser: argparse.ArgumentParser) -> None:
    auth = parser.add_mutually_exclusive_group()
    auth.add_argument("--token", default=None, help="CLM access token (default CLM_ACCESS_TOKEN)")
    auth.add_argument("--client", default=None, help="Look up the token for this client in the Make data store")
    parser.add_argument("--batch-size", type=int, default=None, help="Files per batch, 0 for whole folder (default CLM_BATCH_SIZE)")
    parser.add_argument("--no-repair", action="store_true", help="Skip files without extension instead of detecting one")
    parser.add_argument("--timeout", type=float, default=None, help="Per-request timeout in seconds")
    parser.add_argument("--max-retries", type=int, default=None, help="Attempts per folder or upload")


def _add_sheet(parser: argparse.ArgumentParser, required: bool) -> None:
    parser.add_argument("--sheet", type=Path, required=required, help="Metadata workbook (.xlsx)")
    parser.add_argument("--folder-column", default="subfolder", help="Column holding the folder name")
    parser.add_argument("--file-column", default="file", help="Column holding the file name")
    parser.add_argument("--max-columns", type=int, default=None, help="Read only the first N columns")
    parser.add_argument("--max-rows", type=int, default=None, help="Read only the first N rows")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clm-migrate",
        description="Migrate local document folders into a CLM repository.",
    )
    parser.add_argument("--version", action="version", version="clm-migrate (from clm_migrator)")
    commands = parser.add_subparsers(dest="command")

    migrate = commands.add_parser("migrate", help="Upload every folder of SOURCE")
    _add_shared(migrate)
    _add_remote(migrate)
    migrate.set_defaults(handler=_cmd_migrate)

    upload = commands.add_parser("upload", help="Upload the files listed in a sheet, with metadata")
    _add_shared(upload)
    _add_remote(upload)
    _add_sheet(upload, required=True)
    upload.add_argument("--mapping", type=Path, default=None, help="JSON attribute mapping file")
    upload.set_defaults(handler=_cmd_upload)

    repair = commands.add_parser("repair-extensions", help="Add detected extensions to local file names")
    _add_shared(repair)
    repair.add_argument("--batch-size", type=int, default=500, help="Files inspected per batch")
    repair.add_argument("--limit", type=int, default=None, help="Stop after N files were renamed")
    repair.add_argument("--dry-run", action="store_true", help="Only record the detected extensions")
    repair.set_defaults(handler=_cmd_repair)

    strip = commands.add_parser("strip-extensions", help="Remove extensions from local file names")
    _add_shared(strip)
    strip.add_argument("--ext", nargs="+", required=True, help="Extensions to remove (e.g. pdf docx)")
    strip.set_defaults(handler=_cmd_strip)

    inventory = commands.add_parser("inventory", help="Write a workbook listing every local file")
    _add_shared(inventory)
    inventory.add_argument("--output", type=Path, required=True, help="Workbook to write")
    inventory.add_argument("--label", default=None, help="Sheet name and folder label (default SOURCE name)")
    inventory.add_argument("--append", action="store_true", help="Add a sheet to an existing workbook")
    inventory.set_defaults(handler=_cmd_inventory)

    check = commands.add_parser("check", help="List sheet rows whose file is missing locally")
    _add_shared(check)
    _add_sheet(check, required=True)
    check.set_defaults(handler=_cmd_check)

    return parser


def run_cli(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    used_env_file = args.env_file or _resolve_default_env_file()
    if used_env_file is not None:
        try:
            _load_env_file(Path(used_env_file))
        except CLIError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 2

    _setup_logging(debug=args.debug, silent=args.silent, log_level=args.log_level)

    try:
        return args.handler(args)
    except CLIError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2
    except MigrationError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Cancelled.", file=sys.stderr)
        return 130


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
