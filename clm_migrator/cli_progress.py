"""Console rendering and progress helpers for the migration CLI."""
from __future__ import annotations

import time
from typing import Any, Dict, Optional

from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskID, TextColumn, TimeElapsedColumn
from rich.table import Table

from .models import BatchResult, FolderMigrationResult, MigrationReport, UploadResult

console = Console()


def _echo(message: str) -> None:
    console.print(message)


def render_configuration_summary(config: Dict[str, Any]) -> None:
    """Render startup configuration summary."""
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold cyan", justify="right")
    table.add_column(style="white")

    for key, value in config.items():
        rendered = "-" if value is None else str(value)
        table.add_row(key, rendered)

    console.print(
        Panel(
            table,
            title="[bold green]clm-migrate[/bold green]",
            subtitle="[dim]document migration[/dim]",
            border_style="blue",
        )
    )


def render_report(report: MigrationReport) -> None:
    """Print the per-folder outcome of a run."""
    table = Table(title="Migration report", show_lines=False)
    table.add_column("Folder", style="cyan")
    table.add_column("Remote id", style="dim")
    table.add_column("Uploaded", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Skipped", justify="right", style="yellow")
    table.add_column("Status")

    for folder in report.folders:
        status = "[green]ok[/green]" if folder.success else f"[red]{folder.phase.value}[/red]"
        if folder.error:
            status = f"{status} [dim]{folder.error}[/dim]"
        table.add_row(
            folder.logical_path,
            folder.folder_id or "-",
            str(folder.uploaded_files),
            str(folder.failed_files),
            str(folder.skipped_files),
            status,
        )

    console.print(table)
    summary = (
        f"{report.uploaded_files} uploaded, {report.failed_files} failed, "
        f"{report.skipped_files} skipped, {len(report.failed_folders)} folders failed"
    )
    if report.cancelled:
        _echo(f"[yellow]Cancelled:[/yellow] {summary}")
    elif report.all_success:
        _echo(f"[bold green]Done:[/bold green] {summary}")
    else:
        _echo(f"[bold red]Finished with errors:[/bold red] {summary}")


class MigrationProgressDisplay:
    """Event-based console display for a migration run."""

    def __init__(self, total_files: Optional[int] = None, live: bool = True):
        self._stats: Dict[str, int] = {"uploaded": 0, "failed": 0, "skipped": 0, "folders_failed": 0}
        self._current_folder: Optional[str] = None
        self._progress: Optional[Progress] = None
        self._live: Optional[Live] = None
        self._task_id: Optional[TaskID] = None
        self._total = total_files
        self._quiet = not live

        if live:
            self._progress = Progress(
                SpinnerColumn(),
                TextColumn("[bold cyan]{task.fields[label]}", justify="left"),
                BarColumn(bar_width=36),
                TextColumn("{task.completed}/{task.total}" if total_files else "{task.completed} files"),
                TextColumn("[dim]{task.fields[detail]}", justify="left"),
                TimeElapsedColumn(),
                expand=False,
                console=console,
            )

    @property
    def stats(self) -> Dict[str, int]:
        return dict(self._stats)

    def attach(self, orchestrator) -> "MigrationProgressDisplay":
        """Subscribe to every event the orchestrator emits."""
        orchestrator.on("folder_start", self.on_folder_start)
        orchestrator.on("folder_resolved", self.on_folder_resolved)
        orchestrator.on("folder_failed", self.on_folder_failed)
        orchestrator.on("file_complete", self.on_file_complete)
        orchestrator.on("file_fail", self.on_file_fail)
        orchestrator.on("file_skipped", self.on_file_skipped)
        orchestrator.on("batch_complete", self.on_batch_complete)
        orchestrator.on("finish", self.on_finish)
        return self

    def _emit_timeline(self, status: str, kind: str, name: str, error: Optional[str] = None) -> None:
        if self._quiet:
            return
        stamp = time.strftime("%H:%M:%S")
        error_label = f" cause={error}" if error else ""
        palette = {"DONE": "green", "FAIL": "red", "SKIP": "yellow", "INFO": "blue"}
        color = palette.get(status, "white")
        _echo(f"[dim]{stamp}[/dim] [{color}]{status:<4}[/{color}] {kind}: {name}{error_label}")

    def _start_live(self) -> None:
        if self._progress is None or self._live is not None:
            return
        self._task_id = self._progress.add_task("migrate", total=self._total, label="migrate", detail="")
        self._live = Live(self._progress, console=console, refresh_per_second=8, transient=False)
        self._live.start()

    def _stop_live(self) -> None:
        if self._live is not None:
            self._live.stop()
            self._live = None

    def _advance(self) -> None:
        if self._progress is not None and self._task_id is not None:
            self._progress.update(
                self._task_id,
                advance=1,
                label=self._current_folder or "migrate",
                detail=f"ok={self._stats['uploaded']} fail={self._stats['failed']} skip={self._stats['skipped']}",
            )

    def on_folder_start(self, logical_path: str) -> None:
        self._start_live()
        self._current_folder = logical_path

    def on_folder_resolved(self, logical_path: str, folder_id: str) -> None:
        self._emit_timeline("INFO", "folder", f"{logical_path} -> {folder_id}")

    def on_folder_failed(self, result: FolderMigrationResult) -> None:
        self._stats["folders_failed"] += 1
        self._emit_timeline("FAIL", "folder", result.logical_path, error=result.error)

    def on_file_complete(self, result: UploadResult) -> None:
        self._stats["uploaded"] += 1
        self._advance()

    def on_file_fail(self, result: UploadResult) -> None:
        self._stats["failed"] += 1
        self._emit_timeline("FAIL", "file", str(result.record.absolute_path), error=result.error)
        self._advance()

    def on_file_skipped(self, result: UploadResult) -> None:
        self._stats["skipped"] += 1
        self._emit_timeline("SKIP", "file", str(result.record.absolute_path), error=result.error)
        self._advance()

    def on_batch_complete(self, logical_path: str, batch: BatchResult) -> None:
        self._emit_timeline("DONE", "batch", f"{logical_path} ({len(batch.succeeded)}/{batch.size})")

    def on_finish(self, report: MigrationReport) -> None:
        self._stop_live()

    def close(self) -> None:
        self._stop_live()
