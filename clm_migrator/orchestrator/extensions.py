"""
Extension maintenance for local trees.

`repair_file` is the per-file step of a full-tree migration; `repair_tree`
and `strip_extensions` are standalone passes run before a migration.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from ..errors import FileTypeUndetected
from ..models import FileType, LocalFileRecord
from ..protocols import IDiagnosticLog
from ..services import diagnostics as channels
from ..services.file_type import FileTypeResolver, has_extension, matches_extension
from .batch import paginate
from .file_collector import FolderListing

logger = logging.getLogger(__name__)

DEFAULT_REPAIR_BATCH_SIZE = 500


@dataclass
class ExtensionReport:
    """Outcome of a standalone repair pass."""
    renamed: List[Tuple[Path, Path]] = field(default_factory=list)
    unchanged: List[Path] = field(default_factory=list)
    undetected: List[Path] = field(default_factory=list)
    noted: List[Tuple[Path, str]] = field(default_factory=list)
    errors: List[Tuple[Path, str]] = field(default_factory=list)


def _tree_files(tree: Iterable[FolderListing]) -> List[Path]:
    files = []
    for top in tree:
        for _, listing in top.walk():
            files.extend(listing.path / name for name in listing.files)
    return files


class ExtensionRepairer:
    """Adds the detected extension to files whose name lacks it."""

    def __init__(self, resolver: FileTypeResolver, diagnostics: IDiagnosticLog):
        self._resolver = resolver
        self._diagnostics = diagnostics

    @staticmethod
    def _rename(path: Path, file_type: FileType) -> Path:
        target = path.with_name(f"{path.name}.{file_type.extension}")
        if target.exists():
            raise FileExistsError(f"Cannot rename {path.name}: {target.name} already exists")
        path.rename(target)
        return target

    async def repair_file(self, record: LocalFileRecord, detect: bool = True) -> LocalFileRecord:
        """
        Prepare one file for upload.

        Returns the record unchanged when its name has an extension, or the
        renamed record when detection succeeded. Raises FileTypeUndetected
        (after writing the no-extension channel) when the type is unknown,
        or right away with `detect=False`.
        """
        if has_extension(record.file_name):
            return record

        file_type = await self._resolver.detect(record.absolute_path) if detect else None
        if file_type is None:
            logger.warning(f"File without extension skipped: {record.absolute_path}")
            self._diagnostics.write(channels.NO_EXTENSION, f"File without extension: {record.absolute_path}")
            raise FileTypeUndetected(record.absolute_path)

        target = await asyncio.to_thread(self._rename, record.absolute_path, file_type)
        logger.info(f"Renamed {record.file_name} -> {target.name}")
        return record.renamed(target.name)

    async def _repair_path(self, path: Path, dry_run: bool, report: ExtensionReport) -> bool:
        file_type = await self._resolver.detect(path)
        if file_type is None:
            report.undetected.append(path)
            self._diagnostics.write(channels.NO_EXTENSION, f"File type not detected: {path}")
            return False
        if matches_extension(path.name, file_type):
            report.unchanged.append(path)
            return False
        if dry_run:
            report.noted.append((path, file_type.extension))
            self._diagnostics.write(channels.EXTENSION_NOTES, f"file: {path.name}, ext: {file_type.extension}")
            return True

        target = await asyncio.to_thread(self._rename, path, file_type)
        report.renamed.append((path, target))
        return True

    async def repair_tree(
        self,
        tree: List[FolderListing],
        batch_size: int = DEFAULT_REPAIR_BATCH_SIZE,
        limit: Optional[int] = None,
        dry_run: bool = False,
    ) -> ExtensionReport:
        """
        Append the detected extension to every file whose suffix does not match it.

        Running it twice renames nothing the second time. `limit` is checked
        between batches against the number of files renamed (or noted).
        """
        report = ExtensionReport()
        processed = 0

        for batch in paginate(_tree_files(tree), batch_size):
            if limit is not None and processed >= limit:
                logger.info(f"Repair limit of {limit} files reached")
                break

            outcomes = await asyncio.gather(
                *(self._repair_path(path, dry_run, report) for path in batch),
                return_exceptions=True,
            )
            for path, outcome in zip(batch, outcomes):
                if isinstance(outcome, BaseException):
                    logger.error(f"Error processing file {path.name}: {outcome}")
                    report.errors.append((path, str(outcome)))
                elif outcome:
                    processed += 1
            logger.info(f"Processed {processed} files")

        return report

    @staticmethod
    def strip_extensions(tree: List[FolderListing], extensions: Iterable[str]) -> int:
        """Remove trailing suffixes in `extensions` from every file name. Returns files renamed."""
        wanted = {e.lower().lstrip(".") for e in extensions if e.strip(".")}
        renamed = 0
        for path in _tree_files(tree):
            name = path.name
            while True:
                stem, dot, suffix = name.rpartition(".")
                if not dot or not stem or suffix.lower() not in wanted:
                    break
                name = stem
            if name == path.name:
                continue
            target = path.with_name(name)
            if target.exists():
                logger.warning(f"Not stripping {path.name}: {name} already exists")
                continue
            path.rename(target)
            renamed += 1
            logger.debug(f"Stripped {path.name} -> {name}")
        logger.info(f"Stripped extensions from {renamed} files")
        return renamed
