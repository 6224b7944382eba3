"""Local directory listing for migrations and extension maintenance."""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Tuple

from ..models import LocalFileRecord
from ..utils.text import numeric_sort_key


@dataclass
class FolderListing:
    """One local folder, its files and its nested folders."""
    path: Path
    files: List[str] = field(default_factory=list)
    subfolders: List["FolderListing"] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.path.name

    def records(self) -> List[LocalFileRecord]:
        return [
            LocalFileRecord(parent_folder=self.name, file_name=f, absolute_path=self.path / f)
            for f in self.files
        ]

    def walk(self, parents: Tuple[str, ...] = ()) -> Iterator[Tuple[Tuple[str, ...], "FolderListing"]]:
        """Yield (relative folder parts, listing) depth-first, parents before children."""
        parts = parents + (self.name,)
        yield parts, self
        for sub in self.subfolders:
            yield from sub.walk(parts)


class FileCollector:
    """Lists folders and files, numeric folder names in numeric order."""

    @staticmethod
    def _visible(path: Path) -> bool:
        return not path.name.startswith(".")

    @classmethod
    def list_folders(cls, folder: Path) -> List[Path]:
        entries = [p for p in Path(folder).iterdir() if p.is_dir() and cls._visible(p)]
        return sorted(entries, key=lambda p: numeric_sort_key(p.name))

    @classmethod
    def list_files(cls, folder: Path) -> List[LocalFileRecord]:
        folder = Path(folder).resolve()
        names = sorted(p.name for p in folder.iterdir() if p.is_file() and cls._visible(p))
        return [LocalFileRecord(parent_folder=folder.name, file_name=n, absolute_path=folder / n) for n in names]

    @classmethod
    def list_folder(cls, folder: Path) -> FolderListing:
        folder = Path(folder).resolve()
        return FolderListing(
            path=folder,
            files=[r.file_name for r in cls.list_files(folder)],
            subfolders=[cls.list_folder(sub) for sub in cls.list_folders(folder)],
        )

    @classmethod
    def list_tree(cls, root: Path) -> List[FolderListing]:
        """List every top-level folder of `root`, recursively."""
        return [cls.list_folder(folder) for folder in cls.list_folders(root)]

    @staticmethod
    def inventory_rows(tree: List[FolderListing], label: str) -> Iterator[Tuple[str, str, str]]:
        """(label, relative folder path, file name) for every file in the tree."""
        for top in tree:
            for parts, listing in top.walk():
                for name in listing.files:
                    yield label, "/".join(parts), name
