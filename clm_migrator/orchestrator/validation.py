"""Pre-flight check of a metadata sheet against the local tree."""
import logging
from pathlib import Path
from typing import Dict, List, Mapping, Sequence

from ..protocols import IDiagnosticLog
from ..services import diagnostics as channels
from ..utils.text import normalize_cell

logger = logging.getLogger(__name__)


def find_missing_documents(
    rows: Sequence[Mapping[str, str]],
    source_dir: Path,
    folder_column: str,
    file_column: str,
    diagnostics: IDiagnosticLog,
) -> List[Dict[str, str]]:
    """Return the rows whose `<source>/<folder>/<file>` does not exist locally."""
    missing = []
    for row in rows:
        folder = normalize_cell(row.get(folder_column))
        name = normalize_cell(row.get(file_column))
        path = Path(source_dir) / folder / name
        if folder and name and path.is_file():
            continue
        missing.append(dict(row))
        diagnostics.write(channels.MISSING_DOCUMENTS, f"Missing: {folder} => {name}")

    logger.info(f"Sheet check: {len(rows) - len(missing)} found, {len(missing)} missing")
    return missing
