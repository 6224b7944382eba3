"""
Spreadsheet adapters (openpyxl).

Rows are read as dicts keyed by the lower-cased header text, every cell
rendered as a string, which is the shape metadata mapping and the sheet
pre-flight check consume.
"""
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

import openpyxl

from ..errors import MigrationError

logger = logging.getLogger(__name__)

INVENTORY_HEADER = ("Folder", "Subfolder", "File")
DATE_FORMAT = "%m/%d/%Y"
MAX_SHEET_TITLE = 31


def render_cell(value) -> str:
    if value is None:
        return ""
    if isinstance(value, (datetime, date)):
        return value.strftime(DATE_FORMAT)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def read_sheet(
    path: Path,
    max_columns: Optional[int] = None,
    max_rows: Optional[int] = None,
    sheet_index: int = 0,
) -> List[Dict[str, str]]:
    """
    Read data rows from a workbook.

    Args:
        path: .xlsx file
        max_columns: Read only the first N columns (default: all)
        max_rows: Read only the first N data rows, header excluded (default: all)
        sheet_index: 0-based worksheet index

    Returns:
        One dict per non-blank row, keyed by lower-cased header names.
    """
    try:
        workbook = openpyxl.load_workbook(path, read_only=True, data_only=True)
    except Exception as exc:
        raise MigrationError(f"could not read sheet {path}: {exc}") from exc

    try:
        try:
            worksheet = workbook.worksheets[sheet_index]
        except IndexError as exc:
            raise MigrationError(f"sheet {path} has no page {sheet_index}") from exc

        rows = worksheet.iter_rows(values_only=True)
        header = next(rows, None)
        if header is None:
            return []

        columns = [render_cell(c).strip().lower() for c in header]
        if max_columns is not None:
            columns = columns[:max_columns]

        result = []
        for index, values in enumerate(rows, start=1):
            if max_rows is not None and index > max_rows:
                break
            row = {}
            for col, name in enumerate(columns):
                if not name:
                    continue
                row[name] = render_cell(values[col]) if col < len(values) else ""
            if any(row.values()):
                result.append(row)

        logger.info(f"Read {len(result)} rows from {Path(path).name}")
        return result
    finally:
        workbook.close()


def write_inventory(
    rows: Iterable[Sequence[str]],
    path: Path,
    sheet_name: str,
    append: bool = False,
) -> Path:
    """
    Write (folder, subfolder, file) rows into a new worksheet.

    With `append`, an existing workbook at `path` keeps its sheets and
    gains one more.
    """
    path = Path(path)
    if append and path.exists():
        workbook = openpyxl.load_workbook(path)
        worksheet = workbook.create_sheet(title=sheet_name[:MAX_SHEET_TITLE])
    else:
        workbook = openpyxl.Workbook()
        worksheet = workbook.active
        worksheet.title = sheet_name[:MAX_SHEET_TITLE]

    worksheet.append(list(INVENTORY_HEADER))
    count = 0
    for row in rows:
        worksheet.append(list(row))
        count += 1

    workbook.save(path)
    logger.info(f"Wrote {count} inventory rows to {path} ({worksheet.title})")
    return path
