"""Small text helpers for names coming from disk and spreadsheets."""
import re
from typing import Tuple

_LINE_BREAKS = re.compile(r"[\r\n]")


def normalize_cell(value) -> str:
    """
    Normalize a spreadsheet cell for path matching.

    Drops one trailing '.', removes line breaks and trims whitespace.
    """
    if value is None:
        return ""
    text = _LINE_BREAKS.sub("", str(value)).strip()
    if text.endswith("."):
        text = text[:-1].rstrip()
    return text


def numeric_sort_key(name: str) -> Tuple[int, int, str]:
    """Sort key placing numeric folder names first, by value, then the rest by name."""
    if name.isdigit():
        return (0, int(name), name)
    return (1, 0, name.lower())
