"""
Parser for collection export formats.

Supports:
- CSV format: "Count","Name",... (Moxfield style, printings on separate rows)
- CSV format: "Card Name",Quantity,Set (MTGGoldfish style)
- Tab-separated exports with the same columns
- Simple format: "4 Lightning Bolt" or "4x Lightning Bolt"

Every format is a CollectionFormat adapter. New exports are supported by
registering another adapter; nothing downstream of the CardMultiset changes.
"""

import csv
import logging
import re
from collections.abc import Iterable, Mapping, Sequence
from io import StringIO
from pathlib import Path
from typing import Protocol

from decklist.models.failure import FileAccessError, FormatError, ParseError
from decklist.models.multiset import CardMultiset, CardMultisetBuilder

logger = logging.getLogger(__name__)

# Accepted header names (case-insensitive)
NAME_COLUMNS = ("name", "card name", "card")
QUANTITY_COLUMNS = ("count", "quantity", "qty")

# Pattern: "4 Lightning Bolt" or "4x Lightning Bolt" or "4X Lightning Bolt"
# Groups: (quantity, card_name)
SIMPLE_PATTERN = re.compile(r"^(\d+)x?\s+(.+)$", re.IGNORECASE)


def _find_column(fieldnames: Sequence[str], candidates: Sequence[str]) -> str | None:
    by_lower = {col.strip().lower(): col for col in fieldnames if col}
    for candidate in candidates:
        if candidate in by_lower:
            return by_lower[candidate]
    return None


def _parse_quantity(value: str | None, row_number: int) -> int:
    text = (value or "").strip()
    if not text.isdecimal():
        raise ParseError(
            f"Row {row_number}: quantity must be a non-negative integer",
            row_number=row_number,
            value=value,
        )
    return int(text)


def load_collection(
    rows: Iterable[Mapping[str, str | None]],
    fieldnames: Sequence[str] | None,
) -> CardMultiset:
    """
    Build a collection from tabular rows.

    Args:
        rows: Row mappings of column name -> cell text
        fieldnames: Header of the table

    Returns:
        CardMultiset of owned cards. Rows with quantity 0 are dropped and
        rows naming the same card are summed.

    Raises:
        FormatError: If the name or quantity column is absent
        ParseError: If a row's quantity is not a non-negative integer
    """
    if not fieldnames:
        raise FormatError("Collection has no header row.")

    name_col = _find_column(fieldnames, NAME_COLUMNS)
    qty_col = _find_column(fieldnames, QUANTITY_COLUMNS)
    missing = [
        label for label, col in (("name", name_col), ("quantity", qty_col)) if col is None
    ]
    if missing:
        raise FormatError(
            f"Collection is missing required column(s): {', '.join(missing)}",
            detail=f"Found columns: {', '.join(fieldnames)}",
        )

    builder = CardMultisetBuilder()
    # Header is row 1
    for row_number, row in enumerate(rows, start=2):
        name = (row.get(name_col) or "").strip()
        if not name:
            logger.debug("Skipping row %d with empty card name", row_number)
            continue
        quantity = _parse_quantity(row.get(qty_col), row_number)
        if quantity > 0:
            builder.add(name, quantity)

    return builder.build()


class CollectionFormat(Protocol):
    """Adapter turning one export format into a CardMultiset."""

    name: str

    def detect(self, text: str) -> bool:
        """Return True if `text` looks like this format."""
        ...

    def parse(self, text: str) -> CardMultiset:
        ...


class DelimitedFormat:
    """CSV-like exports with a header row."""

    def __init__(self, name: str, delimiter: str) -> None:
        self.name = name
        self.delimiter = delimiter

    def detect(self, text: str) -> bool:
        first_line = text.lstrip().split("\n", 1)[0]
        if self.delimiter not in first_line:
            return False
        header = next(csv.reader([first_line], delimiter=self.delimiter))
        columns = {cell.strip().lower() for cell in header}
        return any(h in columns for h in NAME_COLUMNS + QUANTITY_COLUMNS)

    def parse(self, text: str) -> CardMultiset:
        reader = csv.DictReader(StringIO(text), delimiter=self.delimiter)
        return load_collection(reader, reader.fieldnames)


class SimpleTextFormat:
    """One "quantity name" pair per line."""

    name = "simple"

    def detect(self, text: str) -> bool:
        return any(SIMPLE_PATTERN.match(line.strip()) for line in text.splitlines()[:10])

    def parse(self, text: str) -> CardMultiset:
        builder = CardMultisetBuilder()
        for line in text.splitlines():
            match = SIMPLE_PATTERN.match(line.strip())
            if match:
                builder.add(match.group(2).strip(), int(match.group(1)))
        if not len(builder):
            raise FormatError("Collection text contains no '<quantity> <name>' lines.")
        return builder.build()


_FORMATS: dict[str, CollectionFormat] = {}


def register_format(adapter: CollectionFormat) -> None:
    """Register a collection format. Later registrations take precedence in detection."""
    _FORMATS[adapter.name] = adapter


def available_formats() -> list[str]:
    return list(_FORMATS)


register_format(SimpleTextFormat())
register_format(DelimitedFormat("tsv", "\t"))
register_format(DelimitedFormat("csv", ","))


def detect_format(text: str) -> str:
    """
    Auto-detect the format of collection text.

    Returns:
        Name of the first registered format (most recent first) that
        claims the text. Falls back to "csv".
    """
    for adapter in reversed(list(_FORMATS.values())):
        if adapter.detect(text):
            return adapter.name
    return "csv"


def parse_collection_text(text: str, format_hint: str = "auto") -> CardMultiset:
    """
    Parse collection text in any registered format.

    Args:
        text: Raw collection export text
        format_hint: Format name, or "auto" to detect

    Raises:
        FormatError: If the text is empty, the format is unknown, or
            required columns are missing
        ParseError: If a quantity cannot be parsed
    """
    if not text or not text.strip():
        raise FormatError("Collection is empty.")

    if format_hint == "auto":
        format_hint = detect_format(text)

    adapter = _FORMATS.get(format_hint)
    if adapter is None:
        raise FormatError(
            f"Unknown collection format '{format_hint}'",
            suggestion=f"Use one of: {', '.join(available_formats())}",
        )
    return adapter.parse(text)


def load_collection_file(path: Path, format_hint: str = "auto") -> CardMultiset:
    """Read and parse a collection export file."""
    try:
        # utf-8-sig strips the BOM some exporters write
        text = path.read_text(encoding="utf-8-sig")
    except OSError as e:
        raise FileAccessError(f"Could not read collection file {path}: {e}") from e

    collection = parse_collection_text(text, format_hint)
    logger.info(
        "COLLECTION_LOADED",
        extra={
            "path": str(path),
            "unique_cards": collection.unique_cards(),
            "total_cards": collection.total_cards(),
        },
    )
    return collection
