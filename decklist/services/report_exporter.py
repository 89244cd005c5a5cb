"""
Missing report exporter.

Renders a MissingReport back into decklist text: one "1 <name>" line per
missing copy, so the output loads again as a decklist with the same
quantities. `render` is pure; `write_missing_file` is the file-writing
collaborator used by the CLI.
"""

import logging
import os
import tempfile
from pathlib import Path

from decklist.models.failure import FileAccessError
from decklist.models.report import MissingEntry, MissingReport

logger = logging.getLogger(__name__)

MISSING_SUFFIX = "_missing.txt"


def _format_card_line(entry: MissingEntry) -> str:
    """Format a single copy of a card in decklist format."""
    return f"1 {entry.display_name}"


def render(report: MissingReport) -> str:
    """
    Format a report as decklist text.

    Args:
        report: The report to render

    Returns:
        Newline-terminated text, one line per missing copy. Empty string for
        an empty report.
    """
    lines: list[str] = []
    for entry in report:
        lines.extend([_format_card_line(entry)] * entry.missing)
    return "".join(f"{line}\n" for line in lines)


def missing_file_path(decklist_path: Path) -> Path:
    """`<dir>/<decklist stem>_missing.txt` for a decklist path."""
    return decklist_path.with_name(f"{decklist_path.stem}{MISSING_SUFFIX}")


def atomic_write_text(path: Path, text: str) -> None:
    """Write a file via a temp file and rename, so readers never see partial content."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def write_missing_file(
    report: MissingReport,
    decklist_path: Path,
    output_path: Path | None = None,
) -> Path:
    """
    Write the rendered report next to its decklist.

    Args:
        report: The report to write
        decklist_path: Decklist the report was computed for
        output_path: Write here instead of `<stem>_missing.txt`

    Returns:
        Path of the written file.

    Raises:
        FileAccessError: If the file cannot be written
    """
    output_path = output_path or missing_file_path(decklist_path)
    try:
        atomic_write_text(output_path, render(report))
    except OSError as e:
        raise FileAccessError(f"Could not write {output_path}: {e}") from e

    logger.info("Wrote %d missing card(s) to %s", report.total_missing, output_path)
    return output_path
