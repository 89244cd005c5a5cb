"""
Parser for plain-text decklists.

Each line names a card behind a leading marker:

    ## Sol Ring          one copy (marker "#" or "##")
    1 Sol Ring           one copy
    4 Lightning Bolt     four copies ("4x" / "4X" also accepted)
    1 Fire // Ice (MH2) 290

Repeated lines for the same card accumulate. Blank lines, section headers
(Deck, Sideboard, ...) and lines that do not match are skipped; one bad line
never aborts the load.
"""

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from decklist.models.failure import FileAccessError, FormatError
from decklist.models.multiset import CardMultiset, CardMultisetBuilder

logger = logging.getLogger(__name__)

# Pattern: "<marker> <card name>" where marker is a count or one or more "#"
# Groups: (count, hashes, card_name)
DECK_LINE_PATTERN = re.compile(r"^(?:(\d+)[xX]?|(#+))\s+(.+?)\s*$")

# Trailing Arena printing info: " (MH2) 290" or " (MH2) 290a"
ARENA_SUFFIX_PATTERN = re.compile(r"\s+\([A-Za-z0-9]+\)\s+\S+$")

SECTION_HEADERS = frozenset({"deck", "sideboard", "commander", "companion", "maybeboard"})


@dataclass(frozen=True, slots=True)
class DeckLine:
    """One parsed decklist line."""

    name: str
    quantity: int
    line_number: int


def parse_deck_line(line: str, line_number: int = 0) -> DeckLine | None:
    """
    Parse a single decklist line.

    Returns:
        DeckLine, or None for blank lines, section headers and lines
        without a marker.
    """
    line = line.strip()
    if not line or line.lower() in SECTION_HEADERS:
        return None

    match = DECK_LINE_PATTERN.match(line)
    if not match:
        return None

    count, _hashes, name = match.groups()
    name = ARENA_SUFFIX_PATTERN.sub("", name).strip()
    if not name:
        return None

    # A "#" marker always means a single copy
    quantity = int(count) if count is not None else 1
    return DeckLine(name=name, quantity=quantity, line_number=line_number)


def load_decklist(lines: Iterable[str]) -> CardMultiset:
    """
    Build the required-card multiset from decklist lines.

    Args:
        lines: Decklist text split into lines

    Returns:
        CardMultiset of required cards, repeated lines summed.

    Raises:
        FormatError: If the input has non-blank content but no valid line
    """
    builder = CardMultisetBuilder()
    valid_lines = 0
    skipped_lines = 0

    for line_number, line in enumerate(lines, start=1):
        parsed = parse_deck_line(line, line_number)
        if parsed is None:
            if line.strip():
                skipped_lines += 1
                logger.debug("Skipping decklist line %d: %r", line_number, line)
            continue
        builder.add(parsed.name, parsed.quantity)
        valid_lines += 1

    if valid_lines == 0 and skipped_lines > 0:
        raise FormatError(
            "Decklist contains no card lines.",
            detail=f"{skipped_lines} line(s) did not match '<count> <card name>'",
            suggestion="Each line should look like '1 Sol Ring' or '## Sol Ring'.",
        )

    if skipped_lines:
        logger.info(
            "DECKLIST_LINES_SKIPPED",
            extra={"skipped": skipped_lines, "valid": valid_lines},
        )
    return builder.build()


def parse_decklist_text(text: str) -> CardMultiset:
    """Parse decklist text."""
    return load_decklist(text.splitlines())


def load_decklist_file(path: Path) -> CardMultiset:
    """Read and parse a decklist file."""
    try:
        text = path.read_text(encoding="utf-8-sig")
    except OSError as e:
        raise FileAccessError(f"Could not read decklist file {path}: {e}") from e
    return parse_decklist_text(text)
