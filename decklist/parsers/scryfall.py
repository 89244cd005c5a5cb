"""
Scryfall bulk data parser.

Reads an Oracle Cards bulk file (one JSON object per unique card) and
extracts the card names a reference snapshot needs.

Bulk data: https://scryfall.com/docs/api/bulk-data
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, TypedDict

from decklist.models.failure import FileAccessError, ValidationError
from decklist.models.snapshot import ReferenceSnapshot

# Layouts whose entries are not real card names ("Clue // Clue" art cards)
IGNORED_LAYOUTS = frozenset({"art_series"})


class BulkDataInfo(TypedDict):
    """Fields we use from the bulk-data metadata endpoint."""

    download_uri: str
    updated_at: str
    size: int


def extract_card_names(cards: Any) -> tuple[str, ...]:
    """
    Pull unique card names out of decoded bulk data.

    Args:
        cards: Decoded JSON, expected to be a list of card objects

    Returns:
        Card names in file order, duplicates removed.

    Raises:
        ValidationError: If the data is not a list or holds no card names
    """
    if not isinstance(cards, list):
        raise ValidationError(
            "Card data is not a list of cards.",
            detail=f"Top-level JSON type: {type(cards).__name__}",
        )

    seen: set[str] = set()
    names: list[str] = []
    for card in cards:
        if not isinstance(card, dict):
            continue
        if card.get("layout") in IGNORED_LAYOUTS:
            continue
        name = card.get("name")
        if isinstance(name, str) and name.strip() and name not in seen:
            seen.add(name)
            names.append(name)

    if not names:
        raise ValidationError("Card data contains no card names.")
    return tuple(names)


def read_bulk_file(path: Path) -> tuple[str, ...]:
    """
    Read and validate a bulk data file.

    Raises:
        FileAccessError: If the file cannot be read
        ValidationError: If the file is empty, corrupted, or holds no cards
    """
    try:
        with open(path, encoding="utf-8") as f:
            cards = json.load(f)
    except json.JSONDecodeError as e:
        raise ValidationError(
            f"Card data at {path} is corrupted: {e}",
        ) from e
    except UnicodeDecodeError as e:
        raise ValidationError(f"Card data at {path} is not UTF-8 text.") from e
    except OSError as e:
        raise FileAccessError(f"Could not read card data at {path}: {e}") from e

    return extract_card_names(cards)


def load_snapshot(
    path: Path,
    snapshot_id: str,
    fetched_at: datetime,
    source: str = "",
) -> ReferenceSnapshot:
    """Load a snapshot file into an immutable ReferenceSnapshot."""
    return ReferenceSnapshot(
        snapshot_id=snapshot_id,
        fetched_at=fetched_at,
        source=source or str(path),
        names=read_bulk_file(path),
    )
