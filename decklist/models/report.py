"""
Missing-card report.

A MissingReport is produced fresh by every reconciliation run and is never
mutated. Entries are ordered by normalized card name so the same inputs
always render the same text.
"""

from collections import Counter
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum

from decklist.models.card_key import CardKey


class MatchConfidence(str, Enum):
    """How a missing card's name was validated against the reference database."""

    EXACT = "exact"
    FUZZY_CORRECTED = "fuzzy_corrected"
    UNRESOLVED = "unresolved"

    @property
    def rank(self) -> int:
        """Higher is more trustworthy."""
        return {
            MatchConfidence.EXACT: 2,
            MatchConfidence.FUZZY_CORRECTED: 1,
            MatchConfidence.UNRESOLVED: 0,
        }[self]


@dataclass(frozen=True, slots=True)
class MissingEntry:
    """
    One card the player still needs.

    Attributes:
        key: Key of the card to acquire (the corrected key when fuzzy-matched)
        display_name: Name to render
        missing: Shortfall, always > 0
        confidence: How the name was validated
        original_key: The decklist's key before fuzzy correction
        original_name: The decklist's spelling before fuzzy correction
        distance: Edit distance of the fuzzy correction
        corrections: (decklist spelling, edit distance) for every
            misspelling folded into this entry, including ones merged
            into an EXACT entry
    """

    key: CardKey
    display_name: str
    missing: int
    confidence: MatchConfidence = MatchConfidence.EXACT
    original_key: CardKey | None = None
    original_name: str | None = None
    distance: int | None = None
    corrections: tuple[tuple[str, int], ...] = ()

    @property
    def is_corrected(self) -> bool:
        return self.confidence is MatchConfidence.FUZZY_CORRECTED

    @property
    def is_unresolved(self) -> bool:
        return self.confidence is MatchConfidence.UNRESOLVED


@dataclass(frozen=True, slots=True)
class MissingReport:
    """Ordered, immutable sequence of missing entries."""

    entries: tuple[MissingEntry, ...] = ()

    def __iter__(self) -> Iterator[MissingEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __bool__(self) -> bool:
        return bool(self.entries)

    @property
    def total_missing(self) -> int:
        """Total number of copies to acquire."""
        return sum(entry.missing for entry in self.entries)

    @property
    def unresolved(self) -> tuple[MissingEntry, ...]:
        """Entries whose name could not be validated."""
        return tuple(entry for entry in self.entries if entry.is_unresolved)

    @property
    def corrected(self) -> tuple[MissingEntry, ...]:
        """Entries whose name was auto-corrected."""
        return tuple(entry for entry in self.entries if entry.is_corrected)

    def by_confidence(self) -> dict[MatchConfidence, int]:
        """Count of entries per confidence level."""
        counts = Counter(entry.confidence for entry in self.entries)
        return {confidence: counts.get(confidence, 0) for confidence in MatchConfidence}

    def get(self, key: CardKey) -> MissingEntry | None:
        for entry in self.entries:
            if entry.key == key:
                return entry
        return None
