"""
Reference database service.

An in-memory index over one ReferenceSnapshot, built once per snapshot load
and reused by every reconciliation run.

Lookups:
- exact_match: normalized name (or a single face of a multi-faced card)
  is known.
- best_fuzzy_match: closest known name by optimal string alignment distance
  (an adjacent transposition is one edit), accepted when

      distance <= max(1, floor(len(query) * max_ratio))

  Ties go to the smaller distance, then the alphabetically first name.

Candidate generation uses a trigram inverted index. A name within k edits
of the query shares at least |grams(query)| - 4k distinct trigrams with it,
so only names passing that count filter (and within k of the query length)
are scored. Queries too short for the count filter to prune fall back to
scanning the length buckets len(query) +/- k.
"""

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass
from threading import Lock

from rapidfuzz.distance import OSA

from decklist.models.card_key import CardKey, display_faces, normalize
from decklist.models.snapshot import ReferenceSnapshot

logger = logging.getLogger(__name__)

DEFAULT_MAX_RATIO = 0.2

NGRAM_SIZE = 3

# An adjacent transposition can break NGRAM_SIZE + 1 grams
GRAMS_PER_EDIT = NGRAM_SIZE + 1


@dataclass(frozen=True, slots=True)
class FuzzyMatch:
    """
    Closest known name to a query.

    Attributes:
        key: Key of the matched name (face index set for a single face)
        display_name: Matched name as spelled in the reference data
        distance: Edit distance between query and match
    """

    key: CardKey
    display_name: str
    distance: int


def ngrams(text: str) -> set[str]:
    """Distinct padded trigrams of a normalized name."""
    padded = f"{' ' * (NGRAM_SIZE - 1)}{text} "
    return {padded[i : i + NGRAM_SIZE] for i in range(len(padded) - NGRAM_SIZE + 1)}


def max_distance_for(query: str, max_ratio: float = DEFAULT_MAX_RATIO) -> int:
    """Largest accepted edit distance for a query."""
    return max(1, int(len(query) * max_ratio))


class ReferenceDatabase:
    """
    Read-only name index over one ReferenceSnapshot.

    Every whole card name is indexed, and each face of a multi-faced card is
    indexed on its own so "Delver of Secrets" matches
    "Delver of Secrets // Insectile Aberration".
    """

    def __init__(self, snapshot: ReferenceSnapshot, max_ratio: float = DEFAULT_MAX_RATIO) -> None:
        self.snapshot = snapshot
        self.max_ratio = max_ratio

        # Parallel term tables, indexed by term id
        self._terms: list[str] = []
        self._keys: list[CardKey] = []
        self._display: list[str] = []

        self._exact: dict[str, int] = {}
        self._by_length: dict[int, list[int]] = defaultdict(list)
        self._postings: dict[str, list[int]] = defaultdict(list)

        for name in snapshot.names:
            card_key = normalize(name)
            self._add_term(card_key, name)
            faces = display_faces(name)
            for face_key in card_key.face_keys():
                face_display = faces[face_key.face] if face_key.face < len(faces) else face_key.name
                self._add_term(face_key, face_display)

        logger.info(
            "REFERENCE_INDEX_BUILT",
            extra={
                "snapshot_id": snapshot.snapshot_id,
                "cards": len(snapshot),
                "terms": len(self._terms),
                "grams": len(self._postings),
            },
        )

    def _add_term(self, key: CardKey, display_name: str) -> None:
        if not key.name or key.name in self._exact:
            return
        term_id = len(self._terms)
        self._terms.append(key.name)
        self._keys.append(key)
        self._display.append(display_name)
        self._exact[key.name] = term_id
        self._by_length[len(key.name)].append(term_id)
        for gram in ngrams(key.name):
            self._postings[gram].append(term_id)

    @property
    def snapshot_id(self) -> str:
        return self.snapshot.snapshot_id

    def __len__(self) -> int:
        return len(self._terms)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, CardKey) and self.exact_match(key)

    def exact_match(self, key: CardKey) -> bool:
        """True if the key names a known card or a known face."""
        return key.name in self._exact

    def display_name(self, key: CardKey) -> str | None:
        """Reference spelling of a known name."""
        term_id = self._exact.get(key.name)
        return None if term_id is None else self._display[term_id]

    def max_distance(self, query: str) -> int:
        return max_distance_for(query, self.max_ratio)

    def _candidates(self, query: str, max_distance: int) -> list[int]:
        query_grams = ngrams(query)
        min_shared = len(query_grams) - GRAMS_PER_EDIT * max_distance
        min_len = len(query) - max_distance
        max_len = len(query) + max_distance

        if min_shared <= 0:
            # Count filter cannot prune; scan names of plausible length
            return [
                term_id
                for length in range(max(min_len, 1), max_len + 1)
                for term_id in self._by_length.get(length, ())
            ]

        shared: Counter[int] = Counter()
        for gram in query_grams:
            shared.update(self._postings.get(gram, ()))
        return [
            term_id
            for term_id, count in shared.items()
            if count >= min_shared and min_len <= len(self._terms[term_id]) <= max_len
        ]

    def best_fuzzy_match(self, key: CardKey) -> FuzzyMatch | None:
        """
        Closest known name within the acceptance threshold.

        Returns:
            FuzzyMatch, or None if no known name is close enough.
        """
        query = key.name
        if not query:
            return None

        max_distance = self.max_distance(query)
        best: tuple[int, str] | None = None
        best_id = -1
        for term_id in self._candidates(query, max_distance):
            term = self._terms[term_id]
            distance = OSA.distance(query, term, score_cutoff=max_distance)
            if distance > max_distance:
                continue
            rank = (distance, term)
            if best is None or rank < best:
                best = rank
                best_id = term_id

        if best is None:
            return None
        return FuzzyMatch(
            key=self._keys[best_id],
            display_name=self._display[best_id],
            distance=best[0],
        )


def build_index(
    snapshot: ReferenceSnapshot, max_ratio: float = DEFAULT_MAX_RATIO
) -> ReferenceDatabase:
    """Build the reference database for a snapshot."""
    return ReferenceDatabase(snapshot, max_ratio=max_ratio)


class ReferenceDatabaseHandle:
    """
    Versioned pointer to the active ReferenceDatabase.

    The snapshot manager swaps in a freshly built database after every
    successful load; readers take `current` once per reconciliation run and
    keep using that object, so a swap never changes a run mid-way.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._current: ReferenceDatabase | None = None
        self._version = 0

    @property
    def current(self) -> ReferenceDatabase | None:
        with self._lock:
            return self._current

    @property
    def version(self) -> int:
        with self._lock:
            return self._version

    def swap(self, database: ReferenceDatabase | None) -> int:
        """Replace the active database; returns the new version number."""
        with self._lock:
            self._current = database
            self._version += 1
            version = self._version
        logger.info(
            "REFERENCE_DATABASE_SWAPPED",
            extra={
                "version": version,
                "snapshot_id": database.snapshot_id if database else None,
            },
        )
        return version
