"""Tests for the reference database index and fuzzy matching."""

from datetime import UTC, datetime

import pytest

from decklist.models.card_key import CardKey, normalize
from decklist.models.snapshot import ReferenceSnapshot
from decklist.services.reference_database import (
    ReferenceDatabase,
    ReferenceDatabaseHandle,
    build_index,
    max_distance_for,
    ngrams,
)


def _snapshot(*names: str) -> ReferenceSnapshot:
    return ReferenceSnapshot(
        snapshot_id="test",
        fetched_at=datetime(2026, 10, 1, tzinfo=UTC),
        source="test",
        names=names,
    )


class TestExactMatch:
    def test_known_name(self, reference_db: ReferenceDatabase) -> None:
        assert reference_db.exact_match(normalize("Sol Ring"))
        assert normalize("sheoldred the apocalypse") in reference_db

    def test_spelling_variants(self, reference_db: ReferenceDatabase) -> None:
        assert reference_db.exact_match(normalize("Urza’s Saga"))
        assert reference_db.exact_match(normalize("Lim-Dul's Vault"))
        assert reference_db.exact_match(normalize("Aether Vial"))

    def test_whole_multi_faced_name(self, reference_db: ReferenceDatabase) -> None:
        assert reference_db.exact_match(normalize("Fire/Ice"))

    def test_single_face_matches(self, reference_db: ReferenceDatabase) -> None:
        """Either face of a multi-faced card is an exact match."""
        assert reference_db.exact_match(normalize("Delver of Secrets"))
        assert reference_db.exact_match(normalize("Stomp"))
        assert reference_db.display_name(normalize("delver of secrets")) == "Delver of Secrets"

    def test_unknown_name(self, reference_db: ReferenceDatabase) -> None:
        assert not reference_db.exact_match(normalize("Sol Rnig"))
        assert reference_db.display_name(normalize("Sol Rnig")) is None
        assert "sol ring" not in reference_db  # only CardKeys are members


class TestFuzzyMatch:
    """Tests for best_fuzzy_match."""

    def test_transposition_is_one_edit(self, reference_db: ReferenceDatabase) -> None:
        match = reference_db.best_fuzzy_match(normalize("Sol Rnig"))

        assert match is not None
        assert match.display_name == "Sol Ring"
        assert match.key == normalize("Sol Ring")
        assert match.distance == 1

    def test_missing_letter(self, reference_db: ReferenceDatabase) -> None:
        match = reference_db.best_fuzzy_match(normalize("Lightnig Bolt"))

        assert match is not None
        assert match.display_name == "Lightning Bolt"

    def test_short_query_scans_by_length(self, reference_db: ReferenceDatabase) -> None:
        """Names too short for the trigram filter still match."""
        match = reference_db.best_fuzzy_match(normalize("Ica"))

        assert match is not None
        assert match.key == CardKey(name="ice", face=1)
        assert match.display_name == "Ice"

    def test_too_far_is_unresolved(self, reference_db: ReferenceDatabase) -> None:
        assert reference_db.best_fuzzy_match(normalize("Sol Rxxg")) is None
        assert reference_db.best_fuzzy_match(normalize("Totally Fake Card")) is None

    def test_empty_query(self, reference_db: ReferenceDatabase) -> None:
        assert reference_db.best_fuzzy_match(normalize("")) is None

    def test_ties_pick_alphabetically_first(self) -> None:
        """Equal distances resolve deterministically."""
        db = build_index(_snapshot("Abc Dog", "Abc Dig"))

        match = db.best_fuzzy_match(normalize("Abc Dug"))

        assert match is not None
        assert match.display_name == "Abc Dig"
        assert match.distance == 1

    def test_smaller_distance_wins(self) -> None:
        db = build_index(_snapshot("Abc Dog", "Abd Dig"))

        match = db.best_fuzzy_match(normalize("Abc Dug"))

        assert match is not None
        assert match.display_name == "Abc Dog"

    def test_ratio_widens_acceptance(self, sample_snapshot: ReferenceSnapshot) -> None:
        db = build_index(sample_snapshot, max_ratio=0.5)

        match = db.best_fuzzy_match(normalize("Sol Rxxg"))

        assert match is not None
        assert match.display_name == "Sol Ring"


class TestThreshold:
    @pytest.mark.parametrize(
        ("query", "expected"),
        [("a", 1), ("sol ring", 1), ("lightning bolt", 2), ("a" * 20, 4)],
    )
    def test_max_distance(self, query: str, expected: int) -> None:
        assert max_distance_for(query) == expected

    def test_ngrams_are_padded(self) -> None:
        assert ngrams("ab") == {"  a", " ab", "ab "}


class TestReferenceDatabaseHandle:
    def test_swap_publishes_new_database(self, reference_db: ReferenceDatabase) -> None:
        handle = ReferenceDatabaseHandle()
        assert handle.current is None
        assert handle.version == 0

        version = handle.swap(reference_db)

        assert version == 1
        assert handle.current is reference_db

    def test_reader_keeps_its_database_across_swap(self, reference_db: ReferenceDatabase) -> None:
        """A run that took `current` keeps using it after a swap."""
        handle = ReferenceDatabaseHandle()
        handle.swap(reference_db)
        in_use = handle.current

        handle.swap(build_index(_snapshot("Sol Ring")))

        assert in_use is reference_db
        assert handle.current is not reference_db
        assert handle.version == 2
