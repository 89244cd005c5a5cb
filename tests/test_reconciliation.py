"""Tests for the reconciliation engine."""

import pytest

from decklist.models.card_key import normalize
from decklist.models.multiset import CardMultiset, CardMultisetBuilder
from decklist.models.report import MatchConfidence
from decklist.services.reconciliation import compute_shortfalls, reconcile
from decklist.services.reference_database import ReferenceDatabase


def _multiset(cards: dict[str, int]) -> CardMultiset:
    builder = CardMultisetBuilder()
    for name, quantity in cards.items():
        builder.add(name, quantity)
    return builder.build()


class TestComputeShortfalls:
    def test_shortfall_is_required_minus_owned(self) -> None:
        collection = _multiset({"Lightning Bolt": 1})
        decklist = _multiset({"Lightning Bolt": 4})

        assert compute_shortfalls(collection, decklist) == {normalize("Lightning Bolt"): 3}

    def test_owned_cards_excluded(self) -> None:
        """Owning at least the required quantity means no entry."""
        collection = _multiset({"Sol Ring": 2, "Counterspell": 4})
        decklist = _multiset({"Sol Ring": 1, "Counterspell": 4})

        assert compute_shortfalls(collection, decklist) == {}

    def test_collection_only_cards_ignored(self) -> None:
        collection = _multiset({"Sol Ring": 1})

        assert compute_shortfalls(collection, CardMultiset()) == {}


class TestReconcile:
    """Tests for reconcile."""

    def test_reports_missing_cards(self) -> None:
        collection = _multiset({"Sol Ring": 1, "Lightning Bolt": 4})
        decklist = _multiset({"Sol Ring": 1, "Lightning Bolt": 4, "Counterspell": 2})

        report = reconcile(collection, decklist)

        assert len(report) == 1
        entry = report.entries[0]
        assert entry.key == normalize("Counterspell")
        assert entry.display_name == "Counterspell"
        assert entry.missing == 2
        assert entry.confidence is MatchConfidence.EXACT

    @pytest.mark.parametrize(("owned", "expected"), [(0, 3), (1, 2), (3, None), (5, None)])
    def test_shortfall_per_owned_count(self, owned: int, expected: int | None) -> None:
        collection = _multiset({"Sol Ring": owned})
        decklist = _multiset({"Sol Ring": 3})

        entry = reconcile(collection, decklist).get(normalize("Sol Ring"))

        if expected is None:
            assert entry is None
        else:
            assert entry is not None
            assert entry.missing == expected
            assert entry.confidence is MatchConfidence.EXACT

    def test_matching_ignores_spelling(self) -> None:
        """Collection and decklist spellings of one card reconcile."""
        collection = _multiset({"Urza’s Saga": 1, "sheoldred the apocalypse": 1})
        decklist = _multiset({"Urza's Saga": 1, "Sheoldred, the Apocalypse": 1})

        assert not reconcile(collection, decklist)

    def test_sorted_by_normalized_name(self) -> None:
        decklist = _multiset({"Sol Ring": 1, "counterspell": 1, "Lightning Bolt": 1})

        report = reconcile(CardMultiset(), decklist)

        assert [e.display_name for e in report] == ["counterspell", "Lightning Bolt", "Sol Ring"]

    def test_deterministic(self, reference_db: ReferenceDatabase) -> None:
        collection = _multiset({"Lightning Bolt": 2})
        decklist = _multiset({"Lightning Bolt": 4, "Sol Rnig": 1, "Fake Card": 2})

        assert reconcile(collection, decklist, reference_db) == reconcile(
            collection, decklist, reference_db
        )

    def test_empty_decklist(self) -> None:
        report = reconcile(_multiset({"Sol Ring": 1}), CardMultiset())

        assert not report
        assert report.total_missing == 0


class TestNameValidation:
    """Tests for reference-database validation of missing entries."""

    def test_known_name_is_exact(self, reference_db: ReferenceDatabase) -> None:
        report = reconcile(CardMultiset(), _multiset({"Delver of Secrets": 4}), reference_db)

        entry = report.entries[0]
        assert entry.confidence is MatchConfidence.EXACT
        assert entry.missing == 4

    def test_misspelling_is_corrected(self, reference_db: ReferenceDatabase) -> None:
        """The report uses the corrected name, not the misspelling."""
        report = reconcile(CardMultiset(), _multiset({"Sol Rnig": 2}), reference_db)

        entry = report.entries[0]
        assert entry.confidence is MatchConfidence.FUZZY_CORRECTED
        assert entry.key == normalize("Sol Ring")
        assert entry.display_name == "Sol Ring"
        assert entry.missing == 2
        assert entry.original_name == "Sol Rnig"
        assert entry.original_key == normalize("Sol Rnig")
        assert entry.distance == 1

    def test_corrected_face_reports_face_name(self, reference_db: ReferenceDatabase) -> None:
        report = reconcile(CardMultiset(), _multiset({"Delver of Secrest": 1}), reference_db)

        entry = report.entries[0]
        assert entry.confidence is MatchConfidence.FUZZY_CORRECTED
        assert entry.key == normalize("Delver of Secrets")
        assert entry.key.face is None
        assert entry.display_name == "Delver of Secrets"

    def test_unknown_name_is_unresolved(self, reference_db: ReferenceDatabase) -> None:
        """Unresolved entries keep the original spelling and quantity."""
        report = reconcile(CardMultiset(), _multiset({"Totally Fake Card": 3}), reference_db)

        entry = report.entries[0]
        assert entry.confidence is MatchConfidence.UNRESOLVED
        assert entry.display_name == "Totally Fake Card"
        assert entry.missing == 3
        assert report.unresolved == (entry,)

    def test_without_database_everything_is_exact(self) -> None:
        report = reconcile(CardMultiset(), _multiset({"Sol Rnig": 1, "Totally Fake Card": 1}))

        assert all(e.confidence is MatchConfidence.EXACT for e in report)
        assert [e.display_name for e in report] == ["Sol Rnig", "Totally Fake Card"]

    @pytest.mark.parametrize("misspelling", ["Sol Rnig", "sol rign"])
    def test_duplicate_corrections_merge(
        self, reference_db: ReferenceDatabase, misspelling: str
    ) -> None:
        """A misspelling that corrects onto another entry merges with it."""
        decklist = _multiset({"Sol Ring": 1, misspelling: 2})

        report = reconcile(CardMultiset(), decklist, reference_db)

        assert len(report) == 1
        entry = report.entries[0]
        assert entry.key == normalize("Sol Ring")
        assert entry.missing == 3
        assert entry.confidence is MatchConfidence.EXACT

    def test_merged_entry_keeps_corrections(self, reference_db: ReferenceDatabase) -> None:
        """Folding a misspelling into an exact entry still records the correction."""
        decklist = _multiset({"Sol Ring": 1, "Sol Rnig": 1, "sol rign": 1})

        report = reconcile(CardMultiset(), decklist, reference_db)

        entry = report.entries[0]
        assert entry.confidence is MatchConfidence.EXACT
        assert sorted(entry.corrections) == [("Sol Rnig", 1), ("sol rign", 1)]

    def test_fuzzy_entry_records_its_correction(self, reference_db: ReferenceDatabase) -> None:
        report = reconcile(CardMultiset(), _multiset({"Counterpsell": 1}), reference_db)

        assert report.entries[0].corrections == (("Counterpsell", 1),)


class TestMultiFacedCards:
    """A face matches its whole card; quantity counts against the whole card."""

    def test_front_face_decklist_finds_full_name_collection(
        self, reference_db: ReferenceDatabase
    ) -> None:
        collection = _multiset({"Delver of Secrets // Insectile Aberration": 4})
        decklist = _multiset({"Delver of Secrets": 4})

        assert not reconcile(collection, decklist, reference_db)

    def test_full_name_decklist_finds_front_face_collection(
        self, reference_db: ReferenceDatabase
    ) -> None:
        collection = _multiset({"Delver of Secrets": 4})
        decklist = _multiset({"Delver of Secrets // Insectile Aberration": 4})

        assert not reconcile(collection, decklist, reference_db)

    def test_face_shortfall_counts_whole_card(self) -> None:
        collection = _multiset({"Fire // Ice": 1})
        decklist = _multiset({"Fire": 3})

        assert compute_shortfalls(collection, decklist) == {normalize("Fire"): 2}

    def test_back_face_matches(self) -> None:
        collection = _multiset({"Bonecrusher Giant // Stomp": 2})
        decklist = _multiset({"Stomp": 2})

        assert compute_shortfalls(collection, decklist) == {}

    def test_spellings_of_one_card_share_quantity(self) -> None:
        """Two decklist spellings of one card add up to one requirement."""
        collection = _multiset({"Bonecrusher Giant": 2})
        decklist = _multiset({"Bonecrusher Giant // Stomp": 2, "Bonecrusher Giant": 2})

        assert compute_shortfalls(collection, decklist) == {normalize("Bonecrusher Giant"): 2}

    def test_reported_under_decklist_spelling(self, reference_db: ReferenceDatabase) -> None:
        collection = _multiset({"Delver of Secrets // Insectile Aberration": 1})
        decklist = _multiset({"Delver of Secrets": 4})

        report = reconcile(collection, decklist, reference_db)

        entry = report.entries[0]
        assert entry.display_name == "Delver of Secrets"
        assert entry.missing == 3
        assert entry.confidence is MatchConfidence.EXACT

    def test_shared_face_name_is_not_merged(self) -> None:
        """A face claimed by two different cards matches neither."""
        collection = _multiset({"Fire // Ice": 1, "Fire // Water": 1})
        decklist = _multiset({"Fire": 1})

        assert compute_shortfalls(collection, decklist) == {normalize("Fire"): 1}
