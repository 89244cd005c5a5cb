"""
Reconciliation engine.

Diffs a decklist against a collection and reports the cards still needed.

For each decklist card with required quantity R and owned quantity O, a
shortfall R - O > 0 becomes a report entry. When a reference database is
supplied, each entry's name is validated:

- known name                 -> EXACT
- close to a known name      -> FUZZY_CORRECTED, reported under the known name
- nothing close enough       -> UNRESOLVED, original spelling kept

Without a reference database every entry is EXACT by assumption.

Reconciliation never fails on well-formed multisets; UNRESOLVED is a data
outcome, not an error.
"""

import logging

from decklist.models.card_key import CardKey
from decklist.models.multiset import CardMultiset
from decklist.models.report import MatchConfidence, MissingEntry, MissingReport
from decklist.services.reference_database import ReferenceDatabase

logger = logging.getLogger(__name__)


def _face_owners(*multisets: CardMultiset) -> dict[str, CardKey]:
    """
    Map each face name of a multi-faced card to the whole card's key.

    Faces claimed by two different cards are left out.
    """
    owners: dict[str, CardKey] = {}
    ambiguous: set[str] = set()
    for multiset in multisets:
        for key in multiset:
            for face in key.face_keys():
                if owners.setdefault(face.name, key) != key:
                    ambiguous.add(face.name)
    for name in ambiguous:
        del owners[name]
    return owners


def compute_shortfalls(collection: CardMultiset, decklist: CardMultiset) -> dict[CardKey, int]:
    """
    Required minus owned, for every decklist card where that is positive.

    A multi-faced card matches by its full name or by any single face, so
    "Delver of Secrets" and "Delver of Secrets // Insectile Aberration"
    count as the same card on either side. Quantities are counted against
    the whole card. Shortfalls are keyed by the decklist's own spelling
    (the smallest key when the decklist spells one card several ways).

    Cards owned in at least the required quantity are omitted.
    """
    owners = _face_owners(collection, decklist)

    owned: dict[CardKey, int] = {}
    for key, quantity in collection.items():
        card = owners.get(key.name, key)
        owned[card] = owned.get(card, 0) + quantity

    required: dict[CardKey, int] = {}
    report_keys: dict[CardKey, CardKey] = {}
    for key, quantity in decklist.items():
        card = owners.get(key.name, key)
        required[card] = required.get(card, 0) + quantity
        report_keys[card] = min(report_keys.get(card, key), key)

    shortfalls: dict[CardKey, int] = {}
    for card, quantity in required.items():
        have = owned.get(card, 0)
        if quantity > have:
            shortfalls[report_keys[card]] = quantity - have
    return shortfalls


def _classify(
    key: CardKey,
    display_name: str,
    missing: int,
    reference_db: ReferenceDatabase | None,
) -> MissingEntry:
    if reference_db is None or reference_db.exact_match(key):
        return MissingEntry(key=key, display_name=display_name, missing=missing)

    match = reference_db.best_fuzzy_match(key)
    if match is None:
        return MissingEntry(
            key=key,
            display_name=display_name,
            missing=missing,
            confidence=MatchConfidence.UNRESOLVED,
        )

    return MissingEntry(
        # Report against the whole name the player will search for
        key=CardKey(name=match.key.name),
        display_name=match.display_name,
        missing=missing,
        confidence=MatchConfidence.FUZZY_CORRECTED,
        original_key=key,
        original_name=display_name,
        distance=match.distance,
        corrections=((display_name, match.distance),),
    )


def _merge(existing: MissingEntry, incoming: MissingEntry) -> MissingEntry:
    """Combine two entries that resolved to the same card."""
    keep = existing if existing.confidence.rank >= incoming.confidence.rank else incoming
    return MissingEntry(
        key=keep.key,
        display_name=keep.display_name,
        missing=existing.missing + incoming.missing,
        confidence=keep.confidence,
        original_key=keep.original_key,
        original_name=keep.original_name,
        distance=keep.distance,
        corrections=existing.corrections + incoming.corrections,
    )


def reconcile(
    collection: CardMultiset,
    decklist: CardMultiset,
    reference_db: ReferenceDatabase | None = None,
) -> MissingReport:
    """
    Build the missing-card report.

    Args:
        collection: Owned cards
        decklist: Required cards
        reference_db: Active reference database, or None when the database
            is disabled or unavailable

    Returns:
        MissingReport sorted by normalized card name.
    """
    by_key: dict[CardKey, MissingEntry] = {}

    for key, missing in compute_shortfalls(collection, decklist).items():
        entry = _classify(key, decklist.display_name(key), missing, reference_db)
        if entry.key in by_key:
            entry = _merge(by_key[entry.key], entry)
        by_key[entry.key] = entry

    report = MissingReport(entries=tuple(by_key[key] for key in sorted(by_key)))

    counts = report.by_confidence()
    logger.info(
        "RECONCILIATION_COMPLETE",
        extra={
            "missing_cards": len(report),
            "missing_copies": report.total_missing,
            "exact": counts[MatchConfidence.EXACT],
            "corrected": counts[MatchConfidence.FUZZY_CORRECTED],
            "unresolved": counts[MatchConfidence.UNRESOLVED],
            "snapshot_id": reference_db.snapshot_id if reference_db else None,
        },
    )
    if report.unresolved:
        logger.info(
            "Unresolved card names: %s",
            ", ".join(entry.display_name for entry in report.unresolved),
        )
    return report
