import json
from datetime import UTC, datetime
from pathlib import Path

import pytest

from decklist.models.snapshot import ReferenceSnapshot
from decklist.services.reference_database import ReferenceDatabase, build_index


@pytest.fixture
def sample_cards() -> list[dict]:
    """Sample Scryfall Oracle Cards entries."""
    return [
        {"object": "card", "name": "Sol Ring", "layout": "normal"},
        {"object": "card", "name": "Lightning Bolt", "layout": "normal"},
        {"object": "card", "name": "Counterspell", "layout": "normal"},
        {"object": "card", "name": "Sheoldred, the Apocalypse", "layout": "normal"},
        {"object": "card", "name": "Urza's Saga", "layout": "saga"},
        {"object": "card", "name": "Fire // Ice", "layout": "split"},
        {
            "object": "card",
            "name": "Delver of Secrets // Insectile Aberration",
            "layout": "transform",
        },
        {"object": "card", "name": "Bonecrusher Giant // Stomp", "layout": "adventure"},
        {"object": "card", "name": "Lim-Dûl's Vault", "layout": "normal"},
        {"object": "card", "name": "Æther Vial", "layout": "normal"},
    ]


@pytest.fixture
def sample_snapshot(sample_cards: list[dict]) -> ReferenceSnapshot:
    return ReferenceSnapshot(
        snapshot_id="20261001000000",
        fetched_at=datetime(2026, 10, 1, tzinfo=UTC),
        source="test",
        names=tuple(card["name"] for card in sample_cards),
    )


@pytest.fixture
def reference_db(sample_snapshot: ReferenceSnapshot) -> ReferenceDatabase:
    return build_index(sample_snapshot)


@pytest.fixture
def bulk_file(sample_cards: list[dict], tmp_path: Path) -> Path:
    """A valid Oracle Cards bulk file outside the database directory."""
    path = tmp_path / "oracle-cards-download.json"
    path.write_text(json.dumps(sample_cards), encoding="utf-8")
    return path


@pytest.fixture
def sample_decklist() -> str:
    """Decklist mixing the supported line markers."""
    return """Deck
## Sol Ring
4 Lightning Bolt (LEB) 163
2x Counterspell

Sideboard
1 Fire // Ice"""
