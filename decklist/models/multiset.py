from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from decklist.models.card_key import CardKey, normalize


@dataclass(frozen=True, slots=True)
class CardEntry:
    """A card and how many copies of it."""

    key: CardKey
    quantity: int
    display_name: str


class CardMultiset(Mapping[CardKey, int]):
    """
    Immutable mapping of CardKey -> quantity.

    Represents either an owned collection or a required decklist. Keys are
    unique; zero quantities are never stored. The first raw spelling seen for
    each key is kept for display.

    Build with CardMultisetBuilder; the multiset is frozen once built.
    """

    __slots__ = ("_quantities", "_display_names")

    def __init__(
        self,
        quantities: Mapping[CardKey, int] | None = None,
        display_names: Mapping[CardKey, str] | None = None,
    ) -> None:
        quantities = quantities or {}
        display_names = display_names or {}
        self._quantities = MappingProxyType({k: q for k, q in quantities.items() if q > 0})
        self._display_names = MappingProxyType(
            {k: display_names.get(k, k.name) for k in self._quantities}
        )

    def __getitem__(self, key: CardKey) -> int:
        return self._quantities[key]

    def __iter__(self) -> Iterator[CardKey]:
        return iter(self._quantities)

    def __len__(self) -> int:
        return len(self._quantities)

    def __repr__(self) -> str:
        return f"CardMultiset({dict(self._quantities)!r})"

    def quantity(self, key: CardKey) -> int:
        """Copies held of a card; 0 if absent."""
        return self._quantities.get(key, 0)

    def quantity_of(self, raw_name: str) -> int:
        """Copies held of a card looked up by raw name."""
        return self.quantity(normalize(raw_name))

    def display_name(self, key: CardKey) -> str:
        return self._display_names.get(key, key.name)

    def entries(self) -> list[CardEntry]:
        """Entries sorted by normalized name."""
        return [
            CardEntry(key=key, quantity=self._quantities[key], display_name=self.display_name(key))
            for key in sorted(self._quantities)
        ]

    def total_cards(self) -> int:
        """Total number of copies."""
        return sum(self._quantities.values())

    def unique_cards(self) -> int:
        """Number of distinct cards."""
        return len(self._quantities)


@dataclass
class CardMultisetBuilder:
    """
    Accumulates card quantities while a loader reads its input.

    Adding the same card twice sums the quantities; it never replaces.
    """

    _quantities: dict[CardKey, int] = field(default_factory=dict)
    _display_names: dict[CardKey, str] = field(default_factory=dict)

    def add(self, raw_name: str, quantity: int = 1) -> CardKey:
        """Add copies of a card by raw name and return its key."""
        if quantity < 0:
            raise ValueError(f"quantity must be non-negative, got {quantity}")
        key = normalize(raw_name)
        self._quantities[key] = self._quantities.get(key, 0) + quantity
        self._display_names.setdefault(key, " ".join(raw_name.split()))
        return key

    def __len__(self) -> int:
        return len(self._quantities)

    def build(self) -> CardMultiset:
        return CardMultiset(self._quantities, self._display_names)
