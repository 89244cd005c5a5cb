"""
Card keys and card name normalization.

All card equality in decklist goes through `normalize`. Collection exports,
decklists and the Scryfall bulk data spell the same card differently:

    "Sheoldred, the Apocalypse" / "sheoldred the apocalypse"
    "Urza’s Saga" / "Urza's Saga"
    "Lim-Dûl's Vault" / "Lim-Dul's Vault"
    "Æther Vial" / "Aether Vial"
    "Fire // Ice" / "Fire/Ice" / "Fire //Ice"

Rules, applied in order:
    1. Case-fold.
    2. Decompose and drop accents (combining marks).
    3. Expand ligatures (æ, œ).
    4. Drop apostrophes, quotes and commas; unify dash variants.
    5. Split on face dividers ("/" or "//") and collapse whitespace in each face.
    6. Re-join faces with " // ".

The function is total: any input yields a key, worst case an empty name.
"""

import re
import unicodedata
from dataclasses import dataclass

FACE_SEPARATOR = " // "


@dataclass(frozen=True, slots=True, order=True)
class CardKey:
    """
    Canonical identity of a card name.

    Build these with `normalize`; never construct
    one from a raw, user-supplied string.

    Attributes:
        name: Normalized name. Multi-faced cards keep every face, joined
            by " // " (e.g. "fire // ice").
        face: Index of a single face when this key addresses one face of a
            multi-faced card; None for a whole card.
    """

    name: str
    face: int | None = None

    @property
    def faces(self) -> tuple[str, ...]:
        """Normalized face names; a single-faced card has one face."""
        return tuple(self.name.split(FACE_SEPARATOR))

    @property
    def is_multi_faced(self) -> bool:
        return self.face is None and FACE_SEPARATOR in self.name

    def face_keys(self) -> tuple["CardKey", ...]:
        """Per-face keys for a multi-faced card, empty otherwise."""
        if not self.is_multi_faced:
            return ()
        return tuple(CardKey(name=face, face=i) for i, face in enumerate(self.faces))

    def __str__(self) -> str:
        return self.name


_LIGATURES = {
    "æ": "ae",
    "œ": "oe",
    "ø": "o",
    "ł": "l",
}

# Characters that vary between data sources and carry no identity
_DROPPED_CHARS = "'‘’ʼ`´\",“”"

# Dash variants that should compare equal to ASCII "-"
_DASHES = "‐‑‒–—−"

_TRANSLATION = str.maketrans(
    {**{c: None for c in _DROPPED_CHARS}, **{c: "-" for c in _DASHES}}
)

# One or more slashes with any surrounding whitespace
_FACE_DIVIDER = re.compile(r"\s*/+\s*")


def _fold(text: str) -> str:
    text = text.casefold()
    text = unicodedata.normalize("NFKD", text)
    text = "".join(c for c in text if not unicodedata.combining(c))
    for ligature, expansion in _LIGATURES.items():
        text = text.replace(ligature, expansion)
    return text.translate(_TRANSLATION)


def normalize_text(raw_name: str) -> str:
    """Return the normalized name string for a raw card name."""
    folded = _fold(raw_name or "")
    faces = [" ".join(face.split()) for face in _FACE_DIVIDER.split(folded)]
    faces = [face for face in faces if face]
    return FACE_SEPARATOR.join(faces)


def normalize(raw_name: str | CardKey) -> CardKey:
    """
    Canonicalize a raw card name into a CardKey.

    Deterministic and idempotent: normalize(normalize(x)) == normalize(x).
    Passing a CardKey re-normalizes its name and keeps its face index.
    """
    if isinstance(raw_name, CardKey):
        return CardKey(name=normalize_text(raw_name.name), face=raw_name.face)
    return CardKey(name=normalize_text(raw_name))


def display_faces(raw_name: str) -> list[str]:
    """Split a display name into its faces, keeping the original spelling."""
    return [face for face in (f.strip() for f in _FACE_DIVIDER.split(raw_name)) if face]
