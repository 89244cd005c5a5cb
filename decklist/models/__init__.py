from decklist.models.card_key import CardKey, display_faces, normalize, normalize_text
from decklist.models.failure import (
    DecklistError,
    DownloadError,
    FailureKind,
    FileAccessError,
    FormatError,
    ParseError,
    SnapshotNotFoundError,
    ValidationError,
)
from decklist.models.multiset import CardEntry, CardMultiset, CardMultisetBuilder
from decklist.models.report import MatchConfidence, MissingEntry, MissingReport
from decklist.models.snapshot import (
    ReferenceSnapshot,
    SnapshotCatalog,
    SnapshotRecord,
    parse_snapshot_filename,
    snapshot_filename,
    snapshot_id_for,
)

__all__ = [
    "CardEntry",
    "CardKey",
    "CardMultiset",
    "CardMultisetBuilder",
    "DecklistError",
    "DownloadError",
    "FailureKind",
    "FileAccessError",
    "FormatError",
    "MatchConfidence",
    "MissingEntry",
    "MissingReport",
    "ParseError",
    "ReferenceSnapshot",
    "SnapshotCatalog",
    "SnapshotNotFoundError",
    "SnapshotRecord",
    "ValidationError",
    "display_faces",
    "normalize",
    "normalize_text",
    "parse_snapshot_filename",
    "snapshot_filename",
    "snapshot_id_for",
]
