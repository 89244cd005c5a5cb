"""
Failure classification for decklist.

Every error the core raises is a DecklistError carrying a FailureKind, a
user-appropriate message and an optional suggestion. Callers (the CLI, the
interactive shell) render these directly.

Propagation policy:
- Loaders recover per-line problems locally and raise FormatError only when
  the whole input is unusable.
- DownloadError / ValidationError never escape the snapshot manager's
  refresh path; they are downgraded to warnings there.
- FileAccessError raised while pruning is logged, never propagated.
"""

from enum import Enum


class FailureKind(str, Enum):
    """Classification of failure types."""

    # Input failures
    FORMAT_ERROR = "format_error"
    PARSE_ERROR = "parse_error"

    # Reference database failures
    DOWNLOAD_ERROR = "download_error"
    VALIDATION_ERROR = "validation_error"
    IO_ERROR = "io_error"

    # Operator input
    NOT_FOUND = "not_found"


STANDARD_SUGGESTIONS: dict[FailureKind, str] = {
    FailureKind.FORMAT_ERROR: "Check that the file is a supported export format.",
    FailureKind.PARSE_ERROR: "Fix the offending row and load the file again.",
    FailureKind.DOWNLOAD_ERROR: "Check your connection; the last good database is still used.",
    FailureKind.VALIDATION_ERROR: "The downloaded data was discarded. Try refreshing later.",
    FailureKind.IO_ERROR: "Check permissions on the database directory.",
    FailureKind.NOT_FOUND: "Run `decklist snapshots` to list available snapshots.",
}


class DecklistError(Exception):
    """
    Base class for known, explainable failures.

    Subclass this for errors where the system knows exactly what went wrong.
    """

    kind: FailureKind = FailureKind.FORMAT_ERROR

    def __init__(
        self,
        message: str,
        detail: str | None = None,
        suggestion: str | None = None,
    ):
        self.message = message
        self.detail = detail
        self.suggestion = suggestion or STANDARD_SUGGESTIONS.get(self.kind)
        super().__init__(message)


class FormatError(DecklistError):
    """Input is structurally invalid (missing columns, no usable lines)."""

    kind = FailureKind.FORMAT_ERROR


class ParseError(DecklistError):
    """A specific field failed to parse, e.g. a non-integer quantity."""

    kind = FailureKind.PARSE_ERROR

    def __init__(
        self,
        message: str,
        row_number: int | None = None,
        value: str | None = None,
    ):
        self.row_number = row_number
        self.value = value
        detail = None
        if row_number is not None:
            detail = f"row {row_number}: {value!r}"
        super().__init__(message, detail=detail)


class DownloadError(DecklistError):
    """Raised when fetching the reference dataset fails."""

    kind = FailureKind.DOWNLOAD_ERROR


class ValidationError(DecklistError):
    """Raised when a snapshot file is empty or unparseable."""

    kind = FailureKind.VALIDATION_ERROR


class FileAccessError(DecklistError):
    """File read/write/delete failure."""

    kind = FailureKind.IO_ERROR


class SnapshotNotFoundError(DecklistError):
    """Raised when an operator asks for a snapshot the catalog does not know."""

    kind = FailureKind.NOT_FOUND

    def __init__(self, snapshot_id: str):
        self.snapshot_id = snapshot_id
        super().__init__(f"No snapshot with id '{snapshot_id}' in the catalog.")
