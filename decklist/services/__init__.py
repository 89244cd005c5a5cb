"""
decklist services.

Reference database indexing, snapshot lifecycle, reconciliation and export.
"""

from decklist.services.card_database import (
    SCRYFALL_ORACLE_CARDS,
    StagedDownload,
    download_snapshot,
    fetch_bulk_info,
)
from decklist.services.reconciliation import compute_shortfalls, reconcile
from decklist.services.reference_database import (
    FuzzyMatch,
    ReferenceDatabase,
    ReferenceDatabaseHandle,
    build_index,
)
from decklist.services.report_exporter import (
    missing_file_path,
    render,
    write_missing_file,
)
from decklist.services.snapshot_manager import (
    DatabaseState,
    RefreshResult,
    SnapshotManager,
    check_staleness,
)

__all__ = [
    # Download
    "SCRYFALL_ORACLE_CARDS",
    "StagedDownload",
    "download_snapshot",
    "fetch_bulk_info",
    # Reference database
    "FuzzyMatch",
    "ReferenceDatabase",
    "ReferenceDatabaseHandle",
    "build_index",
    # Snapshot lifecycle
    "DatabaseState",
    "RefreshResult",
    "SnapshotManager",
    "check_staleness",
    # Reconciliation
    "compute_shortfalls",
    "reconcile",
    # Export
    "missing_file_path",
    "render",
    "write_missing_file",
]
