"""
Reference snapshot models.

A ReferenceSnapshot is one immutable download of every known card name.
The SnapshotCatalog is the on-disk index of snapshot files, kept newest
first. Only the snapshot manager writes either of them.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from pydantic import BaseModel, Field

SNAPSHOT_PREFIX = "oracle-cards-"
SNAPSHOT_SUFFIX = ".json"
SNAPSHOT_ID_FORMAT = "%Y%m%d%H%M%S"


def snapshot_id_for(fetched_at: datetime) -> str:
    """Snapshot id derived from the fetch time, e.g. "20261017093000"."""
    return fetched_at.astimezone(UTC).strftime(SNAPSHOT_ID_FORMAT)


def snapshot_filename(snapshot_id: str) -> str:
    return f"{SNAPSHOT_PREFIX}{snapshot_id}{SNAPSHOT_SUFFIX}"


def parse_snapshot_filename(filename: str) -> datetime | None:
    """
    Extract the fetch time from a snapshot filename.

    Returns None for files that are not snapshots.
    """
    if not (filename.startswith(SNAPSHOT_PREFIX) and filename.endswith(SNAPSHOT_SUFFIX)):
        return None
    stamp = filename[len(SNAPSHOT_PREFIX) : -len(SNAPSHOT_SUFFIX)]
    try:
        return datetime.strptime(stamp, SNAPSHOT_ID_FORMAT).replace(tzinfo=UTC)
    except ValueError:
        return None


class SnapshotRecord(BaseModel):
    """Catalog metadata for one snapshot file."""

    snapshot_id: str
    filename: str
    fetched_at: datetime
    source: str = ""
    card_count: int = Field(default=0, ge=0)

    def age(self, now: datetime) -> timedelta:
        return now - self.fetched_at

    def is_stale(self, age_limit_days: int, now: datetime) -> bool:
        """Stale iff strictly older than the age limit; exactly equal is fresh."""
        return self.age(now) > timedelta(days=age_limit_days)


class SnapshotCatalog(BaseModel):
    """
    Ordered snapshot metadata, newest fetch first.

    `active_id` names the snapshot currently backing the reference database.
    It may point at an older entry after an operator override.
    """

    snapshots: list[SnapshotRecord] = Field(default_factory=list)
    active_id: str | None = None

    def ordered(self) -> "SnapshotCatalog":
        ordered = sorted(self.snapshots, key=lambda r: r.fetched_at, reverse=True)
        return SnapshotCatalog(snapshots=ordered, active_id=self.active_id)

    def get(self, snapshot_id: str) -> SnapshotRecord | None:
        for record in self.snapshots:
            if record.snapshot_id == snapshot_id:
                return record
        return None

    @property
    def active(self) -> SnapshotRecord | None:
        if self.active_id is None:
            return None
        return self.get(self.active_id)

    @property
    def newest(self) -> SnapshotRecord | None:
        return self.snapshots[0] if self.snapshots else None

    def with_snapshot(self, record: SnapshotRecord) -> "SnapshotCatalog":
        """New catalog with `record` added (replacing any entry with the same id)."""
        others = [r for r in self.snapshots if r.snapshot_id != record.snapshot_id]
        return SnapshotCatalog(snapshots=[*others, record], active_id=self.active_id).ordered()

    def without(self, snapshot_ids: set[str]) -> "SnapshotCatalog":
        kept = [r for r in self.snapshots if r.snapshot_id not in snapshot_ids]
        active_id = None if self.active_id in snapshot_ids else self.active_id
        return SnapshotCatalog(snapshots=kept, active_id=active_id)

    def activate(self, snapshot_id: str | None) -> "SnapshotCatalog":
        return SnapshotCatalog(snapshots=list(self.snapshots), active_id=snapshot_id)


@dataclass(frozen=True, slots=True)
class ReferenceSnapshot:
    """
    One loaded snapshot: every known card name as of a fetch time.

    Never mutated; a newer snapshot replaces it.

    Attributes:
        snapshot_id: Catalog id
        fetched_at: When the data was fetched
        source: Where the data came from (URL or file path)
        names: Display names of every known card, multi-faced cards
            written as "Front // Back"
    """

    snapshot_id: str
    fetched_at: datetime
    source: str
    names: tuple[str, ...]

    def __len__(self) -> int:
        return len(self.names)
