"""
Reference snapshot lifecycle manager.

Owns the snapshot directory: the snapshot files and catalog.json. Every
change to the active reference database goes through here.

States:

    NO_SNAPSHOT --ensure_fresh--> REFRESHING --ok--> SNAPSHOT_LOADED
    SNAPSHOT_LOADED --stale--> REFRESHING --fail--> SNAPSHOT_LOADED (old data)
    NO_SNAPSHOT --refresh fails--> ERROR(reason)

INVARIANTS:
1. A refresh failure is never fatal. The previous snapshot (if any) stays
   active and the failure is reported as a warning.
2. A downloaded file is validated before it is committed. Invalid or
   partial data never becomes active.
3. catalog.json is replaced atomically; readers see the old or the new
   catalog, never a mix.
4. At most one refresh runs at a time; concurrent callers share its result.
5. Pruning never deletes the active snapshot.
"""

import asyncio
import logging
import os
import shutil
import tempfile
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from functools import partial
from pathlib import Path
from threading import Lock

from pydantic import ValidationError as PydanticValidationError

from decklist.config import Settings
from decklist.models.failure import (
    DecklistError,
    DownloadError,
    FileAccessError,
    SnapshotNotFoundError,
    ValidationError,
)
from decklist.models.snapshot import (
    ReferenceSnapshot,
    SnapshotCatalog,
    SnapshotRecord,
    parse_snapshot_filename,
    snapshot_filename,
    snapshot_id_for,
)
from decklist.parsers.scryfall import load_snapshot, read_bulk_file
from decklist.services.card_database import (
    DEFAULT_USER_AGENT,
    PARTIAL_PREFIX,
    PARTIAL_SUFFIX,
    SCRYFALL_ORACLE_CARDS,
    StagedDownload,
    download_snapshot,
)
from decklist.services.reference_database import (
    DEFAULT_MAX_RATIO,
    ReferenceDatabase,
    ReferenceDatabaseHandle,
    build_index,
)

logger = logging.getLogger(__name__)

CATALOG_FILENAME = "catalog.json"

Fetcher = Callable[[Path], Awaitable[StagedDownload]]


class DatabaseState(str, Enum):
    """Lifecycle state of the reference database."""

    NO_SNAPSHOT = "no_snapshot"
    SNAPSHOT_LOADED = "snapshot_loaded"
    REFRESHING = "refreshing"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class RefreshResult:
    """
    Outcome of ensure_fresh.

    Attributes:
        refreshed: True if a new snapshot was committed
        active: Active snapshot after the call (None if there is none)
        warning: Why a needed refresh did not happen
        pruned: Snapshot ids deleted by the post-refresh prune
    """

    refreshed: bool
    active: SnapshotRecord | None
    warning: str | None = None
    pruned: tuple[str, ...] = ()


def check_staleness(active: SnapshotRecord, age_limit_days: int, now: datetime) -> bool:
    """True iff `now - active.fetched_at` exceeds the age limit."""
    return active.is_stale(age_limit_days, now)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SnapshotManager:
    """
    Manages on-disk reference snapshots and the active reference database.

    Args:
        database_path: Directory holding snapshot files and catalog.json
        age_limit_days: Snapshots older than this are refreshed
        retain_count: Snapshots kept after a successful refresh
        fetcher: Coroutine downloading a StagedDownload into a directory
        download_timeout: Seconds before a fetch is abandoned
        max_ratio: Fuzzy match acceptance ratio for built indexes
        handle: Handle to publish loaded databases to
        clock: Returns the current time (UTC)
    """

    def __init__(
        self,
        database_path: Path,
        *,
        age_limit_days: int = 7,
        retain_count: int = 3,
        fetcher: Fetcher | None = None,
        download_timeout: float = 300.0,
        max_ratio: float = DEFAULT_MAX_RATIO,
        handle: ReferenceDatabaseHandle | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.database_path = database_path
        self.age_limit_days = age_limit_days
        self.retain_count = retain_count
        self.download_timeout = download_timeout
        self.max_ratio = max_ratio
        self.handle = handle or ReferenceDatabaseHandle()
        self._fetcher: Fetcher = fetcher or partial(
            download_snapshot,
            bulk_data_url=SCRYFALL_ORACLE_CARDS,
            user_agent=DEFAULT_USER_AGENT,
        )
        self._clock = clock

        self._catalog_lock = Lock()
        self._state = DatabaseState.NO_SNAPSHOT
        self._error: str | None = None
        self._active_record: SnapshotRecord | None = None
        self._refresh_task: asyncio.Task[RefreshResult] | None = None
        self._cancel_event: asyncio.Event | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        handle: ReferenceDatabaseHandle | None = None,
    ) -> "SnapshotManager":
        fetcher = partial(
            download_snapshot,
            bulk_data_url=settings.bulk_data_url,
            user_agent=settings.user_agent,
        )
        return cls(
            settings.database_path,
            age_limit_days=settings.database_age_limit,
            retain_count=settings.database_num,
            fetcher=fetcher,
            download_timeout=settings.download_timeout,
            max_ratio=settings.fuzzy_max_ratio,
            handle=handle,
        )

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> DatabaseState:
        return self._state

    @property
    def error(self) -> str | None:
        """Reason for the ERROR state."""
        return self._error if self._state is DatabaseState.ERROR else None

    @property
    def database(self) -> ReferenceDatabase | None:
        """Currently active reference database."""
        return self.handle.current

    @property
    def active_record(self) -> SnapshotRecord | None:
        """Record of the loaded snapshot, else the catalog's active entry."""
        if self.handle.current is not None and self._active_record is not None:
            return self._active_record
        return self.read_catalog().active

    @property
    def is_refreshing(self) -> bool:
        return self._refresh_task is not None and not self._refresh_task.done()

    def _settle_state(self, reason: str | None = None) -> None:
        """Derive the resting state from what is loaded."""
        if self.handle.current is not None:
            self._state = DatabaseState.SNAPSHOT_LOADED
            self._error = None
        elif reason:
            self._state = DatabaseState.ERROR
            self._error = reason
        else:
            self._state = DatabaseState.NO_SNAPSHOT
            self._error = None

    # ------------------------------------------------------------------
    # Catalog persistence
    # ------------------------------------------------------------------

    @property
    def catalog_path(self) -> Path:
        return self.database_path / CATALOG_FILENAME

    def snapshot_path(self, record: SnapshotRecord) -> Path:
        return self.database_path / record.filename

    def read_catalog(self) -> SnapshotCatalog:
        """
        Read catalog.json.

        A missing or corrupted catalog reads as empty; scan() rebuilds it
        from the snapshot files on disk.
        """
        try:
            text = self.catalog_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return SnapshotCatalog()
        except OSError as e:
            logger.warning("Could not read snapshot catalog %s: %s", self.catalog_path, e)
            return SnapshotCatalog()

        try:
            return SnapshotCatalog.model_validate_json(text).ordered()
        except PydanticValidationError as e:
            logger.warning(
                "CATALOG_CORRUPTED",
                extra={"path": str(self.catalog_path), "error": str(e)},
            )
            return SnapshotCatalog()

    def _write_catalog(self, catalog: SnapshotCatalog) -> None:
        """Atomically replace catalog.json."""
        self.database_path.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.database_path, prefix=f".{CATALOG_FILENAME}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(catalog.ordered().model_dump_json(indent=2))
            os.replace(tmp_name, self.catalog_path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise FileAccessError(f"Could not write snapshot catalog: {e}") from e

    def scan(self) -> SnapshotCatalog:
        """
        Reconcile the catalog with the snapshot files on disk.

        Entries whose file disappeared are dropped. Snapshot files missing
        from the catalog (copied in by hand, or left by an interrupted
        commit) are adopted using the timestamp in their filename. Stale
        partial downloads are removed.

        If the reconciled catalog cannot be written it is still returned;
        the next scan retries the write.
        """
        with self._catalog_lock:
            catalog = self.read_catalog()
            if not self.database_path.is_dir():
                return catalog

            on_disk: dict[str, datetime] = {}
            for path in self.database_path.iterdir():
                if path.name.startswith(PARTIAL_PREFIX) and path.name.endswith(PARTIAL_SUFFIX):
                    if not self.is_refreshing:
                        path.unlink(missing_ok=True)
                    continue
                fetched_at = parse_snapshot_filename(path.name)
                if fetched_at is not None and path.is_file():
                    on_disk[path.name] = fetched_at

            known = {record.filename for record in catalog.snapshots}
            gone = {r.snapshot_id for r in catalog.snapshots if r.filename not in on_disk}
            updated = catalog.without(gone) if gone else catalog
            for name, fetched_at in on_disk.items():
                if name not in known:
                    record = SnapshotRecord(
                        snapshot_id=snapshot_id_for(fetched_at),
                        filename=name,
                        fetched_at=fetched_at,
                        source="adopted",
                    )
                    updated = updated.with_snapshot(record)
                    logger.info("Adopted snapshot file %s", name)

            updated = updated.ordered()
            if updated != catalog:
                try:
                    self._write_catalog(updated)
                except FileAccessError as e:
                    logger.warning("CATALOG_WRITE_FAILED", extra={"error": e.message})
            return updated

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _build(self, record: SnapshotRecord) -> ReferenceDatabase:
        snapshot = load_snapshot(
            self.snapshot_path(record),
            snapshot_id=record.snapshot_id,
            fetched_at=record.fetched_at,
            source=record.source,
        )
        return build_index(snapshot, max_ratio=self.max_ratio)

    def _activate(
        self, record: SnapshotRecord, database: ReferenceDatabase, *, strict: bool = True
    ) -> None:
        """
        Point the catalog at `record` and publish its database.

        With strict=False a catalog that cannot be written is logged and
        the database is published anyway.
        """
        try:
            with self._catalog_lock:
                catalog = self.read_catalog()
                updated = catalog
                if catalog.get(record.snapshot_id) is None:
                    updated = catalog.with_snapshot(record)
                updated = updated.activate(record.snapshot_id)
                if updated != catalog:
                    self._write_catalog(updated)
        except FileAccessError as e:
            if strict:
                raise
            logger.warning(
                "CATALOG_WRITE_FAILED",
                extra={"snapshot_id": record.snapshot_id, "error": e.message},
            )
        self._active_record = record
        self.handle.swap(database)
        self._settle_state()

    def load_active(self) -> ReferenceDatabase | None:
        """
        Load the active snapshot, falling back to older ones.

        Tries the catalog's active entry first, then every other entry
        newest first. The first snapshot that loads becomes active. A
        catalog that cannot be written does not stop the load.

        Returns:
            The loaded database, or None if no snapshot could be loaded.
        """
        catalog = self.scan()
        candidates = list(catalog.snapshots)
        active = catalog.active
        if active is not None:
            candidates.remove(active)
            candidates.insert(0, active)

        failures: list[str] = []
        for record in candidates:
            try:
                database = self._build(record)
            except (ValidationError, FileAccessError) as e:
                logger.warning("Snapshot %s failed to load: %s", record.snapshot_id, e.message)
                failures.append(f"{record.snapshot_id}: {e.message}")
                continue
            self._activate(record, database, strict=False)
            logger.info("Loaded snapshot %s (%d cards)", record.snapshot_id, len(database.snapshot))
            return database

        reason = "; ".join(failures) if failures else None
        self._settle_state(f"No snapshot could be loaded ({reason})" if reason else None)
        return None

    def load_explicit(self, snapshot_id: str) -> ReferenceDatabase:
        """
        Activate a specific catalog entry, regardless of its age.

        Operator override for when the newest snapshot cannot be used.

        Raises:
            SnapshotNotFoundError: If the id is not in the catalog
            ValidationError: If the snapshot file is unusable
        """
        record = self.scan().get(snapshot_id)
        if record is None:
            raise SnapshotNotFoundError(snapshot_id)

        database = self._build(record)
        self._activate(record, database)
        logger.info("SNAPSHOT_ACTIVATED", extra={"snapshot_id": snapshot_id, "explicit": True})
        return database

    def import_file(self, path: Path) -> SnapshotRecord:
        """
        Copy a manually obtained bulk file into the catalog and activate it.

        Raises:
            ValidationError: If the file is not usable card data
            FileAccessError: If the file cannot be read or copied
        """
        return self._commit_file(path, self._clock(), source=str(path), move=False)

    # ------------------------------------------------------------------
    # Staleness and refresh
    # ------------------------------------------------------------------

    def check_staleness(self, now: datetime | None = None) -> bool:
        """True if the active snapshot is older than the age limit."""
        active = self.active_record
        if active is None:
            return True
        return check_staleness(active, self.age_limit_days, now or self._clock())

    def needs_refresh(self, now: datetime | None = None) -> bool:
        return self.handle.current is None or self.check_staleness(now)

    async def ensure_fresh(self, *, force: bool = False) -> RefreshResult:
        """
        Refresh the snapshot if none is loaded or the active one is stale.

        Never raises for download or validation failures; they come back as
        RefreshResult.warning while the previous snapshot stays active. A
        call made while a refresh is running waits for that refresh.
        """
        task = self._refresh_task
        if task is not None and not task.done():
            return await asyncio.shield(task)

        if not force and not self.needs_refresh():
            return RefreshResult(refreshed=False, active=self.active_record)

        return await asyncio.shield(self.start_refresh())

    def start_refresh(self) -> asyncio.Task[RefreshResult]:
        """
        Start a background refresh, or return the one already running.

        The task can be polled (`done()`) or awaited, and stopped with
        cancel_refresh().
        """
        if self._refresh_task is not None and not self._refresh_task.done():
            return self._refresh_task

        self._cancel_event = asyncio.Event()
        self._state = DatabaseState.REFRESHING
        self._refresh_task = asyncio.get_running_loop().create_task(
            self._refresh(self._cancel_event)
        )
        return self._refresh_task

    def cancel_refresh(self) -> bool:
        """Abandon the running refresh. Returns False if none is running."""
        if not self.is_refreshing or self._cancel_event is None:
            return False
        self._cancel_event.set()
        return True

    async def _fetch(self, cancel_event: asyncio.Event) -> StagedDownload:
        """Run the fetcher until it finishes, times out, or is cancelled."""
        fetch = asyncio.ensure_future(self._fetcher(self.database_path))
        cancelled = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _ = await asyncio.wait(
                {fetch, cancelled},
                timeout=self.download_timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            cancelled.cancel()
            if not fetch.done():
                fetch.cancel()
                await asyncio.wait({fetch})

        if fetch in done:
            try:
                return fetch.result()
            except DecklistError:
                raise
            except Exception as e:
                raise DownloadError(f"Download failed: {e}") from e
        if cancel_event.is_set():
            raise DownloadError("Refresh was cancelled")
        raise DownloadError(f"Download timed out after {self.download_timeout:g}s")

    async def _refresh(self, cancel_event: asyncio.Event) -> RefreshResult:
        previous = self.active_record
        logger.info(
            "REFRESH_STARTED",
            extra={"previous_snapshot": previous.snapshot_id if previous else None},
        )

        try:
            staged = await self._fetch(cancel_event)
            record = await asyncio.to_thread(self._commit_staged, staged)
        except (DownloadError, ValidationError, FileAccessError) as e:
            warning = f"Card database refresh failed: {e.message}"
            logger.warning(
                "REFRESH_FAILED",
                extra={"kind": e.kind.value, "error": e.message},
            )
            self._settle_state(warning)
            return RefreshResult(
                refreshed=False,
                active=self.active_record if self.handle.current else None,
                warning=warning,
            )

        try:
            pruned = tuple(self.prune())
        except FileAccessError as e:
            logger.warning("Pruning after refresh failed: %s", e.message)
            pruned = ()

        logger.info(
            "REFRESH_COMPLETE",
            extra={"snapshot_id": record.snapshot_id, "pruned": len(pruned)},
        )
        return RefreshResult(refreshed=True, active=record, pruned=pruned)

    def _commit_staged(self, staged: StagedDownload) -> SnapshotRecord:
        """Validate a staged download, commit it, and make it active."""
        try:
            record = self._commit_file(
                staged.path, staged.fetched_at, source=staged.source, move=True
            )
        finally:
            staged.path.unlink(missing_ok=True)
        return record

    def _commit_file(
        self, source_path: Path, fetched_at: datetime, *, source: str, move: bool
    ) -> SnapshotRecord:
        """
        Validate a bulk file, store it under its snapshot name, catalog it
        and make it active.

        Raises:
            ValidationError: If the file holds no usable card data; nothing
                is stored in that case
            FileAccessError: If the file cannot be stored
        """
        names = read_bulk_file(source_path)
        fetched_at = fetched_at.astimezone(UTC).replace(microsecond=0)
        snapshot_id = snapshot_id_for(fetched_at)
        record = SnapshotRecord(
            snapshot_id=snapshot_id,
            filename=snapshot_filename(snapshot_id),
            fetched_at=fetched_at,
            source=source,
            card_count=len(names),
        )
        database = build_index(
            ReferenceSnapshot(
                snapshot_id=snapshot_id,
                fetched_at=fetched_at,
                source=source,
                names=names,
            ),
            max_ratio=self.max_ratio,
        )

        final_path = self.snapshot_path(record)
        try:
            self.database_path.mkdir(parents=True, exist_ok=True)
            if move:
                os.replace(source_path, final_path)
            else:
                fd, tmp_name = tempfile.mkstemp(dir=self.database_path, suffix=".tmp")
                os.close(fd)
                try:
                    shutil.copyfile(source_path, tmp_name)
                    os.replace(tmp_name, final_path)
                finally:
                    Path(tmp_name).unlink(missing_ok=True)
        except OSError as e:
            raise FileAccessError(f"Could not store snapshot {record.filename}: {e}") from e

        self._activate(record, database)
        return record

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------

    def prune(self, retain_count: int | None = None) -> list[str]:
        """
        Delete snapshots beyond the newest `retain_count`.

        The active snapshot is always kept, even with retain_count 0.
        Deletion is best-effort: failures are logged and the entry stays
        in the catalog.

        Returns:
            Ids of the snapshots deleted.
        """
        keep = self.retain_count if retain_count is None else retain_count
        with self._catalog_lock:
            catalog = self.read_catalog()
            doomed = [
                record
                for record in catalog.snapshots[keep:]
                if record.snapshot_id != catalog.active_id
            ]
            if not doomed:
                return []

            # Drop catalog entries before deleting files so readers never
            # see an entry whose file is gone
            self._write_catalog(catalog.without({r.snapshot_id for r in doomed}))

            deleted: list[str] = []
            restored = []
            for record in doomed:
                try:
                    self.snapshot_path(record).unlink(missing_ok=True)
                    deleted.append(record.snapshot_id)
                except OSError as e:
                    logger.warning(
                        "PRUNE_DELETE_FAILED",
                        extra={"snapshot_id": record.snapshot_id, "error": str(e)},
                    )
                    restored.append(record)

            if restored:
                catalog = self.read_catalog()
                for record in restored:
                    catalog = catalog.with_snapshot(record)
                try:
                    self._write_catalog(catalog)
                except DecklistError as e:
                    logger.warning("Could not restore catalog entries: %s", e.message)

        logger.info("PRUNE_COMPLETE", extra={"deleted": deleted, "kept": keep})
        return deleted

    def describe(self) -> list[dict[str, object]]:
        """Catalog summary for display, newest first."""
        catalog = self.read_catalog()
        now = self._clock()
        return [
            {
                "snapshot_id": r.snapshot_id,
                "fetched_at": r.fetched_at.isoformat(),
                "cards": r.card_count,
                "active": r.snapshot_id == catalog.active_id,
                "stale": r.is_stale(self.age_limit_days, now),
            }
            for r in catalog.snapshots
        ]
