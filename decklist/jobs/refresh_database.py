"""
Refresh the reference card database.

Run this job (e.g. from cron) to keep the snapshot directory current
without starting the CLI. A failed refresh leaves the previous snapshot
active and exits non-zero.
"""

import argparse
import asyncio
import logging

from decklist.config import settings
from decklist.services.snapshot_manager import RefreshResult, SnapshotManager

logger = logging.getLogger(__name__)


async def run_refresh(force: bool = False) -> RefreshResult:
    """Load the active snapshot, then refresh it if stale (or forced)."""
    manager = SnapshotManager.from_settings(settings)
    manager.load_active()

    logger.info("Refreshing card database in %s...", manager.database_path)
    result = await manager.ensure_fresh(force=force)

    if result.warning:
        logger.error("%s", result.warning)
    elif result.refreshed and result.active is not None:
        logger.info(
            "Committed snapshot %s (%d cards), pruned %d",
            result.active.snapshot_id,
            result.active.card_count,
            len(result.pruned),
        )
    else:
        logger.info("Card database is up to date")
    return result


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Refresh the reference card database")
    parser.add_argument("--force", action="store_true", help="Refresh even if not stale")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    result = asyncio.run(run_refresh(force=args.force))
    if result.warning:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
