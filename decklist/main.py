"""
decklist command line.

    decklist missing [COLLECTION] DECKLIST   write <decklist>_missing.txt
    decklist refresh [--force]               refresh the card database
    decklist snapshots                       list stored snapshots
    decklist activate SNAPSHOT_ID            pin an older snapshot
    decklist import FILE                     register a hand-downloaded bulk file
    decklist init-config                     write a default config.toml
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from decklist.config import CONFIG_FILE, Settings, settings, write_default_config
from decklist.models.failure import DecklistError
from decklist.models.report import MissingReport
from decklist.parsers.collection_import import available_formats, load_collection_file
from decklist.parsers.decklist import load_decklist_file
from decklist.services.reconciliation import reconcile
from decklist.services.reference_database import ReferenceDatabase
from decklist.services.report_exporter import render, write_missing_file
from decklist.services.snapshot_manager import RefreshResult, SnapshotManager


def _report_refresh(result: RefreshResult) -> None:
    if result.warning:
        print(f"warning: {result.warning}", file=sys.stderr)
        if result.active is not None:
            print(f"Using snapshot {result.active.snapshot_id}", file=sys.stderr)


def _load_reference_database(config: Settings) -> ReferenceDatabase | None:
    """Load the active snapshot, refreshing it first when stale."""
    manager = SnapshotManager.from_settings(config)
    manager.load_active()
    _report_refresh(asyncio.run(manager.ensure_fresh()))

    database = manager.database
    if database is None:
        print(
            "warning: no card database available; card names are not verified",
            file=sys.stderr,
        )
    return database


def _print_summary(report: MissingReport) -> None:
    if not report:
        print("You own every card in this decklist.", file=sys.stderr)
        return

    print(
        f"{len(report)} card(s) missing, {report.total_missing} cop(ies) in total",
        file=sys.stderr,
    )
    for entry in report:
        for original_name, _ in entry.corrections:
            print(f"  corrected: {original_name} -> {entry.display_name}", file=sys.stderr)
    for entry in report.unresolved:
        print(f"  unknown card: {entry.display_name}", file=sys.stderr)


def cmd_missing(args: argparse.Namespace, config: Settings) -> int:
    collection_path = args.collection or config.collection_path
    if collection_path is None:
        print(
            "error: no collection given and collection_path is not configured",
            file=sys.stderr,
        )
        return 2

    collection = load_collection_file(Path(collection_path), args.format)
    decklist = load_decklist_file(args.decklist)

    database = None
    if config.use_database and not args.no_database:
        try:
            database = _load_reference_database(config)
        except DecklistError as e:
            print(f"warning: card database unavailable: {e.message}", file=sys.stderr)
            print("warning: card names are not verified", file=sys.stderr)

    report = reconcile(collection, decklist, database)
    _print_summary(report)

    if args.stdout:
        sys.stdout.write(render(report))
    else:
        path = write_missing_file(report, args.decklist, args.output)
        print(f"Wrote {path}", file=sys.stderr)
    return 0


def cmd_refresh(args: argparse.Namespace, config: Settings) -> int:
    manager = SnapshotManager.from_settings(config)
    manager.load_active()
    result = asyncio.run(manager.ensure_fresh(force=args.force))
    _report_refresh(result)
    if result.warning:
        return 1

    if result.refreshed and result.active is not None:
        print(f"Downloaded snapshot {result.active.snapshot_id} ({result.active.card_count} cards)")
        for snapshot_id in result.pruned:
            print(f"  removed {snapshot_id}")
    elif result.active is not None:
        print(f"Snapshot {result.active.snapshot_id} is up to date")
    return 0


def cmd_snapshots(args: argparse.Namespace, config: Settings) -> int:
    manager = SnapshotManager.from_settings(config)
    manager.scan()
    rows = manager.describe()
    if not rows:
        print(f"No snapshots in {manager.database_path}")
        return 0

    for row in rows:
        marker = "*" if row["active"] else " "
        stale = " (stale)" if row["stale"] else ""
        print(f"{marker} {row['snapshot_id']}  {row['fetched_at']}  {row['cards']} cards{stale}")
    return 0


def cmd_activate(args: argparse.Namespace, config: Settings) -> int:
    manager = SnapshotManager.from_settings(config)
    database = manager.load_explicit(args.snapshot_id)
    print(f"Activated snapshot {database.snapshot_id} ({len(database.snapshot)} cards)")
    return 0


def cmd_import(args: argparse.Namespace, config: Settings) -> int:
    manager = SnapshotManager.from_settings(config)
    record = manager.import_file(args.file)
    print(f"Imported {args.file} as snapshot {record.snapshot_id} ({record.card_count} cards)")
    return 0


def cmd_init_config(args: argparse.Namespace, config: Settings) -> int:
    try:
        path = write_default_config(args.path)
    except FileExistsError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    print(f"Wrote {path}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="decklist",
        description="Find the cards a decklist needs that your collection lacks",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log progress")
    subparsers = parser.add_subparsers(dest="command", required=True)

    missing = subparsers.add_parser("missing", help="Write the cards missing from a decklist")
    missing.add_argument(
        "collection",
        nargs="?",
        type=Path,
        help="Collection export (default: collection_path from config)",
    )
    missing.add_argument("decklist", type=Path, help="Decklist text file")
    missing.add_argument(
        "--format",
        default="auto",
        choices=["auto", *available_formats()],
        help="Collection format (default: detect)",
    )
    missing.add_argument(
        "--no-database",
        action="store_true",
        help="Skip card name verification",
    )
    output = missing.add_mutually_exclusive_group()
    output.add_argument(
        "--output",
        type=Path,
        help="Output file (default: <decklist>_missing.txt)",
    )
    output.add_argument("--stdout", action="store_true", help="Print instead of writing a file")
    missing.set_defaults(handler=cmd_missing)

    refresh = subparsers.add_parser("refresh", help="Refresh the card database if stale")
    refresh.add_argument("--force", action="store_true", help="Refresh even if not stale")
    refresh.set_defaults(handler=cmd_refresh)

    snapshots = subparsers.add_parser("snapshots", help="List stored snapshots")
    snapshots.set_defaults(handler=cmd_snapshots)

    activate = subparsers.add_parser("activate", help="Use a specific stored snapshot")
    activate.add_argument("snapshot_id", help="Snapshot id from `decklist snapshots`")
    activate.set_defaults(handler=cmd_activate)

    import_ = subparsers.add_parser("import", help="Import a downloaded bulk data file")
    import_.add_argument("file", type=Path, help="Scryfall Oracle Cards JSON file")
    import_.set_defaults(handler=cmd_import)

    init_config = subparsers.add_parser("init-config", help="Write a default config file")
    init_config.add_argument(
        "--path",
        type=Path,
        default=CONFIG_FILE,
        help=f"Config file location (default: {CONFIG_FILE})",
    )
    init_config.set_defaults(handler=cmd_init_config)

    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        return args.handler(args, settings)
    except DecklistError as e:
        print(f"error: {e.message}", file=sys.stderr)
        if e.detail:
            print(f"  {e.detail}", file=sys.stderr)
        if e.suggestion:
            print(f"  {e.suggestion}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
