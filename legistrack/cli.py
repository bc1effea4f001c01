"""
Command-line entry point for LegisTrack data pipelines.

Usage:
    legistrack collect --congress 118 --limit 100   # Bulk initial collection
    legistrack resync --limit 50                    # Re-sync stale bills only
    legistrack recent --days 7                      # Bills updated upstream lately
    legistrack sync-bill 118-HR-1 118-S-2           # Specific bills
    legistrack tag --limit 50                       # Tag untagged bills
    legistrack all --only subjects,bills --dry-run  # Ordered pipeline run
"""
import argparse
import asyncio
import logging
import sys
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from legistrack.config import settings
from legistrack.config.constants import CURRENT_CONGRESS
from legistrack.database.connection import test_connection as test_database_connection
from legistrack.database.indexes import create_indexes, list_indexes
from legistrack.dependencies import Services, build_services
from legistrack.errors import ConfigurationError, InvalidBillIdError
from legistrack.ingestion.transform import canonical_bill_id
from legistrack.models import SyncResult, TaggingResult

logger = logging.getLogger(__name__)


def print_header(title: str) -> None:
    print("\n" + "=" * 60)
    print(title)
    print("=" * 60)


def print_sync_result(label: str, result: SyncResult) -> None:
    icon = "✅" if result.success else "❌"
    print(f"{icon} {label}: {result.message}")
    print(f"   Synced: {result.count}")
    if result.errors:
        print(f"   ⚠️  {len(result.errors)} errors:")
        for error in result.errors[:10]:
            bill = error.get("bill")
            print(f"      - {bill + ': ' if bill else ''}{error.get('error')}")
        if len(result.errors) > 10:
            print(f"      ... and {len(result.errors) - 10} more")


def print_tagging_result(result: TaggingResult) -> None:
    icon = "✅" if result.success else "❌"
    print(f"{icon} Tagging: {result.message}")
    print(f"   Processed: {result.processed}, failed: {result.failed}")


# ============================================================================
# Commands
# ============================================================================

async def run_collect(services: Services, args: argparse.Namespace) -> SyncResult:
    print_header(f"📜 COLLECTING BILLS (Congress {args.congress})")
    result = await services.syncer.initial_data_collection(
        congress=args.congress, limit=args.limit, offset=args.offset
    )
    print_sync_result("Collection", result)
    return result


async def run_resync(services: Services, args: argparse.Namespace) -> SyncResult:
    print_header("🔄 RESYNCING STALE BILLS")
    result = await services.syncer.resync_stale_bills(limit=args.limit)
    print_sync_result("Resync", result)
    return result


async def run_recent(services: Services, args: argparse.Namespace) -> SyncResult:
    print_header(f"🕒 SYNCING BILLS UPDATED IN THE LAST {args.days} DAYS")
    result = await services.syncer.ongoing_synchronization(
        congress=args.congress, days_back=args.days, limit=args.limit
    )
    print_sync_result("Recent", result)
    return result


async def run_sync_bill(services: Services, args: argparse.Namespace) -> SyncResult:
    # Reject malformed ids before any request goes out
    bill_ids = [canonical_bill_id(bill_id) for bill_id in args.bill_ids]
    print_header(f"🔍 SYNCING {len(bill_ids)} BILL(S)")
    result = await services.syncer.sync_multiple_bills(bill_ids)
    print_sync_result("Sync", result)
    return result


async def run_tag(services: Services, args: argparse.Namespace) -> TaggingResult:
    print_header("🏷️ TAGGING BILLS")
    result = await services.tagger.process_all_bills(limit=args.limit, skip_tagged=not args.force)
    print_tagging_result(result)
    return result


async def run_import_subjects(services: Services, args: argparse.Namespace) -> int:
    print_header("📚 IMPORTING SUBJECT TAXONOMY")
    count = await services.subjects.import_all_subjects()
    print(f"✅ Imported {count} subjects")
    if args.backfill_policy_areas:
        result = await services.subjects.update_policy_areas_for_existing_bills(limit=args.limit)
        print_sync_result("Policy areas", result)
    return count


async def run_full_text(services: Services, args: argparse.Namespace) -> SyncResult:
    print_header("📄 FETCHING MISSING FULL TEXT")
    result = await services.full_text.update_missing_full_text(limit=args.limit)
    print_sync_result("Full text", result)
    return result


async def run_stats(services: Services, args: argparse.Namespace) -> None:
    print_header("📊 DATABASE STATUS")
    stats = await services.syncer.get_sync_stats()
    subjects = await services.store.list_subjects()
    tagged = await services.store.tagged_bill_ids()

    print(f"   Bills:            {stats.total_bills}")
    print(f"   Synced (24h):     {stats.recently_synced}")
    print(f"   Need update:      {stats.needs_update}")
    print(f"   Last sync:        {stats.last_sync_time or 'never'}")
    print(f"   Subjects:         {len(subjects)}")
    print(f"   Tagged bills:     {len(tagged)}")

    cache = services.client.cache_stats()
    print(f"   API cache:        {cache}")


async def run_setup_indexes(services: Services, args: argparse.Namespace) -> None:
    print_header("🗂️ CREATING INDEXES")
    await create_indexes(services.db)
    for collection, names in (await list_indexes(services.db)).items():
        print(f"   {collection}: {', '.join(names)}")
    print("✅ Indexes ready")


async def run_check(services: Services, args: argparse.Namespace) -> bool:
    print_header("🩺 CONNECTION CHECK")
    ok = True

    api = await services.client.test_connection()
    if api["success"]:
        print(f"✅ Congress.gov: {api['message']}")
    else:
        ok = False
        print(f"❌ Congress.gov: {api['message']} {api.get('error', '')}".rstrip())

    mongo = await asyncio.to_thread(test_database_connection)
    if mongo["success"]:
        print(f"✅ MongoDB: {mongo['message']}")
        if mongo["missing_collections"]:
            print("   Run `legistrack setup-indexes` to create them")
    else:
        ok = False
        print(f"❌ MongoDB: {mongo['message']} {mongo.get('error', '')}".rstrip())

    return ok


# ============================================================================
# Pipeline Definitions
# ============================================================================

class Pipeline:
    """A named step of the full sync, with the steps it must run after."""

    def __init__(
        self,
        name: str,
        description: str,
        run_func: Callable[[Services, argparse.Namespace], Awaitable[object]],
        depends_on: Optional[List[str]] = None,
        slow: bool = False,
    ):
        self.name = name
        self.description = description
        self.run_func = run_func
        self.depends_on = depends_on or []
        self.slow = slow


PIPELINES: Dict[str, Pipeline] = {
    "subjects": Pipeline(
        name="subjects",
        description="Import legislative subjects and policy areas",
        run_func=run_import_subjects,
    ),
    "bills": Pipeline(
        name="bills",
        description="Collect bills from Congress.gov",
        run_func=run_collect,
        slow=True,
    ),
    "resync": Pipeline(
        name="resync",
        description="Re-sync stale or incomplete bills",
        run_func=run_resync,
        depends_on=["bills"],
        slow=True,
    ),
    "full-text": Pipeline(
        name="full-text",
        description="Fetch full text for bills that have none",
        run_func=run_full_text,
        depends_on=["bills"],
        slow=True,
    ),
    "tags": Pipeline(
        name="tags",
        description="Generate AI tags for untagged bills",
        run_func=run_tag,
        depends_on=["subjects", "bills"],
        slow=True,
    ),
}


def resolve_dependencies(pipelines_to_run: Sequence[str]) -> List[str]:
    """
    Order pipelines so each runs after its dependencies.

    Dependencies are pulled in even when not requested.

    Args:
        pipelines_to_run: Pipeline names to run

    Returns:
        Ordered list including dependencies
    """
    resolved: List[str] = []

    def add_with_deps(name: str) -> None:
        if name in resolved:
            return
        for dep in PIPELINES[name].depends_on:
            add_with_deps(dep)
        resolved.append(name)

    for name in pipelines_to_run:
        add_with_deps(name)
    return resolved


def select_pipelines(
    only: Optional[List[str]] = None,
    skip: Optional[List[str]] = None,
    skip_slow: bool = False,
) -> List[str]:
    selected = list(only) if only else list(PIPELINES.keys())
    if skip:
        selected = [p for p in selected if p not in skip]
    if skip_slow:
        selected = [p for p in selected if not PIPELINES[p].slow]
    ordered = resolve_dependencies(selected)
    if skip:
        ordered = [p for p in ordered if p not in skip]
    return ordered


async def run_all(services: Services, args: argparse.Namespace) -> Dict[str, object]:
    start_time = datetime.now(timezone.utc)

    print("=" * 60)
    print(f"🚀 {settings.APP_NAME.upper()} - FULL DATA SYNC")
    print("=" * 60)
    print(f"Started: {start_time.strftime('%Y-%m-%d %H:%M:%S UTC')}")
    print()

    ordered = select_pipelines(args.only, args.skip, args.skip_slow)

    print("📋 Pipeline Order:")
    for i, name in enumerate(ordered, 1):
        pipeline = PIPELINES[name]
        slow_tag = " [SLOW]" if pipeline.slow else ""
        print(f"   {i}. {name}{slow_tag} - {pipeline.description}")
    print()

    if args.dry_run:
        print("🏁 Dry run complete. Use without --dry-run to actually run.")
        return {}

    outcomes: Dict[str, object] = {}
    for i, name in enumerate(ordered, 1):
        print(f"\n[{i}/{len(ordered)}] Running: {name}")
        try:
            outcomes[name] = await PIPELINES[name].run_func(services, args)
        except ConfigurationError:
            raise
        except Exception as e:
            logger.error(f"Pipeline '{name}' failed: {e}")
            print(f"\n❌ Pipeline '{name}' FAILED: {e}")
            outcomes[name] = e

    duration = datetime.now(timezone.utc) - start_time
    print_header("✅ ALL PIPELINES COMPLETE")
    print(f"Duration: {duration}")
    for name, outcome in outcomes.items():
        if isinstance(outcome, Exception):
            print(f"   ❌ {name}: FAILED - {outcome}")
        else:
            print(f"   ✅ {name}")
    return outcomes


COMMANDS: Dict[str, Callable[[Services, argparse.Namespace], Awaitable[object]]] = {
    "collect": run_collect,
    "resync": run_resync,
    "recent": run_recent,
    "sync-bill": run_sync_bill,
    "tag": run_tag,
    "import-subjects": run_import_subjects,
    "full-text": run_full_text,
    "stats": run_stats,
    "setup-indexes": run_setup_indexes,
    "check": run_check,
    "all": run_all,
}


# ============================================================================
# Argument parsing
# ============================================================================

def _name_list(value: str) -> List[str]:
    names = [name.strip() for name in value.split(",") if name.strip()]
    invalid = set(names) - set(PIPELINES)
    if invalid:
        raise argparse.ArgumentTypeError(
            f"unknown pipelines: {', '.join(sorted(invalid))} "
            f"(available: {', '.join(PIPELINES)})"
        )
    return names


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="legistrack",
        description="Synchronize, enrich and tag congressional bills",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    sub = parser.add_subparsers(dest="command", required=True)

    collect = sub.add_parser("collect", help="Bulk initial collection of bills")
    collect.add_argument("--congress", type=int, default=CURRENT_CONGRESS)
    collect.add_argument("--limit", type=int, default=100)
    collect.add_argument("--offset", type=int, default=0)
    collect.add_argument("--tag", action="store_true", help="Tag each bill after it is synced")

    resync = sub.add_parser("resync", help="Re-sync stale or incomplete bills")
    resync.add_argument("--limit", type=int, default=50)

    recent = sub.add_parser("recent", help="Sync bills updated upstream recently")
    recent.add_argument("--congress", type=int, default=CURRENT_CONGRESS)
    recent.add_argument("--days", type=int, default=7)
    recent.add_argument("--limit", type=int, default=50)

    sync_bill = sub.add_parser("sync-bill", help="Sync specific bills by id (e.g. 118-HR-1)")
    sync_bill.add_argument("bill_ids", nargs="+")

    tag = sub.add_parser("tag", help="Generate AI tags for bills")
    tag.add_argument("--limit", type=int, default=50)
    tag.add_argument("--force", action="store_true", help="Re-tag bills that already have tags")

    subjects = sub.add_parser("import-subjects", help="Import the subject taxonomy")
    subjects.add_argument("--backfill-policy-areas", action="store_true")
    subjects.add_argument("--limit", type=int, default=50)

    full_text = sub.add_parser("full-text", help="Fetch full text for bills that have none")
    full_text.add_argument("--limit", type=int, default=20)

    sub.add_parser("stats", help="Show database sync status")
    sub.add_parser("setup-indexes", help="Create MongoDB indexes")
    sub.add_parser("check", help="Test Congress.gov and MongoDB connections")

    run_all_parser = sub.add_parser("all", help="Run all pipelines in dependency order")
    run_all_parser.add_argument("--only", type=_name_list, help="Comma-separated pipelines to run")
    run_all_parser.add_argument("--skip", type=_name_list, help="Comma-separated pipelines to skip")
    run_all_parser.add_argument("--skip-slow", action="store_true")
    run_all_parser.add_argument("--dry-run", action="store_true")
    run_all_parser.add_argument("--congress", type=int, default=CURRENT_CONGRESS)
    run_all_parser.add_argument("--limit", type=int, default=100)
    run_all_parser.add_argument("--offset", type=int, default=0)
    run_all_parser.add_argument("--force", action="store_true")
    run_all_parser.add_argument("--backfill-policy-areas", action="store_true")

    return parser


def configure_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(level=level, format=settings.LOG_FORMAT)


def exit_code_for(outcome: object) -> int:
    if isinstance(outcome, (SyncResult, TaggingResult)):
        return 0 if outcome.success else 1
    if isinstance(outcome, dict):
        return max((exit_code_for(value) for value in outcome.values()), default=0)
    if outcome is False or isinstance(outcome, Exception):
        return 1
    return 0


async def run_command(args: argparse.Namespace, services: Optional[Services] = None) -> int:
    owns_services = services is None
    if services is None:
        services = build_services(tag_after_sync=getattr(args, "tag", False))
    try:
        outcome = await COMMANDS[args.command](services, args)
    finally:
        if owns_services:
            await services.aclose()
    return exit_code_for(outcome)


def main(argv: Optional[Sequence[str]] = None) -> None:
    """CLI entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        code = asyncio.run(run_command(args))
    except KeyboardInterrupt:
        print("\n\n⚠️  Interrupted by user")
        code = 1
    except (ConfigurationError, InvalidBillIdError) as e:
        print(f"\n❌ {e}")
        code = 2
    sys.exit(code)


if __name__ == "__main__":
    main()
