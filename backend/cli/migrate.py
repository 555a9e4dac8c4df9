"""
zekka-migrate: apply and manage SQL migrations.

Usage:
    zekka-migrate                     run pending migrations (tracked)
    zekka-migrate direct              apply every file, untracked
    zekka-migrate status              applied and pending migrations
    zekka-migrate verify              checksum / missing file check
    zekka-migrate rollback --steps N  roll back the last N migrations
    zekka-migrate schema              list tables, report missing ones
    zekka-migrate create NAME         new migration + rollback file
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional, Sequence

from infrastructure.config.settings import get_settings, normalize_database_url
from infrastructure.database.connection import build_engine
from infrastructure.logging_config import redact, setup_logging
from services.migration_runner import (
    MigrationError,
    MigrationRunner,
    MigrationStatus,
    RunReport,
)

logger = logging.getLogger(__name__)

BANNER = "=============================="

_STATUS_LINES = {
    MigrationStatus.APPLIED: "  ✓ Applied successfully",
    MigrationStatus.ALREADY_EXISTS: "  ⚠ Objects already exist (skipped)",
    MigrationStatus.FAILED: "  ✗ Failed: {error}",
    MigrationStatus.SKIPPED: "  - Pending (dry run)",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="zekka-migrate",
        description="Apply and manage SQL migrations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="run",
        choices=["run", "direct", "status", "verify", "rollback", "schema", "create"],
        help="Action to perform (default: run)",
    )
    parser.add_argument("name", nargs="?", help="Migration name for 'create'")
    parser.add_argument("--dir", dest="directory", help="Migrations directory")
    parser.add_argument("--database-url", help="Database URL (default: DATABASE_URL)")
    parser.add_argument("--table", help="Tracking table name")
    parser.add_argument(
        "--dry-run", action="store_true", help="List what 'run' would apply without applying it"
    )
    parser.add_argument(
        "--steps", type=int, default=1, help="Number of migrations to roll back (default: 1)"
    )
    return parser


def print_report(report: RunReport) -> None:
    for result in report.results:
        print(f"Applying: {result.name}")
        print(_STATUS_LINES[result.status].format(error=result.error))
        print("")


async def _run(args: argparse.Namespace, runner: MigrationRunner) -> int:
    if args.command in ("run", "direct"):
        # Unreadable files fail here, before the header is printed
        runner.discover()
        print("Running database migrations...")
        print(BANNER)
        if args.command == "run":
            report = await runner.run(dry_run=args.dry_run)
        else:
            report = await runner.apply_direct()
        print_report(report)
        print(BANNER)
        print("Migration complete!" if report.ok else "Migration finished with errors")
        return 0 if report.ok else 1

    if args.command == "status":
        applied = await runner.applied()
        pending = await runner.pending()
        print("Applied migrations:")
        for m in applied or []:
            print(f"  {m.name}  {m.executed_at}  ({m.execution_time_ms}ms)")
        if not applied:
            print("  (none)")
        print("Pending migrations:")
        for f in pending:
            print(f"  {f.name}")
        if not pending:
            print("  (none)")
        print(f"Total: {len(applied) + len(pending)} ({len(applied)} applied, {len(pending)} pending)")
        return 0

    if args.command == "verify":
        issues = await runner.verify()
        for issue in issues:
            print(f"  ✗ [{issue.kind}] {issue.message}")
        if issues:
            print(f"{len(issues)} integrity issue(s) found")
            return 1
        print("All applied migrations match their files")
        return 0

    if args.command == "rollback":
        names = await runner.rollback(steps=args.steps)
        for name in names:
            print(f"  ↩ Rolled back {name}")
        if not names:
            print("Nothing to roll back")
        return 0

    if args.command == "schema":
        report = await runner.inspect_schema()
        print("Database tables:")
        for table in report.tables:
            print(f"  {table}")
        if report.missing:
            print(f"Missing tables: {', '.join(report.missing)}")
            return 1
        print("All workspace tables present")
        return 0

    raise MigrationError(f"Unknown command: {args.command}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = get_settings()
    setup_logging(json_output=settings.is_production, level="INFO", stream=sys.stderr)

    directory = args.directory or settings.migrations_dir
    table = args.table or settings.migrations_table

    if args.command == "create":
        if not args.name:
            parser.error("create requires a migration NAME")
        # No database needed to scaffold files
        runner = MigrationRunner(engine=None, directory=directory, table=table)
        try:
            up_path, down_path = runner.create(args.name)
        except MigrationError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        print(f"Created {up_path}")
        print(f"Created {down_path}")
        return 0

    database_url = normalize_database_url(args.database_url or settings.database_url)
    logger.info("Using database %s", redact(database_url))

    async def _main() -> int:
        engine = build_engine(database_url)
        try:
            return await _run(args, MigrationRunner(engine, directory, table=table))
        finally:
            await engine.dispose()

    try:
        return asyncio.run(_main())
    except MigrationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
