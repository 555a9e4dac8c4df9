"""
SQL migration runner.

Applies the ``*.sql`` files of a migrations directory, in lexical order,
against an async SQLAlchemy engine. Two modes are supported:

- tracked (``run``): every applied file is recorded, with its SHA-256
  checksum, in a tracking table. Each pending file runs in its own
  transaction together with its tracking row, and the first failure stops
  the run.
- direct (``apply_direct``): every file is applied without tracking, one
  statement at a time, and errors about objects that "already exist" are
  reported separately from real failures.

Rollback files live next to their migration as ``<name>_rollback.sql``.
"""

import hashlib
import logging
import re
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import AsyncIterator, Optional, Sequence

import sqlparse
from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    func,
    inspect,
    select,
    text,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from infrastructure.database.models import WORKSPACE_TABLES

logger = logging.getLogger(__name__)

ROLLBACK_SUFFIX = "_rollback.sql"

# Arbitrary but stable key for pg_try_advisory_lock
ADVISORY_LOCK_KEY = 7_254_163_011

_TRANSACTION_CONTROL = re.compile(
    r"^(BEGIN|START\s+TRANSACTION|COMMIT|END|ROLLBACK)(\s+(WORK|TRANSACTION))?\s*;?$",
    re.IGNORECASE,
)
_ALREADY_EXISTS = re.compile(r"already exists", re.IGNORECASE)
_SEQUENCE_PREFIX = re.compile(r"^(\d+)_")


class MigrationError(Exception):
    """Base error for migration runner failures."""


class MigrationLockError(MigrationError):
    """Another runner holds the migration lock."""


class MissingRollbackError(MigrationError):
    """A migration selected for rollback has no rollback file."""


class MigrationStatus(str, Enum):
    APPLIED = "applied"
    ALREADY_EXISTS = "already_exists"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class MigrationFile:
    name: str
    path: Path
    checksum: str
    sql: str

    @property
    def rollback_path(self) -> Path:
        return self.path.with_name(self.path.stem + ROLLBACK_SUFFIX)


@dataclass
class MigrationResult:
    name: str
    status: MigrationStatus
    duration_ms: int = 0
    error: Optional[str] = None


@dataclass
class RunReport:
    results: list[MigrationResult] = field(default_factory=list)

    @property
    def applied(self) -> list[str]:
        return [r.name for r in self.results if r.status == MigrationStatus.APPLIED]

    @property
    def failed(self) -> list[MigrationResult]:
        return [r for r in self.results if r.status == MigrationStatus.FAILED]

    @property
    def ok(self) -> bool:
        return not self.failed


@dataclass
class AppliedMigration:
    name: str
    executed_at: Optional[datetime]
    execution_time_ms: Optional[int]
    checksum: Optional[str]


@dataclass
class IntegrityIssue:
    kind: str  # "missing_file" or "checksum_mismatch"
    name: str
    message: str


@dataclass
class SchemaReport:
    tables: list[str]
    missing: list[str]

    @property
    def complete(self) -> bool:
        return not self.missing


def checksum(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def split_statements(sql: str) -> list[str]:
    """
    Split a SQL script into executable statements.

    Comment-only chunks and transaction-control statements are dropped;
    the runner owns the transaction.
    """
    statements = []
    for raw in sqlparse.split(sql):
        stmt = sqlparse.format(raw, strip_comments=True).strip()
        if not stmt or stmt == ";":
            continue
        if _TRANSACTION_CONTROL.match(stmt):
            continue
        statements.append(stmt)
    return statements


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", name.lower()).strip("_")


UP_TEMPLATE = """-- Migration: {title}
-- Created: {created}

"""

DOWN_TEMPLATE = """-- Rollback: {title}
-- Reverses {name}

"""


class MigrationRunner:
    """Applies and tracks SQL migration files for one database."""

    def __init__(
        self,
        engine: AsyncEngine,
        directory: str | Path,
        table: str = "schema_migrations",
        expected_tables: Sequence[str] = WORKSPACE_TABLES,
    ):
        self.engine = engine
        self.directory = Path(directory)
        self.table_name = table
        self.expected_tables = tuple(expected_tables)

        self._metadata = MetaData()
        self.tracking = Table(
            table,
            self._metadata,
            Column("id", Integer, primary_key=True, autoincrement=True),
            Column("name", String(255), unique=True, nullable=False),
            Column("executed_at", DateTime(timezone=True), server_default=func.now()),
            Column("execution_time_ms", Integer),
            Column("checksum", String(64)),
        )

    @property
    def is_postgres(self) -> bool:
        return self.engine.dialect.name == "postgresql"

    # -------------------------------------------------------------------------
    # Files
    # -------------------------------------------------------------------------

    def discover(self) -> list[MigrationFile]:
        """
        Migration files in lexical order. Rollback files are excluded.

        Raises:
            MigrationError: the directory does not exist, or a file is not UTF-8
        """
        if not self.directory.is_dir():
            raise MigrationError(f"Migrations directory not found: {self.directory}")

        files = []
        for path in sorted(self.directory.glob("*.sql")):
            if path.name.endswith(ROLLBACK_SUFFIX):
                continue
            data = path.read_bytes()
            try:
                sql = data.decode("utf-8")
            except UnicodeDecodeError as e:
                raise MigrationError(f"{path.name} is not valid UTF-8") from e
            files.append(MigrationFile(name=path.name, path=path, checksum=checksum(data), sql=sql))
        return files

    def create(self, name: str) -> tuple[Path, Path]:
        """Write an empty migration and its rollback file with the next sequence number."""
        slug = slugify(name)
        if not slug:
            raise MigrationError(f"Invalid migration name: {name!r}")

        self.directory.mkdir(parents=True, exist_ok=True)
        numbers = [
            int(m.group(1))
            for m in (_SEQUENCE_PREFIX.match(p.name) for p in self.directory.glob("*.sql"))
            if m
        ]
        stem = f"{max(numbers, default=0) + 1:03d}_{slug}"

        up_path = self.directory / f"{stem}.sql"
        down_path = self.directory / f"{stem}{ROLLBACK_SUFFIX}"
        if up_path.exists():
            raise MigrationError(f"Migration already exists: {up_path.name}")

        created = datetime.now(timezone.utc).isoformat(timespec="seconds")
        up_path.write_text(UP_TEMPLATE.format(title=name, created=created), encoding="utf-8")
        down_path.write_text(DOWN_TEMPLATE.format(title=name, name=up_path.name), encoding="utf-8")

        logger.info("Created migration %s", up_path.name, extra={"migration": up_path.name})
        return up_path, down_path

    # -------------------------------------------------------------------------
    # Tracking table
    # -------------------------------------------------------------------------

    async def ensure_tracking_table(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(self._metadata.create_all, checkfirst=True)

    async def applied(self) -> list[AppliedMigration]:
        await self.ensure_tracking_table()
        async with self.engine.connect() as conn:
            result = await conn.execute(
                select(
                    self.tracking.c.name,
                    self.tracking.c.executed_at,
                    self.tracking.c.execution_time_ms,
                    self.tracking.c.checksum,
                ).order_by(self.tracking.c.id.asc())
            )
            return [
                AppliedMigration(
                    name=row.name,
                    executed_at=row.executed_at,
                    execution_time_ms=row.execution_time_ms,
                    checksum=row.checksum,
                )
                for row in result
            ]

    async def pending(self) -> list[MigrationFile]:
        done = {m.name for m in await self.applied()}
        return [f for f in self.discover() if f.name not in done]

    @asynccontextmanager
    async def _lock(self) -> AsyncIterator[None]:
        """Session advisory lock on PostgreSQL; no-op elsewhere."""
        if not self.is_postgres:
            yield
            return

        async with self.engine.connect() as conn:
            acquired = await conn.scalar(
                text("SELECT pg_try_advisory_lock(:key)"), {"key": ADVISORY_LOCK_KEY}
            )
            if not acquired:
                raise MigrationLockError("Another migration run holds the lock")
            try:
                yield
            finally:
                await conn.execute(
                    text("SELECT pg_advisory_unlock(:key)"), {"key": ADVISORY_LOCK_KEY}
                )

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    @staticmethod
    async def _execute_script(conn: AsyncConnection, sql: str) -> None:
        for stmt in split_statements(sql):
            await conn.exec_driver_sql(stmt)

    async def run(self, dry_run: bool = False) -> RunReport:
        """
        Apply pending migrations in order.

        Each file and its tracking row commit together. The first failing
        file is rolled back and ends the run.
        """
        report = RunReport()
        async with self._lock():
            pending = await self.pending()
            if not pending:
                logger.info("No pending migrations")
                return report

            for migration in pending:
                if dry_run:
                    report.results.append(MigrationResult(migration.name, MigrationStatus.SKIPPED))
                    continue

                started = time.perf_counter()
                try:
                    async with self.engine.begin() as conn:
                        await self._execute_script(conn, migration.sql)
                        elapsed = int((time.perf_counter() - started) * 1000)
                        await conn.execute(
                            self.tracking.insert().values(
                                name=migration.name,
                                executed_at=datetime.now(timezone.utc),
                                execution_time_ms=elapsed,
                                checksum=migration.checksum,
                            )
                        )
                except SQLAlchemyError as e:
                    elapsed = int((time.perf_counter() - started) * 1000)
                    error = str(getattr(e, "orig", None) or e)
                    logger.error(
                        "Migration %s failed: %s",
                        migration.name,
                        error,
                        extra={"migration": migration.name},
                    )
                    report.results.append(
                        MigrationResult(migration.name, MigrationStatus.FAILED, elapsed, error)
                    )
                    break

                logger.info(
                    "Applied migration %s (%dms)",
                    migration.name,
                    elapsed,
                    extra={"migration": migration.name},
                )
                report.results.append(
                    MigrationResult(migration.name, MigrationStatus.APPLIED, elapsed)
                )
        return report

    async def apply_direct(self) -> RunReport:
        """
        Apply every migration file without tracking.

        Statements commit one by one, so a statement that fails does not
        undo the ones before it. A file whose only errors are "already
        exists" is reported as such; any other error marks it failed.
        Processing always continues with the next file.
        """
        report = RunReport()
        for migration in self.discover():
            started = time.perf_counter()
            benign: list[str] = []
            errors: list[str] = []

            for stmt in split_statements(migration.sql):
                try:
                    async with self.engine.begin() as conn:
                        await conn.exec_driver_sql(stmt)
                except SQLAlchemyError as e:
                    message = str(getattr(e, "orig", None) or e)
                    (benign if _ALREADY_EXISTS.search(message) else errors).append(message)

            elapsed = int((time.perf_counter() - started) * 1000)
            if errors:
                status, error = MigrationStatus.FAILED, errors[0]
            elif benign:
                status, error = MigrationStatus.ALREADY_EXISTS, benign[0]
            else:
                status, error = MigrationStatus.APPLIED, None

            log = logger.error if status == MigrationStatus.FAILED else logger.info
            log("Direct apply %s: %s", migration.name, status.value, extra={"migration": migration.name})
            report.results.append(MigrationResult(migration.name, status, elapsed, error))
        return report

    async def verify(self) -> list[IntegrityIssue]:
        """Compare recorded migrations with the files on disk."""
        files = {f.name: f for f in self.discover()}
        issues = []
        for migration in await self.applied():
            current = files.get(migration.name)
            if current is None:
                issues.append(
                    IntegrityIssue(
                        "missing_file",
                        migration.name,
                        f"Migration file not found: {migration.name}",
                    )
                )
            elif migration.checksum and migration.checksum != current.checksum:
                issues.append(
                    IntegrityIssue(
                        "checksum_mismatch",
                        migration.name,
                        f"Checksum mismatch for {migration.name} (file modified after execution)",
                    )
                )
        return issues

    async def rollback(self, steps: int = 1) -> list[str]:
        """
        Roll back the ``steps`` most recent migrations, newest first.

        Every rollback file is checked before any of them runs.
        """
        if steps < 1:
            raise MigrationError("steps must be at least 1")

        rolled_back = []
        async with self._lock():
            targets = list(reversed(await self.applied()))[:steps]
            if not targets:
                logger.info("No migrations to roll back")
                return rolled_back

            scripts = {}
            for migration in targets:
                path = self.directory / (Path(migration.name).stem + ROLLBACK_SUFFIX)
                if not path.is_file():
                    raise MissingRollbackError(f"No rollback file for {migration.name}")
                scripts[migration.name] = path.read_text(encoding="utf-8")

            for migration in targets:
                try:
                    async with self.engine.begin() as conn:
                        await self._execute_script(conn, scripts[migration.name])
                        await conn.execute(
                            self.tracking.delete().where(self.tracking.c.name == migration.name)
                        )
                except SQLAlchemyError as e:
                    raise MigrationError(f"Rollback of {migration.name} failed: {e}") from e

                logger.info(
                    "Rolled back migration %s",
                    migration.name,
                    extra={"migration": migration.name},
                )
                rolled_back.append(migration.name)
        return rolled_back

    async def inspect_schema(self) -> SchemaReport:
        async with self.engine.connect() as conn:
            tables = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
        tables = sorted(tables)
        missing = [t for t in self.expected_tables if t not in tables]
        return SchemaReport(tables=tables, missing=missing)
