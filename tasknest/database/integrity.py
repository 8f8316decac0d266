#!/usr/bin/env python3
"""
integrity.py
-----------------
Read-only health inspection of the TaskNest database file.

Every check opens the file through a read-only SQLite connection, so an
inspection can never repair, create or modify the database it looks at.
The single exception is ``checkpoint()``, the remediation the WAL check
suggests, which is only invoked explicitly from the admin CLI.

Checks Performed:
    1. **Quick**: ``PRAGMA integrity_check(1)``, stops at the first problem;
       cheap enough to run on every startup
    2. **Full**: unbounded ``PRAGMA integrity_check``, lists every anomaly
    3. **Foreign keys**: ``PRAGMA foreign_key_check`` violations
    4. **WAL**: write-ahead-log companion state and checkpoint backlog
    5. **Tables**: presence of the tables the application cannot run without

Usage:
    from tasknest.database.integrity import IntegrityChecker

    checker = IntegrityChecker(logger=logger)
    quick = checker.quick_check(db_path)
    if not quick.success:
        print(quick.message)

    report = checker.full_database_check(db_path, backups=manager.list_backups())
    print(report.overall_status.label, report.suggestions)

Health Report Structure:
    HealthReport(
        integrity=CheckResult(...),
        foreign_key=CheckResult(...),
        wal=CheckResult(...),
        table=CheckResult(...),
        overall_status=HealthStatus.WARNING,
        suggestions=["..."],
        duration_ms=12,
    )
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import sqlite3
import time
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence

# --- Third party imports ---
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

# --- Local imports ---
from tasknest.core.exceptions import DatabaseNotFoundError, IntegrityCheckError
from tasknest.core.logging_manager import TaskNestLogger, safe_logger
from .configs.resilience_configs import (
    DEFAULT_PAGE_SIZE,
    REQUIRED_TABLES,
    SHM_SUFFIX,
    UNCHECKPOINTED_PAGES_WARNING,
    WAL_FILE_HEADER_BYTES,
    WAL_FRAME_HEADER_BYTES,
    WAL_SIZE_WARNING_BYTES,
    WAL_SUFFIX,
)
from .decorators import log_database_operation


class HealthStatus(IntEnum):
    """
    Ordered health status.

    The numeric order is the severity order, so the aggregate of any set
    of statuses is simply the maximum:
    - OK: Nothing to do
    - WARNING: Recoverable condition (e.g. large WAL)
    - ERROR: The database cannot be trusted as-is
    """

    OK = 0
    WARNING = 1
    ERROR = 2

    @property
    def label(self) -> str:
        """Lowercase name used in reports and CLI output."""
        return self.name.lower()

    @classmethod
    def worst(cls, *statuses: "HealthStatus") -> "HealthStatus":
        """Return the most severe of the given statuses (OK when empty)."""
        return cls(max((int(s) for s in statuses), default=cls.OK))


@dataclass
class CheckResult:
    """Outcome of a single inspection."""

    success: bool
    status: HealthStatus
    message: str
    details: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "status": self.status.label,
            "message": self.message,
            "details": list(self.details),
        }


@dataclass
class QuickCheckResult:
    """
    Outcome of the startup quick check.

    Attributes:
        success: True when the engine reported "ok"
        status: OK or ERROR
        message: Human-readable summary
        duration_ms: Wall time spent in the check
        error: Exception class name when the check failed
    """

    success: bool
    status: HealthStatus
    message: str
    duration_ms: int
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.label
        return data


@dataclass
class HealthReport:
    """Aggregate of the four deep checks."""

    integrity: CheckResult
    foreign_key: CheckResult
    wal: CheckResult
    table: CheckResult
    overall_status: HealthStatus
    suggestions: List[str] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def checks(self) -> Dict[str, CheckResult]:
        return {
            "integrity": self.integrity,
            "foreign_key": self.foreign_key,
            "wal": self.wal,
            "table": self.table,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            **{name: result.to_dict() for name, result in self.checks.items()},
            "overall_status": self.overall_status.label,
            "suggestions": list(self.suggestions),
            "duration_ms": self.duration_ms,
        }


@dataclass
class StartupCheckResult:
    """Decision taken from the quick check at process start."""

    healthy: bool
    message: str
    should_warn: bool
    suggest_restore: bool


def companion_paths(db_path: Path) -> List[Path]:
    """Return the WAL and SHM companion paths of a database file."""
    db_path = Path(db_path)
    return [db_path.with_name(db_path.name + suffix) for suffix in (WAL_SUFFIX, SHM_SUFFIX)]


@contextmanager
def preserve_companions(db_path: Path) -> Iterator[None]:
    """
    Remove companion files that appear while the block runs.

    A read-only connection to a WAL-mode database creates ``-wal`` and
    ``-shm`` but cannot delete them when it closes. Companions that existed
    before the block are never touched; a new ``-wal`` is only removed
    while it is still empty, and a new ``-shm`` is kept beside a new,
    non-empty ``-wal`` that another writer is using.
    """
    wal_path, shm_path = companion_paths(db_path)
    had_wal = wal_path.exists()
    had_shm = shm_path.exists()
    try:
        yield
    finally:
        try:
            if not had_wal and wal_path.exists() and wal_path.stat().st_size == 0:
                wal_path.unlink()
            if not had_shm and (had_wal or not wal_path.exists()):
                shm_path.unlink(missing_ok=True)
        except OSError:
            # Left for the next writer to reuse
            pass


class IntegrityChecker:
    """
    Read-only database inspector.

    Attributes:
        logger: Optional logger for inspection results
        required_tables: Tables the application cannot run without
    """

    def __init__(
        self,
        logger: Optional[TaskNestLogger] = None,
        required_tables: Sequence[str] = REQUIRED_TABLES,
    ) -> None:
        self.logger = logger
        self.required_tables = tuple(required_tables)

    # ---- Connections ----

    @staticmethod
    @contextmanager
    def _readonly(path: Path) -> Iterator[Connection]:
        """
        Open a read-only connection to a database file.

        ``mode=ro`` guarantees the engine never creates or writes the main
        file; an absent file raises instead of being created empty.
        Companion files the connection creates are removed afterwards.
        """
        uri = Path(path).resolve().as_uri() + "?mode=ro"
        engine = create_engine(
            "sqlite://",
            creator=lambda: sqlite3.connect(uri, uri=True, check_same_thread=False),
            poolclass=NullPool,
        )
        with preserve_companions(path):
            try:
                with engine.connect() as conn:
                    yield conn
            finally:
                engine.dispose()

    @staticmethod
    def _engine_message(error: Exception) -> str:
        """Prefer the sqlite3 message over SQLAlchemy's wrapped text."""
        orig = getattr(error, "orig", None)
        return str(orig) if orig is not None else str(error)

    def _require(self, path: Path) -> Path:
        path = Path(path)
        if not path.is_file():
            raise DatabaseNotFoundError(f"Database not found: {path}")
        return path

    # ---- Raising primitive ----

    def verify(self, path: Path, full: bool = False) -> None:
        """
        Verify a database file or raise.

        Args:
            path: Database file
            full: Run the unbounded check instead of the quick one

        Raises:
            DatabaseNotFoundError: If the file is absent
            IntegrityCheckError: If the engine reports anything but "ok"
                or cannot read the file at all
        """
        path = self._require(path)
        pragma = "PRAGMA integrity_check" if full else "PRAGMA integrity_check(1)"
        try:
            with self._readonly(path) as conn:
                rows = [row[0] for row in conn.execute(text(pragma))]
        except SQLAlchemyError as e:
            raise IntegrityCheckError(self._engine_message(e)) from e
        except sqlite3.Error as e:
            raise IntegrityCheckError(str(e)) from e

        if rows != ["ok"]:
            raise IntegrityCheckError("; ".join(str(r) for r in rows) or "no result")

    # ---- Individual checks ----

    def quick_check(self, path: Path) -> QuickCheckResult:
        """
        Bounded, stop-at-first-error integrity scan.

        Args:
            path: Database file

        Returns:
            QuickCheckResult; never raises for an absent or corrupt file
        """
        start = time.monotonic()
        try:
            self.verify(path, full=False)
        except (DatabaseNotFoundError, IntegrityCheckError) as e:
            duration = int((time.monotonic() - start) * 1000)
            message = (
                str(e)
                if isinstance(e, DatabaseNotFoundError)
                else f"Integrity check failed: {e}"
            )
            safe_logger(self.logger).log_warning(
                "Quick integrity check failed", {"path": str(path), "error": message}
            )
            return QuickCheckResult(
                success=False,
                status=HealthStatus.ERROR,
                message=message,
                duration_ms=duration,
                error=type(e).__name__,
            )

        return QuickCheckResult(
            success=True,
            status=HealthStatus.OK,
            message="Database integrity verified",
            duration_ms=int((time.monotonic() - start) * 1000),
        )

    def full_check(self, path: Path) -> CheckResult:
        """
        Unbounded integrity scan reporting every anomaly.

        Args:
            path: Database file

        Returns:
            CheckResult with one detail line per reported problem
        """
        path = Path(path)
        if not path.is_file():
            return CheckResult(False, HealthStatus.ERROR, f"Database not found: {path}")

        try:
            with self._readonly(path) as conn:
                rows = [str(row[0]) for row in conn.execute(text("PRAGMA integrity_check"))]
        except (SQLAlchemyError, sqlite3.Error) as e:
            return CheckResult(
                False,
                HealthStatus.ERROR,
                f"Integrity check error: {self._engine_message(e)}",
            )

        if rows == ["ok"]:
            return CheckResult(True, HealthStatus.OK, "Full integrity check passed")

        return CheckResult(
            False,
            HealthStatus.ERROR,
            f"Found {len(rows)} integrity issue(s)",
            rows,
        )

    def foreign_key_check(self, path: Path) -> CheckResult:
        """
        Enumerate referential-integrity violations.

        Args:
            path: Database file

        Returns:
            CheckResult whose details read
            "Table '<table>' row <rowid>: missing parent in '<parent>'"
        """
        path = Path(path)
        if not path.is_file():
            return CheckResult(False, HealthStatus.ERROR, f"Database not found: {path}")

        try:
            with self._readonly(path) as conn:
                rows = conn.execute(text("PRAGMA foreign_key_check")).fetchall()
        except (SQLAlchemyError, sqlite3.Error) as e:
            return CheckResult(
                False,
                HealthStatus.ERROR,
                f"Foreign key check error: {self._engine_message(e)}",
            )

        if not rows:
            return CheckResult(True, HealthStatus.OK, "No foreign key violations")

        violations = [
            f"Table '{table}' row {rowid}: missing parent in '{parent}'"
            for table, rowid, parent, _fkid in rows
        ]
        return CheckResult(
            False,
            HealthStatus.ERROR,
            f"Found {len(rows)} foreign key violation(s)",
            violations,
        )

    def wal_check(self, path: Path) -> CheckResult:
        """
        Inspect write-ahead-log state.

        Problems found here are always warnings: they are resolved by a
        checkpoint. Only an absent database file is an error.

        Args:
            path: Database file

        Returns:
            CheckResult describing WAL size, journal mode and backlog
        """
        path = Path(path)
        if not path.is_file():
            return CheckResult(False, HealthStatus.ERROR, f"Database not found: {path}")

        wal_path, shm_path = companion_paths(path)
        status = HealthStatus.OK
        details: List[str] = []
        wal_size = 0

        if wal_path.exists():
            wal_size = wal_path.stat().st_size
            if not shm_path.exists():
                status = HealthStatus.WARNING
                details.append("WAL file exists without SHM file (possible unclean shutdown)")
            details.append(f"WAL file size: {wal_size / (1024 * 1024):.2f} MB")
            if wal_size > WAL_SIZE_WARNING_BYTES:
                status = HealthStatus.WARNING
                details.append("WAL file is unusually large (> 100 MB)")

        try:
            with self._readonly(path) as conn:
                journal_mode = str(conn.execute(text("PRAGMA journal_mode")).scalar()).lower()
                details.append(f"Journal mode: {journal_mode}")

                if journal_mode == "wal":
                    page_size = conn.execute(text("PRAGMA page_size")).scalar() or DEFAULT_PAGE_SIZE
                    pending = self._uncheckpointed_pages(conn, wal_size, int(page_size))
                    details.append(f"Un-checkpointed pages: {pending}")
                    if pending > UNCHECKPOINTED_PAGES_WARNING:
                        status = HealthStatus.WARNING
                        details.append(
                            f"More than {UNCHECKPOINTED_PAGES_WARNING} pages waiting for checkpoint"
                        )
        except (SQLAlchemyError, sqlite3.Error) as e:
            status = HealthStatus.worst(status, HealthStatus.WARNING)
            details.append(f"Could not inspect journal: {self._engine_message(e)}")

        message = "WAL state healthy" if status is HealthStatus.OK else "WAL issues detected"
        return CheckResult(True, status, message, details)

    @staticmethod
    def _uncheckpointed_pages(conn: Connection, wal_size: int, page_size: int) -> int:
        """
        Pages present in the WAL but not yet copied into the main file.

        A read-only connection may be refused the checkpoint pragma; the
        count is then estimated from the WAL size.
        """
        try:
            row = conn.execute(text("PRAGMA wal_checkpoint(PASSIVE)")).fetchone()
        except (SQLAlchemyError, sqlite3.Error):
            row = None

        if row is not None and row[1] >= 0 and row[2] >= 0:
            return int(row[1]) - int(row[2])

        if wal_size <= WAL_FILE_HEADER_BYTES:
            return 0
        return (wal_size - WAL_FILE_HEADER_BYTES) // (WAL_FRAME_HEADER_BYTES + page_size)

    def table_check(self, path: Path) -> CheckResult:
        """
        Verify the required tables exist.

        Args:
            path: Database file

        Returns:
            CheckResult, ERROR when any required table is missing
        """
        path = Path(path)
        if not path.is_file():
            return CheckResult(False, HealthStatus.ERROR, f"Database not found: {path}")

        try:
            with self._readonly(path) as conn:
                tables = {
                    row[0]
                    for row in conn.execute(
                        text("SELECT name FROM sqlite_master WHERE type = 'table'")
                    )
                }
        except (SQLAlchemyError, sqlite3.Error) as e:
            return CheckResult(
                False,
                HealthStatus.ERROR,
                f"Table check error: {self._engine_message(e)}",
            )

        missing = [name for name in self.required_tables if name not in tables]
        details = [f"Found {len(tables)} table(s)"]
        if missing:
            details.append(f"Missing: {', '.join(missing)}")
            return CheckResult(
                False,
                HealthStatus.ERROR,
                f"Missing {len(missing)} required table(s)",
                details,
            )
        return CheckResult(True, HealthStatus.OK, "All required tables present", details)

    # ---- Aggregates ----

    @log_database_operation("full_database_check")
    def full_database_check(
        self, path: Path, backups: Optional[Sequence[Any]] = None
    ) -> HealthReport:
        """
        Run the four deep checks and aggregate them.

        Args:
            path: Database file
            backups: Available backup records, newest first (used to point
                at a restore candidate when integrity fails)

        Returns:
            HealthReport with the worst-of-four status and suggestions
        """
        start = time.monotonic()

        # Companion state is read before any other check connects
        wal = self.wal_check(path)
        integrity = self.full_check(path)
        foreign_key = self.foreign_key_check(path)
        table = self.table_check(path)

        overall = HealthStatus.worst(
            integrity.status, foreign_key.status, wal.status, table.status
        )
        suggestions = self._suggestions(integrity, foreign_key, wal, table, backups or [])

        report = HealthReport(
            integrity=integrity,
            foreign_key=foreign_key,
            wal=wal,
            table=table,
            overall_status=overall,
            suggestions=suggestions,
            duration_ms=int((time.monotonic() - start) * 1000),
        )
        safe_logger(self.logger).log_operation(
            "full_database_check",
            {
                "path": str(path),
                "overall_status": overall.label,
                "duration_ms": report.duration_ms,
            },
        )
        return report

    @staticmethod
    def _suggestions(
        integrity: CheckResult,
        foreign_key: CheckResult,
        wal: CheckResult,
        table: CheckResult,
        backups: Sequence[Any],
    ) -> List[str]:
        suggestions: List[str] = []

        if integrity.status is HealthStatus.ERROR:
            suggestions.append("Database corruption detected - restore from backup recommended")
            if backups:
                latest = backups[0]
                suggestions.append(f"Latest backup: {latest.filename} ({latest.date})")
                suggestions.append("Run: nestdb restore --latest")
            else:
                suggestions.append("No backups available - data recovery may be limited")

        if foreign_key.status is HealthStatus.ERROR:
            suggestions.append(
                "Foreign key violations found - database has referential integrity issues"
            )

        if wal.status is HealthStatus.WARNING:
            suggestions.append(
                "WAL status warnings - consider running PRAGMA wal_checkpoint(TRUNCATE) "
                "(nestdb checkpoint)"
            )

        if table.status is HealthStatus.ERROR:
            suggestions.append(
                "Missing required tables - database may need to be re-initialized (nestdb init)"
            )

        return suggestions

    def startup_check(
        self, path: Path, backups: Optional[Sequence[Any]] = None
    ) -> StartupCheckResult:
        """
        Decide whether to warn the user at process start.

        Args:
            path: Database file
            backups: Available backup records

        Returns:
            StartupCheckResult; suggest_restore is only set when a backup exists
        """
        quick = self.quick_check(path)
        if quick.success:
            return StartupCheckResult(
                healthy=True,
                message=quick.message,
                should_warn=False,
                suggest_restore=False,
            )

        has_backups = bool(backups)
        message = quick.message
        if has_backups:
            message += f" - latest backup: {backups[0].filename}"
        safe_logger(self.logger).log_warning(
            "Startup integrity check failed",
            {"path": str(path), "message": quick.message, "backups": has_backups},
        )
        return StartupCheckResult(
            healthy=False,
            message=message,
            should_warn=True,
            suggest_restore=has_backups,
        )

    def database_stats(self, path: Path) -> Optional[Dict[str, int]]:
        """
        Row counts of the required tables present in a database.

        Args:
            path: Database file

        Returns:
            Mapping of table name to row count, or None if unreadable
        """
        path = Path(path)
        if not path.is_file():
            return None

        try:
            with self._readonly(path) as conn:
                tables = {
                    row[0]
                    for row in conn.execute(
                        text("SELECT name FROM sqlite_master WHERE type = 'table'")
                    )
                }
                return {
                    name: int(conn.execute(text(f'SELECT COUNT(*) FROM "{name}"')).scalar())
                    for name in self.required_tables
                    if name in tables
                }
        except (SQLAlchemyError, sqlite3.Error) as e:
            safe_logger(self.logger).log_warning(
                "Could not read database stats",
                {"path": str(path), "error": self._engine_message(e)},
            )
            return None

    def checkpoint(self, path: Path, mode: str = "TRUNCATE") -> Dict[str, int]:
        """
        Fold the WAL back into the main database file.

        This is the only write the checker performs.

        Args:
            path: Database file
            mode: PASSIVE, FULL, RESTART or TRUNCATE

        Returns:
            {"busy", "log_pages", "checkpointed_pages"}

        Raises:
            DatabaseNotFoundError: If the file is absent
            IntegrityCheckError: If the engine refuses the checkpoint
        """
        path = self._require(path)
        mode = mode.upper()
        if mode not in {"PASSIVE", "FULL", "RESTART", "TRUNCATE"}:
            raise ValueError(f"Invalid checkpoint mode: {mode}")

        engine = create_engine(f"sqlite:///{path}", poolclass=NullPool)
        try:
            with engine.connect() as conn:
                busy, log_pages, done = conn.execute(
                    text(f"PRAGMA wal_checkpoint({mode})")
                ).fetchone()
        except SQLAlchemyError as e:
            raise IntegrityCheckError(self._engine_message(e)) from e
        finally:
            engine.dispose()

        result = {"busy": int(busy), "log_pages": int(log_pages), "checkpointed_pages": int(done)}
        safe_logger(self.logger).log_operation(
            "wal_checkpoint", {"path": str(path), "mode": mode, **result}
        )
        return result
