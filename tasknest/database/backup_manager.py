#!/usr/bin/env python3
"""
backup_manager.py
--------------------
Daily backups and verified restore for the TaskNest database.

Backups are point-in-time copies taken through SQLite's online backup API,
so a database that is being written (including pages still sitting in the
WAL) is captured consistently. Each copy is written to a hidden temporary
sibling, verified, and only then renamed into place; a reader never sees
a half-written backup and a failed backup never replaces a good one.

Features:
    - One dated backup per UTC day (``tasknest-YYYY-MM-DD.db``)
    - ``.last-backup`` marker so startup does not re-copy the database
    - Retention pruning of the oldest dated backups
    - Restore with candidate verification, pre-restore safety copy,
      post-restore verification and automatic rollback

Usage:
    from tasknest.database.backup_manager import BackupManager

    manager = BackupManager(db_path, backup_dir, logger=logger)

    # Startup entry point: backup if needed, then prune
    manager.perform_daily_backup_sync(keep_days=7)

    # List, newest first
    for record in manager.list_backups():
        print(record.filename, record.date)

    # Restore
    outcome = manager.restore_from_backup(manager.get_latest_backup().path)
    if not outcome.success:
        print(outcome.message, outcome.pre_restore_backup_path)
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import os
import shutil
import sqlite3
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

# --- Local imports ---
from tasknest.core.exceptions import (
    BackupCorruptedError,
    BackupError,
    BackupNotFoundError,
    DatabaseError,
    IntegrityCheckError,
)
from tasknest.core.logging_manager import TaskNestLogger, safe_logger
from tasknest.core.paths import ensure_directory
from .configs.resilience_configs import (
    BACKUP_FILE_MODE,
    BACKUP_MARKER,
    BACKUP_PREFIX,
    DEFAULT_KEEP_DAYS,
    PARTIAL_SUFFIX,
    PRE_RESTORE_TAG,
    BackupNaming,
)
from .decorators import log_database_operation
from .integrity import IntegrityChecker, companion_paths, preserve_companions


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _chmod_owner_only(path: Path) -> None:
    if os.name != "nt":
        os.chmod(path, BACKUP_FILE_MODE)


@dataclass
class BackupRecord:
    """A dated backup found in the backup directory."""

    filename: str
    date: str
    path: Path
    size_bytes: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filename": self.filename,
            "date": self.date,
            "path": str(self.path),
            "size_bytes": self.size_bytes,
        }


@dataclass
class BackupResult:
    """
    Outcome of a backup attempt.

    Attributes:
        success: False only when a backup was attempted and failed
        created: True when a new file was written
        message: Human-readable summary
        backup_path: The backup file, when one exists
    """

    success: bool
    created: bool
    message: str
    backup_path: Optional[Path] = None


@dataclass
class CleanupResult:
    """Outcome of retention pruning; ``failed`` counts per-file failures."""

    success: bool
    deleted: int
    failed: int
    message: str
    skipped: bool = False


@dataclass
class DailyBackupResult:
    backup: BackupResult
    cleanup: CleanupResult

    @property
    def success(self) -> bool:
        return self.backup.success and self.cleanup.success


@dataclass
class RestoreOutcome:
    """
    Outcome of a restore.

    Attributes:
        success: True when the candidate is installed and verified
        message: Human-readable summary
        pre_restore_backup_path: Safety copy of the database that was
            replaced; reported on failure too
        error: Exception class name on failure
    """

    success: bool
    message: str
    pre_restore_backup_path: Optional[Path] = None
    error: Optional[str] = None


class BackupManager:
    """
    Creates, lists, prunes and restores database backups.

    Attributes:
        db_path: Live database file
        backup_dir: Directory holding backups and the marker file
        checker: IntegrityChecker used to verify every copy
        naming: Backup filename rules
        clock: Callable returning the current aware UTC datetime
    """

    def __init__(
        self,
        db_path: Path,
        backup_dir: Path,
        logger: Optional[TaskNestLogger] = None,
        checker: Optional[IntegrityChecker] = None,
        prefix: str = BACKUP_PREFIX,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """
        Initialize backup manager.

        Args:
            db_path: Path to the live database file
            backup_dir: Directory for backup storage (created on first backup)
            logger: Optional logger for backup operations
            checker: Integrity checker (a read-only one is created if omitted)
            prefix: Backup filename prefix
            clock: Time source, injectable for tests
        """
        self.db_path = Path(db_path)
        self.backup_dir = Path(backup_dir)
        self.logger = logger
        self.checker = checker or IntegrityChecker(logger=logger)
        self.naming = BackupNaming(prefix)
        self.clock = clock or utc_now

    # ---- Naming ----

    @property
    def marker_path(self) -> Path:
        return self.backup_dir / BACKUP_MARKER

    def today(self) -> date:
        """Current UTC calendar date."""
        return self.clock().astimezone(timezone.utc).date()

    def today_backup_path(self) -> Path:
        return self.backup_dir / self.naming.daily_name(self.today().isoformat())

    def safety_backup_path(self, tag: str) -> Path:
        """Path for a pre-restore or pre-migration safety copy."""
        epoch_ms = int(self.clock().timestamp() * 1000)
        return self.backup_dir / self.naming.safety_name(tag, epoch_ms)

    @staticmethod
    def _partial_path(target: Path) -> Path:
        return target.with_name(f".{target.name}{PARTIAL_SUFFIX}")

    # ---- Creation ----

    @staticmethod
    def _backup_database(source_path: Path, dest_path: Path) -> None:
        """
        Copy a database with the SQLite online backup API.

        The source is opened read-only. The copy is switched to rollback
        journal mode so it is a single self-contained file.

        Args:
            source_path: Database to copy
            dest_path: Destination file (overwritten)
        """
        with preserve_companions(source_path):
            source = sqlite3.connect(Path(source_path).resolve().as_uri() + "?mode=ro", uri=True)
            dest = sqlite3.connect(str(dest_path))
            try:
                with dest:
                    source.backup(dest)
                dest.execute("PRAGMA journal_mode=DELETE")
            finally:
                dest.close()
                source.close()

    @log_database_operation("create_backup")
    def create_backup(
        self,
        source_path: Optional[Path] = None,
        target_path: Optional[Path] = None,
    ) -> BackupResult:
        """
        Create a verified backup.

        An existing file at the target is replaced only once the new copy
        has passed its integrity check.

        Args:
            source_path: Database to copy (default: the live database)
            target_path: Destination (default: today's dated backup)

        Returns:
            BackupResult; failures are reported, never raised
        """
        logger = safe_logger(self.logger)
        source = Path(source_path) if source_path else self.db_path
        target = Path(target_path) if target_path else self.today_backup_path()

        if not source.is_file():
            message = f"Database not found: {source}"
            logger.log_warning("Backup skipped", {"source": str(source), "reason": message})
            return BackupResult(success=False, created=False, message=message)

        partial = self._partial_path(target)
        try:
            ensure_directory(target.parent)
            partial.unlink(missing_ok=True)
            self._backup_database(source, partial)

            try:
                self.checker.verify(partial)
            except IntegrityCheckError as e:
                partial.unlink(missing_ok=True)
                logger.log_error(
                    e, {"operation": "create_backup", "source": str(source), "target": str(target)}
                )
                return BackupResult(
                    success=False,
                    created=False,
                    message="Backup created but failed integrity check",
                )

            os.replace(partial, target)
            _chmod_owner_only(target)

        except (OSError, sqlite3.Error, DatabaseError) as e:
            partial.unlink(missing_ok=True)
            logger.log_error(
                e, {"operation": "create_backup", "source": str(source), "target": str(target)}
            )
            return BackupResult(success=False, created=False, message=f"Backup failed: {e}")

        logger.log_operation(
            "backup_created",
            {"source": str(source), "backup": str(target), "size": target.stat().st_size},
        )
        return BackupResult(
            success=True,
            created=True,
            message=f"Backup created: {target.name}",
            backup_path=target,
        )

    # ---- Listing ----

    def list_backups(self) -> List[BackupRecord]:
        """
        List dated backups, newest first.

        Safety copies and the marker do not match the daily pattern and
        are never listed (or pruned).

        Returns:
            List of BackupRecord sorted by embedded date, descending
        """
        if not self.backup_dir.is_dir():
            return []

        records = []
        for entry in self.backup_dir.iterdir():
            match = self.naming.pattern.match(entry.name)
            if not match or not entry.is_file():
                continue
            try:
                size = entry.stat().st_size
            except OSError:
                continue
            records.append(
                BackupRecord(
                    filename=entry.name,
                    date=match.group(1),
                    path=entry,
                    size_bytes=size,
                )
            )

        records.sort(key=lambda r: (r.date, r.filename), reverse=True)
        return records

    def get_latest_backup(self) -> Optional[BackupRecord]:
        backups = self.list_backups()
        return backups[0] if backups else None

    def verify_backup(self, path: Path) -> bool:
        """Return True when a backup passes the full integrity check."""
        try:
            self.checker.verify(path, full=True)
        except DatabaseError as e:
            safe_logger(self.logger).log_warning(
                "Backup verification failed", {"path": str(path), "error": str(e)}
            )
            return False
        return True

    # ---- Daily schedule ----

    def was_backup_created_today(self) -> bool:
        """True when the marker was last touched on today's UTC date."""
        try:
            mtime = self.marker_path.stat().st_mtime
        except OSError:
            return False
        return datetime.fromtimestamp(mtime, tz=timezone.utc).date() == self.today()

    def _update_marker(self) -> None:
        """Refresh the marker; failures are logged, never raised."""
        now = self.clock()
        try:
            ensure_directory(self.backup_dir)
            self.marker_path.write_text(now.isoformat(), encoding="utf-8")
            _chmod_owner_only(self.marker_path)
            ts = now.timestamp()
            os.utime(self.marker_path, (ts, ts))
        except OSError as e:
            safe_logger(self.logger).log_warning(
                "Could not update backup marker",
                {"marker": str(self.marker_path), "error": str(e)},
            )

    def create_backup_if_needed(self, force: bool = False) -> BackupResult:
        """
        Create today's backup unless one already exists.

        Args:
            force: Create a backup even if one was taken today; today's
                file is atomically replaced once the new copy verifies

        Returns:
            BackupResult (created=False when nothing had to be done)
        """
        if not force:
            if self.was_backup_created_today():
                return BackupResult(
                    success=True,
                    created=False,
                    message="Backup already created today",
                )

            today_path = self.today_backup_path()
            if today_path.is_file():
                self._update_marker()
                return BackupResult(
                    success=True,
                    created=False,
                    message=f"Backup for today already exists: {today_path.name}",
                    backup_path=today_path,
                )

        result = self.create_backup()
        if result.success:
            self._update_marker()
        return result

    def cleanup_old_backups(self, keep_days: int = DEFAULT_KEEP_DAYS) -> CleanupResult:
        """
        Delete dated backups beyond the newest ``keep_days``.

        Every deletion is attempted independently.

        Args:
            keep_days: Number of newest backups to keep (>= 1)

        Returns:
            CleanupResult with deleted and failed counts

        Raises:
            ValueError: If keep_days < 1
        """
        if keep_days < 1:
            raise ValueError(f"keep_days must be at least 1, got {keep_days}")

        logger = safe_logger(self.logger)
        deleted = 0
        failed = 0

        for record in self.list_backups()[keep_days:]:
            try:
                record.path.unlink()
                deleted += 1
                logger.log_debug("Deleted old backup", {"backup": record.filename})
            except OSError as e:
                failed += 1
                logger.log_warning(
                    "Could not delete old backup",
                    {"backup": record.filename, "error": str(e)},
                )

        if deleted or failed:
            logger.log_operation(
                "backups_cleaned", {"deleted": deleted, "failed": failed, "keep_days": keep_days}
            )

        if failed:
            message = f"Deleted {deleted} old backup(s), {failed} could not be deleted"
        elif deleted:
            message = f"Deleted {deleted} old backup(s)"
        else:
            message = "No old backups to delete"
        return CleanupResult(success=failed == 0, deleted=deleted, failed=failed, message=message)

    def perform_daily_backup_sync(self, keep_days: int = DEFAULT_KEEP_DAYS) -> DailyBackupResult:
        """
        Startup entry point: backup if needed, then prune.

        Pruning is skipped when the backup step failed, so a broken backup
        never coincides with deleting older good ones.

        Args:
            keep_days: Retention passed to cleanup_old_backups

        Returns:
            DailyBackupResult with both outcomes
        """
        backup = self.create_backup_if_needed()
        if not backup.success:
            safe_logger(self.logger).log_warning(
                "Daily backup failed; skipping cleanup", {"message": backup.message}
            )
            cleanup = CleanupResult(
                success=False,
                deleted=0,
                failed=0,
                message="Cleanup skipped because the backup failed",
                skipped=True,
            )
            return DailyBackupResult(backup=backup, cleanup=cleanup)

        return DailyBackupResult(backup=backup, cleanup=self.cleanup_old_backups(keep_days))

    # ---- Restore ----

    def _remove_database_files(self, db_path: Path) -> None:
        """Remove a database file and its WAL/SHM companions."""
        for path in [db_path, *companion_paths(db_path)]:
            path.unlink(missing_ok=True)

    def _copy_file_atomic(self, source: Path, dest: Path) -> None:
        """Copy through a temporary sibling and rename into place."""
        partial = self._partial_path(dest)
        try:
            shutil.copyfile(source, partial)
            _chmod_owner_only(partial)
            os.replace(partial, dest)
        except OSError:
            partial.unlink(missing_ok=True)
            raise

    def _rollback(self, pre_restore: Optional[Path]) -> bool:
        """Put the pre-restore safety copy back in place."""
        if pre_restore is None or not pre_restore.is_file():
            return False
        try:
            self._remove_database_files(self.db_path)
            self._copy_file_atomic(pre_restore, self.db_path)
        except OSError as e:
            safe_logger(self.logger).log_error(
                e, {"operation": "restore_rollback", "pre_restore": str(pre_restore)}
            )
            return False
        safe_logger(self.logger).log_operation(
            "restore_rolled_back", {"pre_restore": str(pre_restore)}
        )
        return True

    @log_database_operation("restore_from_backup")
    def restore_from_backup(self, backup_path: Path) -> RestoreOutcome:
        """
        Replace the live database with a verified backup.

        Steps, in order:
            1. Reject a missing candidate
            2. Reject a candidate failing full verification
            3. Safety copy of the live database (best-effort)
            4. Remove the live database and its companions
            5. Copy the candidate into place
            6. Full verification of the installed file
            7. On failure, restore the safety copy

        The live database is untouched when steps 1-2 fail.

        Args:
            backup_path: Backup file to restore

        Returns:
            RestoreOutcome; failures are reported, never raised
        """
        logger = safe_logger(self.logger)
        candidate = Path(backup_path)

        try:
            if not candidate.is_file():
                raise BackupNotFoundError(f"Backup file not found: {candidate}")
            try:
                self.checker.verify(candidate, full=True)
            except DatabaseError as e:
                raise BackupCorruptedError(f"Backup failed integrity check: {e}") from e
        except BackupError as e:
            logger.log_error(e, {"operation": "restore", "backup": str(candidate)})
            return RestoreOutcome(success=False, message=str(e), error=type(e).__name__)

        pre_restore: Optional[Path] = None
        if self.db_path.exists():
            snapshot = self.create_backup(target_path=self.safety_backup_path(PRE_RESTORE_TAG))
            if snapshot.success:
                pre_restore = snapshot.backup_path
            else:
                logger.log_warning(
                    "Pre-restore backup failed; continuing without a safety copy",
                    {"database": str(self.db_path), "reason": snapshot.message},
                )

        try:
            self._remove_database_files(self.db_path)
            ensure_directory(self.db_path.parent)
            self._copy_file_atomic(candidate, self.db_path)
            self.checker.verify(self.db_path, full=True)
        except (OSError, DatabaseError) as e:
            logger.log_error(
                e,
                {
                    "operation": "restore",
                    "backup": str(candidate),
                    "pre_restore": str(pre_restore) if pre_restore else None,
                },
            )
            message = f"Restore failed: {e}"
            if pre_restore is not None:
                if self._rollback(pre_restore):
                    message += f". Previous database restored from {pre_restore.name}"
                else:
                    message += f". Rollback failed; previous database saved at {pre_restore}"
            return RestoreOutcome(
                success=False,
                message=message,
                pre_restore_backup_path=pre_restore,
                error=type(e).__name__,
            )

        logger.log_operation(
            "database_restored",
            {
                "backup": str(candidate),
                "database": str(self.db_path),
                "pre_restore": str(pre_restore) if pre_restore else None,
            },
        )
        return RestoreOutcome(
            success=True,
            message=f"Database restored from {candidate.name}",
            pre_restore_backup_path=pre_restore,
        )
