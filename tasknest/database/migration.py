#!/usr/bin/env python3
"""
migration.py
--------------------
One-time relocation of data from the legacy ``~/.tasknest`` directory.

Older releases kept the database and attachments in a dotted directory in
the home folder. On first start of a newer release the data is copied to
the platform data directory. The copy is verified before it is trusted and
a ``.migrated`` marker is written into the legacy directory last; every
later call sees the marker and does nothing.

The legacy directory is never deleted: it remains a fallback until the
user removes it.

Steps:
    1. Skip if the marker exists, no legacy database exists, or the new
       location already holds a database (which gets the marker if it
       passes a full check)
    2. Pre-migration backup of the legacy database (best-effort)
    3. Exclusive copy of the database and its WAL/SHM companions
    4. Full integrity check of the copy (failure removes the copy)
    5. Per-file attachment copy (failures counted, not fatal)
    6. Marker

Usage:
    from tasknest.database.migration import LegacyMigrator

    migrator = LegacyMigrator(paths.legacy_dir, paths.data_dir, backup_manager)
    result = migrator.migrate()
    if result.migrated:
        print(result.message)
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import json
import os
import shutil
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

# --- Local imports ---
from tasknest.core.exceptions import DatabaseError, MigrationError
from tasknest.core.logging_manager import TaskNestLogger, safe_logger
from tasknest.core.paths import ATTACHMENTS_DIRNAME, DB_FILENAME, ensure_directory
from .backup_manager import BackupManager, utc_now
from .configs.resilience_configs import (
    COMPANION_SUFFIXES,
    MIGRATION_MARKER,
    MIGRATION_NOTE,
    PRE_MIGRATION_TAG,
)
from .decorators import log_database_operation
from .integrity import IntegrityChecker

MARKER_FILE_MODE = 0o600


@dataclass
class MigrationDetails:
    database_copied: bool = False
    attachments_copied: int = 0
    attachments_failed: int = 0
    backup_created: bool = False
    integrity_verified: bool = False
    pre_migration_backup_path: Optional[Path] = None


@dataclass
class MigrationResult:
    """
    Outcome of a migration attempt.

    Attributes:
        success: False only when a migration was attempted and failed
        migrated: True when data was copied on this call
        message: Human-readable summary
        details: Step-by-step detail (None when short-circuited)
    """

    success: bool
    migrated: bool
    message: str
    details: Optional[MigrationDetails] = field(default=None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "migrated": self.migrated,
            "message": self.message,
            "details": asdict(self.details) if self.details else None,
        }


def copy_file_exclusive(source: Path, dest: Path) -> None:
    """
    Copy a file, refusing to overwrite an existing destination.

    Raises:
        FileExistsError: If dest already exists
        MigrationError: If the copy's size differs from the source
    """
    with open(source, "rb") as src, open(dest, "xb") as dst:
        shutil.copyfileobj(src, dst)
    if Path(source).stat().st_size != Path(dest).stat().st_size:
        raise MigrationError(f"Size mismatch after copying {source} to {dest}")


class LegacyMigrator:
    """
    Moves a legacy installation into the resolved data directory.

    Attributes:
        legacy_dir: Old installation directory (source, never deleted)
        data_dir: New data directory (destination)
        backup_manager: Creates the pre-migration safety copy
        checker: Verifies the copied database
    """

    def __init__(
        self,
        legacy_dir: Path,
        data_dir: Path,
        backup_manager: BackupManager,
        logger: Optional[TaskNestLogger] = None,
        checker: Optional[IntegrityChecker] = None,
        db_filename: str = DB_FILENAME,
    ) -> None:
        self.legacy_dir = Path(legacy_dir)
        self.data_dir = Path(data_dir)
        self.backup_manager = backup_manager
        self.logger = logger
        self.checker = checker or backup_manager.checker
        self.db_filename = db_filename

    @property
    def legacy_db_path(self) -> Path:
        return self.legacy_dir / self.db_filename

    @property
    def target_db_path(self) -> Path:
        return self.data_dir / self.db_filename

    @property
    def marker_path(self) -> Path:
        return self.legacy_dir / MIGRATION_MARKER

    def is_migration_complete(self) -> bool:
        return self.marker_path.exists()

    def has_legacy_data(self) -> bool:
        return self.legacy_db_path.is_file()

    def has_current_data(self) -> bool:
        return self.target_db_path.is_file()

    # ---- Steps ----

    def _pre_migration_backup(self, details: MigrationDetails) -> None:
        """Best-effort safety copy of the legacy database."""
        result = self.backup_manager.create_backup(
            source_path=self.legacy_db_path,
            target_path=self.backup_manager.safety_backup_path(PRE_MIGRATION_TAG),
        )
        details.backup_created = result.success
        details.pre_migration_backup_path = result.backup_path
        if result.success:
            safe_logger(self.logger).log_info(
                "Created pre-migration backup", {"backup": str(result.backup_path)}
            )
        else:
            safe_logger(self.logger).log_warning(
                "Pre-migration backup failed; continuing", {"reason": result.message}
            )

    def _copy_database(self) -> None:
        """Copy the database and whichever companions exist."""
        ensure_directory(self.data_dir)
        # Stale companions without a main file would be replayed into the copy
        for suffix in COMPANION_SUFFIXES:
            Path(f"{self.target_db_path}{suffix}").unlink(missing_ok=True)

        copy_file_exclusive(self.legacy_db_path, self.target_db_path)
        for suffix in COMPANION_SUFFIXES:
            companion = Path(f"{self.legacy_db_path}{suffix}")
            if companion.exists():
                copy_file_exclusive(companion, Path(f"{self.target_db_path}{suffix}"))

    def _discard_copy(self) -> None:
        """Remove a copied database so the migration can be retried."""
        for path in [self.target_db_path] + [
            Path(f"{self.target_db_path}{suffix}") for suffix in COMPANION_SUFFIXES
        ]:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                safe_logger(self.logger).log_warning(
                    "Could not remove partial migration copy", {"path": str(path), "error": str(e)}
                )

    def _copy_attachments(self, details: MigrationDetails) -> None:
        """Copy attachments one file at a time; failures are counted."""
        source_dir = self.legacy_dir / ATTACHMENTS_DIRNAME
        if not source_dir.is_dir():
            return

        dest_dir = ensure_directory(self.data_dir / ATTACHMENTS_DIRNAME)
        for source in sorted(source_dir.iterdir()):
            if not source.is_file():
                continue
            dest = dest_dir / source.name
            try:
                copy_file_exclusive(source, dest)
                details.attachments_copied += 1
            except FileExistsError:
                # Already present from an earlier, interrupted attempt
                details.attachments_copied += 1
            except (OSError, MigrationError) as e:
                details.attachments_failed += 1
                safe_logger(self.logger).log_warning(
                    "Failed to copy attachment", {"file": source.name, "error": str(e)}
                )

    def _write_marker(self) -> None:
        payload = {
            "migratedAt": utc_now().isoformat(),
            "migratedTo": str(self.data_dir),
            "note": MIGRATION_NOTE,
        }
        fd = os.open(self.marker_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, MARKER_FILE_MODE)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)

    def _complete_with_existing_data(self) -> None:
        """Mark the legacy directory migrated when the destination verifies."""
        logger = safe_logger(self.logger)
        try:
            self.checker.verify(self.target_db_path, full=True)
        except DatabaseError as e:
            logger.log_warning(
                "Current database failed verification; migration left unmarked",
                {"current": str(self.target_db_path), "error": str(e)},
            )
            return
        try:
            self._write_marker()
        except OSError as e:
            logger.log_warning(
                "Could not write migration marker",
                {"marker": str(self.marker_path), "error": str(e)},
            )

    # ---- Entry point ----

    @log_database_operation("migrate_from_legacy")
    def migrate(self) -> MigrationResult:
        """
        Migrate legacy data once.

        Returns:
            MigrationResult; failures are reported, never raised
        """
        logger = safe_logger(self.logger)

        if self.is_migration_complete():
            return MigrationResult(True, False, "Migration already complete")

        if not self.has_legacy_data():
            return MigrationResult(True, False, "No legacy data to migrate")

        if self.has_current_data():
            logger.log_warning(
                "Both legacy and current databases exist; using current database",
                {"legacy": str(self.legacy_db_path), "current": str(self.target_db_path)},
            )
            # Also completes a run whose marker write failed after verification
            self._complete_with_existing_data()
            return MigrationResult(
                True, False, "New location already has data, using existing database"
            )

        logger.log_info(
            "Starting migration from legacy directory",
            {"legacy": str(self.legacy_dir), "destination": str(self.data_dir)},
        )
        details = MigrationDetails()

        try:
            self._pre_migration_backup(details)

            self._copy_database()
            details.database_copied = True

            try:
                self.checker.verify(self.target_db_path, full=True)
            except DatabaseError as e:
                raise MigrationError(f"Database integrity check failed after copy: {e}") from e
            details.integrity_verified = True
            logger.log_info("Database integrity verified at new location")

            self._copy_attachments(details)
            self._write_marker()

        except (OSError, DatabaseError) as e:
            if not details.integrity_verified:
                # An unverified copy must not be mistaken for migrated data
                self._discard_copy()
                details.database_copied = False
            logger.log_error(
                e,
                {
                    "operation": "migrate",
                    "legacy": str(self.legacy_dir),
                    "destination": str(self.data_dir),
                },
            )
            return MigrationResult(False, False, f"Migration failed: {e}", details)

        message = (
            f"Migration complete: database and {details.attachments_copied} "
            f"attachment(s) copied to {self.data_dir}"
        )
        if details.attachments_failed:
            message += f" ({details.attachments_failed} attachment(s) failed)"
        logger.log_operation(
            "legacy_migrated",
            {**asdict(details), "legacy": str(self.legacy_dir), "destination": str(self.data_dir)},
        )
        return MigrationResult(True, True, message, details)
