#!/usr/bin/env python3
"""
startup.py
--------------------
Boot sequence for the database resilience subsystem.

Order:
    1. Create the resolved directories
    2. Migrate legacy data (so the backup targets the final location)
    3. Resolve which database file is active
    4. Daily backup + retention pruning
    5. Quick integrity check
    6. Deletion watcher

No step aborts the boot: a failure is logged and recorded in the report
so the application can still start and tell the user what happened.
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

# --- Local imports ---
from tasknest.core.logging_manager import TaskNestLogger, safe_logger
from tasknest.core.paths import AppPaths
from .backup_manager import BackupManager, DailyBackupResult
from .configs.resilience_configs import DEFAULT_KEEP_DAYS
from .integrity import IntegrityChecker, StartupCheckResult
from .migration import LegacyMigrator, MigrationResult
from .watcher import WatchHandle, initialize_watcher


@dataclass
class StartupReport:
    """What happened during boot."""

    db_path: Path
    migration: Optional[MigrationResult] = None
    backup: Optional[DailyBackupResult] = None
    integrity: Optional[StartupCheckResult] = None
    watcher: Optional[WatchHandle] = None
    warnings: List[str] = field(default_factory=list)


def resolve_active_database(paths: AppPaths, migrator: LegacyMigrator) -> Path:
    """
    Pick the database file the application should open.

    The resolved location wins when it holds a database. An un-migrated
    legacy database is used as a fallback (e.g. after a failed migration)
    so existing data is never hidden behind a fresh empty file.
    """
    if paths.db_path.is_file():
        return paths.db_path
    if migrator.has_legacy_data() and not migrator.is_migration_complete():
        return paths.legacy_db_path
    return paths.db_path


def run_startup(
    paths: Optional[AppPaths] = None,
    keep_days: int = DEFAULT_KEEP_DAYS,
    watch: bool = True,
    logger: Optional[TaskNestLogger] = None,
) -> StartupReport:
    """
    Run the boot sequence.

    Args:
        paths: Resolved directories (default: current platform)
        keep_days: Backup retention
        watch: Start the deletion watcher
        logger: Optional logger

    Returns:
        StartupReport; the caller owns ``report.watcher`` and must stop it
    """
    paths = paths or AppPaths.resolve()
    log = safe_logger(logger)
    paths.ensure_directories()

    checker = IntegrityChecker(logger=logger)
    backups = BackupManager(paths.db_path, paths.backups_dir, logger=logger, checker=checker)
    migrator = LegacyMigrator(paths.legacy_dir, paths.data_dir, backups, logger=logger)

    report = StartupReport(db_path=paths.db_path)

    report.migration = migrator.migrate()
    if not report.migration.success:
        report.warnings.append(report.migration.message)

    active = resolve_active_database(paths, migrator)
    report.db_path = active
    if active != backups.db_path:
        log.log_warning("Using legacy database", {"path": str(active)})
        report.warnings.append(f"Using legacy database at {active}")
        backups.db_path = active

    if active.is_file():
        report.backup = backups.perform_daily_backup_sync(keep_days)
        if not report.backup.backup.success:
            report.warnings.append(report.backup.backup.message)

        report.integrity = checker.startup_check(active, backups.list_backups())
        if report.integrity.should_warn:
            report.warnings.append(report.integrity.message)

        if watch:
            report.watcher = initialize_watcher(
                active,
                logger=logger,
                backups_dir=paths.backups_dir,
                events_dir=paths.state_dir,
            )
    else:
        log.log_info("No database yet; skipping backup and watcher", {"path": str(active)})

    log.log_operation(
        "startup_complete",
        {"db_path": str(active), "warnings": len(report.warnings)},
    )
    return report
