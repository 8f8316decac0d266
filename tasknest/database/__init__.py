#!/usr/bin/env python3
"""
TaskNest Database Resilience Package
------------------------------------

Keeps the single-file SQLite database durable and recoverable:
- Integrity inspection (integrity)
- Daily backups and verified restore (backup_manager)
- One-time legacy relocation (migration)
- Deletion detection (watcher)
- Boot sequence (startup)
"""

from tasknest.core.exceptions import (
    BackupCorruptedError,
    BackupError,
    BackupNotFoundError,
    DatabaseError,
    DatabaseNotFoundError,
    IntegrityCheckError,
    MigrationError,
    WatcherError,
)
from .integrity import (
    CheckResult,
    HealthReport,
    HealthStatus,
    IntegrityChecker,
    QuickCheckResult,
    StartupCheckResult,
)
from .backup_manager import (
    BackupManager,
    BackupRecord,
    BackupResult,
    CleanupResult,
    DailyBackupResult,
    RestoreOutcome,
)
from .migration import LegacyMigrator, MigrationDetails, MigrationResult
from .watcher import (
    DeletionEvent,
    WatchHandle,
    default_deletion_handler,
    initialize_watcher,
    start_watching,
    stop_watching,
)
from .startup import StartupReport, run_startup

__all__ = [
    # Exceptions
    "DatabaseError",
    "DatabaseNotFoundError",
    "IntegrityCheckError",
    "BackupError",
    "BackupNotFoundError",
    "BackupCorruptedError",
    "MigrationError",
    "WatcherError",
    # Integrity
    "IntegrityChecker",
    "HealthStatus",
    "CheckResult",
    "QuickCheckResult",
    "HealthReport",
    "StartupCheckResult",
    # Backups
    "BackupManager",
    "BackupRecord",
    "BackupResult",
    "CleanupResult",
    "DailyBackupResult",
    "RestoreOutcome",
    # Migration
    "LegacyMigrator",
    "MigrationDetails",
    "MigrationResult",
    # Watcher
    "DeletionEvent",
    "WatchHandle",
    "start_watching",
    "stop_watching",
    "initialize_watcher",
    "default_deletion_handler",
    # Startup
    "StartupReport",
    "run_startup",
]
