#!/usr/bin/env python3
"""
resilience_configs.py
---------------------

Declarative configuration for database resilience operations.

Every tunable number and file-naming rule used by the integrity checker,
backup engine, migration and deletion watcher lives here so that the
operational modules only carry behaviour.
"""
import re
from dataclasses import dataclass, field
from typing import Pattern, Tuple


# ----- Schema -----
REQUIRED_TABLES: Tuple[str, ...] = (
    "projects",
    "epics",
    "tickets",
    "settings",
    "ticket_comments",
)
"""Tables whose absence marks the database as unusable."""

# ----- SQLite companion files -----
WAL_SUFFIX = "-wal"
SHM_SUFFIX = "-shm"
COMPANION_SUFFIXES: Tuple[str, ...] = (WAL_SUFFIX, SHM_SUFFIX)

# ----- WAL health thresholds -----
WAL_SIZE_WARNING_BYTES = 100 * 1024 * 1024
UNCHECKPOINTED_PAGES_WARNING = 10_000
WAL_FRAME_HEADER_BYTES = 24
WAL_FILE_HEADER_BYTES = 32
DEFAULT_PAGE_SIZE = 4096

# ----- Backups -----
BACKUP_PREFIX = "tasknest-"
BACKUP_MARKER = ".last-backup"
DEFAULT_KEEP_DAYS = 7
PRE_RESTORE_TAG = "pre-restore"
PRE_MIGRATION_TAG = "pre-migration"
PARTIAL_SUFFIX = ".partial"
BACKUP_FILE_MODE = 0o600

# ----- Migration -----
MIGRATION_MARKER = ".migrated"
MIGRATION_NOTE = (
    "Data was copied to the new location. This directory is kept as a "
    "fallback and can be removed once the new location is confirmed working."
)

# ----- Deletion watcher -----
DEBOUNCE_SECONDS = 0.1
DELETION_LOG = "deletion-events.log"


@dataclass(frozen=True)
class BackupNaming:
    """
    File naming rules for one backup directory.

    Attributes:
        prefix: Common filename prefix (e.g. "tasknest-")
        pattern: Regex matching daily backups; group 1 is the ISO date
    """

    prefix: str = BACKUP_PREFIX
    pattern: Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "pattern",
            re.compile(rf"^{re.escape(self.prefix)}(\d{{4}}-\d{{2}}-\d{{2}})\.db$"),
        )

    def daily_name(self, iso_date: str) -> str:
        """Filename of the daily backup for a YYYY-MM-DD date."""
        return f"{self.prefix}{iso_date}.db"

    def safety_name(self, tag: str, epoch_ms: int) -> str:
        """Filename of a safety copy; never matches the daily pattern."""
        return f"{self.prefix}{tag}-{epoch_ms}.db"
