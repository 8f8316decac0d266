#!/usr/bin/env python3
"""
exceptions.py
--------------------
Custom exception classes for the TaskNest project.

This module defines the error taxonomy shared by the resilience subsystem.
Operations that protect user data (backup, restore, migration) catch these
at their boundary and turn them into explicit failure results; the
inspection primitives raise them directly.

Exception Hierarchy:
    Exception (built-in)
    └── DatabaseError - Base for all database-related errors
        ├── DatabaseNotFoundError - Live or source database file is absent
        ├── IntegrityCheckError - Engine reported a structural problem
        ├── HealthCheckError - Health report could not be produced
        ├── BackupError - Backup creation/restoration failures
        │   ├── BackupNotFoundError - Candidate backup file is absent
        │   └── BackupCorruptedError - Candidate backup fails verification
        ├── MigrationError - Legacy data relocation failures
        └── WatcherError - Deletion watcher could not be started

Usage:
    from tasknest.core.exceptions import BackupError, DatabaseError

    try:
        checker.verify(db_path)
    except IntegrityCheckError as e:
        logger.log_error(e, {"operation": "verify"})
    except DatabaseError as e:
        ...
"""


class DatabaseError(Exception):
    """
    Base exception for database-related errors.

    This is the parent class for all TaskNest exceptions. Catch this to
    handle any resilience failure, or catch specific subclasses for more
    granular error handling.

    Examples:
        >>> raise DatabaseError("Database file could not be opened")

    See Also:
        DatabaseNotFoundError, IntegrityCheckError, BackupError, MigrationError
    """

    pass


class DatabaseNotFoundError(DatabaseError):
    """
    Exception raised when a database file that must exist is absent.

    Raised for the live database, the source of a backup, or the file a
    deletion watch is asked to observe.

    Examples:
        >>> raise DatabaseNotFoundError("Database not found: /tmp/tasknest.db")
    """

    pass


class IntegrityCheckError(DatabaseError):
    """
    Exception for engine-reported integrity problems.

    Carries the message returned by ``PRAGMA integrity_check`` (or the
    error the engine raised while opening the file), such as
    "database disk image is malformed" or "file is not a database".

    Examples:
        >>> raise IntegrityCheckError("*** in database main *** Page 3 is never used")
    """

    pass


class HealthCheckError(DatabaseError):
    """
    Exception for health report failures.

    Raised when a health inspection cannot run at all, as opposed to
    running and finding problems (those are reported, not raised).
    """

    pass


class BackupError(DatabaseError):
    """
    Exception for backup creation and restoration failures.

    Raised when backup operations fail, including:
    - Creating new backups
    - Restoring from backups
    - Backup file corruption
    - Permission issues

    Examples:
        >>> raise BackupError("Failed to create backup: disk full")
        >>> raise BackupError("Cannot restore from backup: file not found")
    """

    pass


class BackupNotFoundError(BackupError):
    """
    Exception raised when a restore candidate does not exist.

    Examples:
        >>> raise BackupNotFoundError("Backup file not found: tasknest-2026-01-12.db")
    """

    pass


class BackupCorruptedError(BackupError):
    """
    Exception raised when a restore candidate fails integrity verification.

    The live database is never touched when this is raised.

    Examples:
        >>> raise BackupCorruptedError("Backup failed integrity check: file is not a database")
    """

    pass


class MigrationError(DatabaseError):
    """
    Exception for legacy data relocation failures.

    Raised when the legacy database cannot be copied or the copy does not
    verify at its destination. The legacy directory is left intact.

    Examples:
        >>> raise MigrationError("Migrated database failed integrity check")
    """

    pass


class WatcherError(DatabaseError):
    """Exception raised when the filesystem observer cannot be started."""

    pass
