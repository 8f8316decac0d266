"""
TaskNest Package
================

Local database resilience toolkit for the TaskNest task tracker.

TaskNest keeps its tickets, epics and comments in a single SQLite file on
the user's machine. This package contains everything that keeps that file
safe: locating it, logging incidents, checking its health, backing it up,
restoring it, relocating it from the legacy location and noticing when it
disappears.

Main Components:
    - core: Paths, logging, exceptions
    - database: Integrity checks, backups, restore, migration, deletion watcher
    - database.cli: The ``nestdb`` administration CLI
"""

__version__ = "1.0.0"
