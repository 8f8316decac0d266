#!/usr/bin/env python3
"""
watcher.py
--------------------
Detects deletion of the live database file while the process runs.

The *directory* containing the database is watched rather than the file
itself: a watch on a file dies with the file, and rename-over or
delete-and-recreate would be missed. Filesystem events arrive in bursts,
so events touching the database or its ``-wal``/``-shm`` companions only
(re)arm a short debounce timer. When the timer fires, the main database
file is checked; its absence is a confirmed deletion. Companions alone
are not checked since SQLite removes them itself on a clean close.

A confirmed deletion:
    - sets the handle's sticky ``deletion_detected`` flag
    - publishes one DeletionEvent on ``handle.events``
    - calls the optional handler, once per watch session

Usage:
    from tasknest.database.watcher import start_watching, stop_watching

    handle = start_watching(db_path, handler=lambda event: print(event.filename))
    ...
    event = handle.events.get(timeout=5)
    stop_watching(handle)
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import os
import queue
import threading
from dataclasses import dataclass
from datetime import datetime
from functools import partial
from pathlib import Path
from typing import Callable, Optional

# --- Third party imports ---
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

# --- Local imports ---
from tasknest.core.exceptions import DatabaseNotFoundError, WatcherError
from tasknest.core.logging_manager import TaskNestLogger, safe_logger
from .backup_manager import utc_now
from .configs.resilience_configs import COMPANION_SUFFIXES, DEBOUNCE_SECONDS, DELETION_LOG

EVENT_LOG_MODE = 0o600


@dataclass
class DeletionEvent:
    """A confirmed disappearance of the watched database file."""

    filename: str
    path: Path
    detected_at: datetime


DeletionHandler = Callable[[DeletionEvent], None]


class _DirectoryEventHandler(FileSystemEventHandler):
    """Forwards delete/move events for the database file set to the handle."""

    def __init__(self, handle: "WatchHandle") -> None:
        super().__init__()
        self.handle = handle

    def on_deleted(self, event: FileSystemEvent) -> None:
        self.handle._on_event(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        self.handle._on_event(event.src_path)


class WatchHandle:
    """
    One watch session on one database file.

    Attributes:
        watched_path: Database file being watched
        events: Queue receiving DeletionEvent instances
        debounce_seconds: Quiet period before an event burst is evaluated
    """

    def __init__(
        self,
        watched_path: Path,
        handler: Optional[DeletionHandler] = None,
        debounce_seconds: float = DEBOUNCE_SECONDS,
        logger: Optional[TaskNestLogger] = None,
    ) -> None:
        self.watched_path = Path(watched_path)
        self.handler = handler
        self.debounce_seconds = debounce_seconds
        self.logger = logger
        self.events: "queue.Queue[DeletionEvent]" = queue.Queue()

        self._names = {self.watched_path.name} | {
            self.watched_path.name + suffix for suffix in COMPANION_SUFFIXES
        }
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._observer: Optional[Observer] = None
        self._is_watching = False
        self._deletion_detected = False

    @property
    def is_watching(self) -> bool:
        return self._is_watching

    @property
    def deletion_detected(self) -> bool:
        return self._deletion_detected

    def _on_event(self, src_path: str) -> None:
        """Observer thread: re-arm the debounce timer for relevant events."""
        name = os.path.basename(os.fsdecode(src_path))
        is_directory = Path(os.fsdecode(src_path)) == self.watched_path.parent
        if name not in self._names and not is_directory:
            return

        with self._lock:
            if not self._is_watching:
                return
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.debounce_seconds, self._evaluate)
            self._timer.daemon = True
            self._timer.start()

    def _evaluate(self) -> None:
        """Timer thread: confirm the deletion and notify once."""
        with self._lock:
            self._timer = None
            if not self._is_watching or self._deletion_detected:
                return
            if self.watched_path.is_file():
                return
            self._deletion_detected = True
            event = DeletionEvent(
                filename=self.watched_path.name,
                path=self.watched_path,
                detected_at=utc_now(),
            )

        logger = safe_logger(self.logger)
        logger.log_warning(
            "CRITICAL: Database file deleted", {"path": str(self.watched_path)}
        )
        self.events.put(event)

        if self.handler is not None:
            try:
                self.handler(event)
            except Exception as e:
                logger.log_error(e, {"operation": "deletion_handler", "path": str(event.path)})

    def start(self) -> "WatchHandle":
        """
        Begin watching.

        Raises:
            DatabaseNotFoundError: If the directory or the file is absent
            WatcherError: If the observer cannot be started
        """
        directory = self.watched_path.parent
        if not directory.is_dir():
            raise DatabaseNotFoundError(f"Database directory does not exist: {directory}")
        if not self.watched_path.is_file():
            raise DatabaseNotFoundError(f"Database file does not exist: {self.watched_path}")

        observer = Observer()
        observer.daemon = True
        try:
            observer.schedule(_DirectoryEventHandler(self), str(directory), recursive=False)
            observer.start()
        except OSError as e:
            raise WatcherError(f"Failed to start watcher on {directory}: {e}") from e

        with self._lock:
            self._observer = observer
            self._is_watching = True
            self._deletion_detected = False

        safe_logger(self.logger).log_info(
            "Started watching database", {"path": str(self.watched_path)}
        )
        return self

    def stop(self) -> None:
        """Cancel any pending evaluation, stop the observer and reset state."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            observer = self._observer
            self._observer = None
            was_watching = self._is_watching
            self._is_watching = False
            self._deletion_detected = False

        if observer is not None:
            observer.stop()
            if observer.is_alive():
                observer.join(timeout=5)

        if was_watching:
            safe_logger(self.logger).log_info(
                "Stopped watching database", {"path": str(self.watched_path)}
            )


def start_watching(
    db_path: Path,
    handler: Optional[DeletionHandler] = None,
    debounce_seconds: float = DEBOUNCE_SECONDS,
    logger: Optional[TaskNestLogger] = None,
) -> WatchHandle:
    """
    Start a deletion watch on a database file.

    Args:
        db_path: Database file to watch
        handler: Called once with the DeletionEvent on confirmed deletion
        debounce_seconds: Debounce window for event bursts
        logger: Optional logger

    Returns:
        A started WatchHandle

    Raises:
        DatabaseNotFoundError: If the directory or file is absent
        WatcherError: If the observer cannot be started
    """
    return WatchHandle(db_path, handler, debounce_seconds, logger).start()


def stop_watching(handle: WatchHandle) -> None:
    handle.stop()


def log_deletion_event(event: DeletionEvent, events_log: Path) -> None:
    """Append a line to the owner-only deletion incident log."""
    events_log.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(events_log, os.O_WRONLY | os.O_CREAT | os.O_APPEND, EVENT_LOG_MODE)
    with os.fdopen(fd, "a", encoding="utf-8") as f:
        f.write(f"{event.detected_at.isoformat()} DELETED: {event.filename}\n")


def default_deletion_handler(
    event: DeletionEvent,
    logger: Optional[TaskNestLogger] = None,
    backups_dir: Optional[Path] = None,
    events_log: Optional[Path] = None,
) -> None:
    """
    Record a deletion and point the user at recovery.

    Args:
        event: The confirmed deletion
        logger: Optional logger
        backups_dir: Where backups live (mentioned in the recovery hint)
        events_log: Incident log file (deletion-events.log)
    """
    logger = safe_logger(logger)
    if events_log is not None:
        try:
            log_deletion_event(event, events_log)
        except OSError as e:
            logger.log_error(e, {"operation": "log_deletion_event", "log": str(events_log)})

    hint = {"deleted": str(event.path)}
    if backups_dir is not None:
        hint["backups"] = str(backups_dir)
    logger.log_warning(
        "The database was deleted while TaskNest was running. "
        "Restore the latest backup with: nestdb restore --latest",
        hint,
    )


def initialize_watcher(
    db_path: Path,
    logger: Optional[TaskNestLogger] = None,
    backups_dir: Optional[Path] = None,
    events_dir: Optional[Path] = None,
) -> Optional[WatchHandle]:
    """
    Start a watch with the default handler; never raises.

    Args:
        db_path: Database file to watch
        logger: Optional logger
        backups_dir: Backups directory for the recovery hint
        events_dir: Directory receiving deletion-events.log

    Returns:
        The started handle, or None if watching could not start
    """
    handler = partial(
        default_deletion_handler,
        logger=logger,
        backups_dir=backups_dir,
        events_log=Path(events_dir) / DELETION_LOG if events_dir else None,
    )
    try:
        return start_watching(db_path, handler=handler, logger=logger)
    except (DatabaseNotFoundError, WatcherError) as e:
        safe_logger(logger).log_warning(
            "Deletion watcher not started", {"path": str(db_path), "error": str(e)}
        )
        return None
