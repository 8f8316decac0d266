#!/usr/bin/env python3
"""
logging_manager.py
--------------------
Centralized logging system for all TaskNest operations.

Provides structured logging with size-triggered rotation. Each component
writes to ``<component>.log``; errors from every component are also
collected in a shared ``errors.log``. When a file reaches ``max_bytes``
it is renamed to ``.1``, older generations shift up and the oldest is
discarded, so at most ``backup_count + 1`` files exist per log.

Log files are created owner-readable only (0600) because they may contain
ticket titles and file paths.

The minimum level is read from ``TASKNEST_LOG_LEVEL``
(DEBUG, INFO, WARNING/WARN, ERROR; default INFO).
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import json
import logging
import os
import sys
import threading
import traceback
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

# --- Third party imports ---
import click

# ---- Constants ----
LOG_LEVEL_ENV = "TASKNEST_LOG_LEVEL"
DEFAULT_MAX_BYTES = 10 * 1024 * 1024
DEFAULT_BACKUP_COUNT = 4
LOG_FILE_MODE = 0o600

_LEVEL_NAMES = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def resolve_log_level(value: Optional[str] = None) -> int:
    """
    Translate a level name into a ``logging`` level.

    Args:
        value: Level name; falls back to the environment, then INFO

    Returns:
        Numeric logging level
    """
    if value is None:
        value = os.environ.get(LOG_LEVEL_ENV, "INFO")
    return _LEVEL_NAMES.get(value.strip().upper(), logging.INFO)


class OwnerOnlyRotatingFileHandler(RotatingFileHandler):
    """RotatingFileHandler whose files are readable by the owner only."""

    def _open(self):
        stream = super()._open()
        if os.name != "nt":
            try:
                os.chmod(self.baseFilename, LOG_FILE_MODE)
            except OSError:
                pass
        return stream


def _file_formatter() -> logging.Formatter:
    return logging.Formatter(
        "%(asctime)s [%(levelname)s] [%(name)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# errors.log is written by every component; two handlers on one file would
# each rotate it, so all loggers in a process share one handler per path.
_shared_lock = threading.Lock()
_shared_handlers: Dict[str, Tuple[RotatingFileHandler, int]] = {}


def _acquire_shared_handler(
    file_path: Path, max_bytes: int, backup_count: int, level: int
) -> RotatingFileHandler:
    """Return the process-wide handler for a log file, creating it once."""
    key = os.path.abspath(os.fspath(file_path))
    with _shared_lock:
        handler, users = _shared_handlers.get(key, (None, 0))
        if handler is None:
            handler = OwnerOnlyRotatingFileHandler(
                key, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
            )
            handler.setLevel(level)
            handler.setFormatter(_file_formatter())
        _shared_handlers[key] = (handler, users + 1)
        return handler


def _release_handler(handler: logging.Handler) -> None:
    """Close a handler, or drop one reference to a shared handler."""
    key = getattr(handler, "baseFilename", None)
    with _shared_lock:
        shared, users = _shared_handlers.get(key, (None, 0))
        if shared is handler:
            if users > 1:
                _shared_handlers[key] = (handler, users - 1)
                return
            del _shared_handlers[key]
    handler.close()


class TaskNestLogger:
    """
    Centralized logging system for resilience operations.

    Attributes:
        log_dir: Directory for log files
        component_name: Name of the component using this logger
        main_logger: Logger for all operations
        error_logger: Dedicated logger for errors only
    """

    def __init__(
        self,
        log_dir: Path,
        component_name: str = "tasknest",
        max_bytes: int = DEFAULT_MAX_BYTES,
        backup_count: int = DEFAULT_BACKUP_COUNT,
        level: Optional[str] = None,
        console: bool = True,
    ) -> None:
        """
        Initialize logging system.

        Args:
            log_dir: Directory for log files
            component_name: Name for the component logger
                (e.g. 'backup', 'migration', 'watcher')
            max_bytes: Maximum log file size before rotation (default: 10MB)
            backup_count: Number of rotated generations to keep (default: 4)
            level: Minimum level name (default: from TASKNEST_LOG_LEVEL)
            console: Mirror warnings and errors to stderr
        """
        self.log_dir = Path(log_dir)
        self.component_name = component_name
        self.max_bytes = max_bytes
        self.backup_count = backup_count
        self.level = resolve_log_level(level)
        self.console = console
        self._setup_loggers()

    def _setup_loggers(self) -> None:
        """Initialize loggers and attach rotating handlers."""
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.main_logger = logging.getLogger(f"tasknest.{self.component_name}")
        self.main_logger.setLevel(self.level)
        self.main_logger.propagate = False
        # Release handlers left by an earlier instance for the same component
        self._reset_handlers(self.main_logger)

        self.error_logger = logging.getLogger(f"tasknest.{self.component_name}.errors")
        self.error_logger.setLevel(logging.ERROR)
        self.error_logger.propagate = False
        self._reset_handlers(self.error_logger)

        self._create_file_handler(
            self.main_logger,
            self.log_dir / f"{self.component_name}.log",
            self.level,
        )
        self.error_logger.addHandler(
            _acquire_shared_handler(
                self.log_dir / "errors.log",
                self.max_bytes,
                self.backup_count,
                logging.ERROR,
            )
        )

        if self.console:
            console_handler = logging.StreamHandler()
            console_handler.setLevel(logging.WARNING)
            console_handler.setFormatter(
                logging.Formatter(
                    "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                    datefmt="%H:%M:%S",
                )
            )
            self.main_logger.addHandler(console_handler)

    @staticmethod
    def _reset_handlers(logger: logging.Logger) -> None:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            _release_handler(handler)

    def _create_file_handler(
        self, logger: logging.Logger, file_path: Path, level: int
    ) -> None:
        """
        Create a rotating file handler for a logger.

        Args:
            logger: Logger instance to add handler to
            file_path: Path for log file
            level: Logging level for the handler
        """
        handler = OwnerOnlyRotatingFileHandler(
            file_path,
            maxBytes=self.max_bytes,
            backupCount=self.backup_count,
            encoding="utf-8",
        )
        handler.setLevel(level)
        handler.setFormatter(_file_formatter())
        logger.addHandler(handler)

    @property
    def log_file(self) -> Path:
        """Path of this component's main log file."""
        return self.log_dir / f"{self.component_name}.log"

    def log_operation(
        self, operation: str, details: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Log a completed operation.

        Args:
            operation: Name of the operation
            details: Optional operation details dictionary
        """
        details = details or {}
        self.main_logger.info(
            f"OPERATION - {operation}: {json.dumps(details, default=str)}"
        )

    def log_error(
        self, error: Exception, context: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Log an error with context and traceback.

        The summary line goes to the component log as well so that a
        single file tells the whole story of an incident.

        Args:
            error: Exception that occurred
            context: Optional context information dictionary
        """
        context = context or {}
        error_type = type(error).__name__
        summary = f"ERROR - {error_type}: {error}"
        if context:
            summary += " | " + ", ".join(f"{k}={v}" for k, v in context.items())

        self.main_logger.error(summary)
        self.error_logger.error(summary)

        tb = traceback.format_exc()
        if tb and not tb.startswith("NoneType: None"):
            self.error_logger.error(f"Traceback:\n{tb}")

    def log_debug(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        """Log debug information."""
        if details:
            self.main_logger.debug(f"DEBUG - {message}: {json.dumps(details, default=str)}")
        else:
            self.main_logger.debug(f"DEBUG - {message}")

    def log_info(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        """Log general information."""
        if details:
            self.main_logger.info(f"INFO - {message}: {json.dumps(details, default=str)}")
        else:
            self.main_logger.info(f"INFO - {message}")

    def log_warning(
        self, message: str, details: Optional[Dict[str, Any]] = None
    ) -> None:
        """Log a warning."""
        if details:
            self.main_logger.warning(
                f"WARNING - {message}: {json.dumps(details, default=str)}"
            )
        else:
            self.main_logger.warning(f"WARNING - {message}")

    def log_cli_error(
        self,
        error: Exception,
        context: Optional[Dict[str, Any]] = None,
        show_traceback: bool = False,
    ) -> str:
        """
        Format error for CLI display and log full details to file.

        Args:
            error: Exception to log
            context: Optional context information about where error occurred
            show_traceback: If True, include full traceback in CLI output

        Returns:
            Formatted error message suitable for CLI display

        Examples:
            >>> logger.log_cli_error(BackupNotFoundError("missing.db"))
            '❌ BackupNotFoundError: missing.db'
        """
        self.log_error(error, context or {"source": "cli"})

        message = f"❌ {type(error).__name__}: {error}"
        if show_traceback:
            return f"{message}\n\n{traceback.format_exc()}"
        return message

    def close(self) -> None:
        """Flush and close every handler owned by this logger."""
        self._reset_handlers(self.main_logger)
        self._reset_handlers(self.error_logger)


def handle_cli_error(
    ctx: "click.Context",
    error: Exception,
    operation: str,
    additional_context: Optional[Dict[str, Any]] = None,
    exit_code: int = 1,
) -> None:
    """
    Standardized error handling for all CLI commands.

    Logs the error through the context's logger, prints a short message
    on stderr and exits.

    Args:
        ctx: Click context object containing logger and verbose flag
        error: Exception that occurred
        operation: Name of the operation that failed (e.g. 'restore')
        additional_context: Optional extra context (file path, etc.)
        exit_code: Exit code for sys.exit() (default: 1)

    Note:
        This function never returns - it always calls sys.exit()
    """
    logger: Optional[TaskNestLogger] = ctx.obj.get("logger")
    verbose: bool = ctx.obj.get("verbose", False)

    context = {"operation": operation}
    if additional_context:
        context.update(additional_context)

    error_msg = safe_logger(logger).log_cli_error(error, context, show_traceback=verbose)

    click.echo(error_msg, err=True)
    sys.exit(exit_code)


class NullLogger:
    """
    Null Object pattern logger that implements the TaskNestLogger interface
    but performs no operations.

    This eliminates the need for `if logger:` conditionals throughout the codebase.
    """

    def log_operation(self, operation: str, details: Optional[Dict[str, Any]] = None) -> None:
        pass

    def log_error(self, error: Exception, context: Optional[Dict[str, Any]] = None) -> None:
        pass

    def log_debug(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        pass

    def log_info(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        pass

    def log_warning(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        pass

    def log_cli_error(
        self,
        error: Exception,
        context: Optional[Dict[str, Any]] = None,
        show_traceback: bool = False,
    ) -> str:
        return f"❌ {type(error).__name__}: {error}"

    def close(self) -> None:
        pass


# Singleton null logger instance
_null_logger = NullLogger()


def safe_logger(logger: Optional[TaskNestLogger]) -> TaskNestLogger:
    """
    Return the provided logger or a null logger if None.

    Use:
        safe_logger(logger).log_info("message")

    Args:
        logger: TaskNestLogger instance or None

    Returns:
        The provided logger or a NullLogger instance
    """
    return logger if logger is not None else _null_logger  # type: ignore[return-value]
