#!/usr/bin/env python3
"""
TaskNest Database Administration CLI
------------------------------------

Command-line interface for the database resilience subsystem.

This module provides the main CLI group and shared context setup
for all commands.

Command Structure:
    - Setup (init)
    - Backup & Restore (backup, backups, restore, cleanup)
    - Health (check, checkpoint)
    - Migration (migrate)
    - Monitoring (watch)

Usage:
    # Get general help
    nestdb --help

    # Full health report
    nestdb check --full

    # Restore the newest daily backup
    nestdb restore --latest
"""
from pathlib import Path

import click

from tasknest.core.logging_manager import TaskNestLogger
from tasknest.core.paths import BACKUP_DIR, DB_PATH, LEGACY_DIR, LOG_DIR
from tasknest.database.backup_manager import BackupManager
from tasknest.database.integrity import IntegrityChecker


@click.group()
@click.option(
    "--db-path",
    type=click.Path(),
    default=str(DB_PATH),
    envvar="TASKNEST_DB_PATH",
    show_default=True,
    help="Path to database file",
)
@click.option(
    "--backup-dir",
    type=click.Path(),
    default=str(BACKUP_DIR),
    envvar="TASKNEST_BACKUP_DIR",
    help="Path to backup directory",
)
@click.option(
    "--log-dir",
    type=click.Path(),
    default=str(LOG_DIR),
    envvar="TASKNEST_LOG_DIR",
    help="Path to log directory",
)
@click.option(
    "--legacy-dir",
    type=click.Path(),
    default=str(LEGACY_DIR),
    envvar="TASKNEST_LEGACY_DIR",
    help="Path to the legacy installation directory",
)
@click.option(
    "--verbose",
    is_flag=True,
    help="Show detailed errors and tracebacks",
)
@click.pass_context
def cli(ctx, db_path, backup_dir, log_dir, legacy_dir, verbose):
    """TaskNest database administration: backups, restore and health checks."""
    ctx.ensure_object(dict)
    ctx.obj["db_path"] = Path(db_path)
    ctx.obj["backup_dir"] = Path(backup_dir)
    ctx.obj["log_dir"] = Path(log_dir)
    ctx.obj["legacy_dir"] = Path(legacy_dir)
    ctx.obj["verbose"] = verbose


def get_logger(ctx) -> TaskNestLogger:
    """Get or create the CLI logger from context."""
    if "logger" not in ctx.obj:
        ctx.obj["logger"] = TaskNestLogger(
            ctx.obj["log_dir"], "nestdb", console=ctx.obj.get("verbose", False)
        )
        ctx.call_on_close(ctx.obj["logger"].close)
    return ctx.obj["logger"]


def get_checker(ctx) -> IntegrityChecker:
    """Get or create the integrity checker from context."""
    if "checker" not in ctx.obj:
        ctx.obj["checker"] = IntegrityChecker(logger=get_logger(ctx))
    return ctx.obj["checker"]


def get_backup_manager(ctx) -> BackupManager:
    """Get or create the backup manager from context."""
    if "backup_manager" not in ctx.obj:
        ctx.obj["backup_manager"] = BackupManager(
            ctx.obj["db_path"],
            ctx.obj["backup_dir"],
            logger=get_logger(ctx),
            checker=get_checker(ctx),
        )
    return ctx.obj["backup_manager"]


# Import and register command modules
# These imports must come after CLI group definition
from .setup import init  # noqa: E402
from .backup import backup, backups, restore, cleanup  # noqa: E402
from .maintenance import check, checkpoint  # noqa: E402
from .migration import migrate  # noqa: E402
from .watch import watch  # noqa: E402

cli.add_command(init)
cli.add_command(backup)
cli.add_command(backups)
cli.add_command(restore)
cli.add_command(cleanup)
cli.add_command(check)
cli.add_command(checkpoint)
cli.add_command(migrate)
cli.add_command(watch)


if __name__ == "__main__":
    cli(obj={})
