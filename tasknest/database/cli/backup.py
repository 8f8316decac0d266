"""
Backup & Restore Commands
--------------------------

Database backup and restore operations.

Commands:
    - backup: Create today's backup
    - backups: List all daily backups
    - restore: Restore from a backup file or the newest backup
    - cleanup: Prune old daily backups

Usage:
    # Create (or refresh) today's backup
    nestdb backup

    # Only back up if today's backup is missing
    nestdb backup --if-needed

    # Restore the newest backup without prompting
    nestdb restore --latest --yes
"""
from pathlib import Path

import click

from tasknest.core.exceptions import (
    BackupCorruptedError,
    BackupError,
    BackupNotFoundError,
    DatabaseError,
)
from tasknest.core.logging_manager import handle_cli_error
from tasknest.database.configs.resilience_configs import DEFAULT_KEEP_DAYS
from . import get_backup_manager, get_checker


@click.command()
@click.option(
    "--if-needed",
    is_flag=True,
    help="Skip if a backup was already taken today",
)
@click.pass_context
def backup(ctx, if_needed):
    """Create today's verified backup."""
    try:
        click.echo("💾 Creating backup...")
        manager = get_backup_manager(ctx)
        result = manager.create_backup_if_needed(force=not if_needed)

        if not result.success:
            raise BackupError(result.message)

        if result.created:
            click.echo(f"✅ Backup created: {result.backup_path}")
        else:
            click.echo(f"ℹ️  {result.message}")

    except BackupError as e:
        handle_cli_error(
            ctx,
            e,
            "backup",
            additional_context={"db_path": str(ctx.obj["db_path"])},
        )


@click.command()
@click.pass_context
def backups(ctx):
    """List all available daily backups."""
    try:
        records = get_backup_manager(ctx).list_backups()

        click.echo("\n📦 Available Backups")
        click.echo("=" * 70)

        if not records:
            click.echo("\n  No backups found")
            return

        for record in records:
            click.echo(f"  • {record.filename}")
            click.echo(f"    Date: {record.date}")
            click.echo(f"    Size: {record.size_bytes:,} bytes")

        click.echo(f"\nTotal backups: {len(records)}")

    except DatabaseError as e:
        handle_cli_error(ctx, e, "backups")


@click.command()
@click.argument("backup_path", required=False, type=click.Path())
@click.option("--latest", is_flag=True, help="Restore the newest daily backup")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def restore(ctx, backup_path, latest, yes):
    """Restore the database from a backup file."""
    try:
        if bool(backup_path) == latest:
            raise click.UsageError("Give either BACKUP_PATH or --latest")

        manager = get_backup_manager(ctx)
        checker = get_checker(ctx)

        if latest:
            record = manager.get_latest_backup()
            if record is None:
                raise BackupNotFoundError(f"No backups found in {manager.backup_dir}")
            candidate = record.path
        else:
            candidate = Path(backup_path)

        # Verify before asking, so the user is never asked to confirm a bad file
        if not candidate.is_file():
            raise BackupNotFoundError(f"Backup file not found: {candidate}")
        if not manager.verify_backup(candidate):
            raise BackupCorruptedError(f"Backup failed integrity check: {candidate}")

        stats = checker.database_stats(candidate) or {}
        click.echo(f"♻️  Restoring from: {candidate}")
        for table, count in stats.items():
            click.echo(f"  • {table}: {count}")

        if not yes:
            click.confirm(
                "⚠️  This will overwrite the current database! Continue?", abort=True
            )

        outcome = manager.restore_from_backup(candidate)
        if outcome.pre_restore_backup_path:
            click.echo(f"🛟 Previous database saved to: {outcome.pre_restore_backup_path}")

        if not outcome.success:
            raise BackupError(outcome.message)

        click.echo("✅ Database restored successfully!")

    except BackupError as e:
        handle_cli_error(
            ctx,
            e,
            "restore",
            additional_context={"backup_path": backup_path, "latest": latest},
        )


@click.command()
@click.option(
    "--keep-days",
    type=click.IntRange(min=1),
    default=DEFAULT_KEEP_DAYS,
    show_default=True,
    help="Number of newest daily backups to keep",
)
@click.pass_context
def cleanup(ctx, keep_days):
    """Delete daily backups beyond the newest KEEP_DAYS."""
    try:
        result = get_backup_manager(ctx).cleanup_old_backups(keep_days)
        if not result.success:
            raise BackupError(result.message)
        click.echo(f"🧹 {result.message}")

    except BackupError as e:
        handle_cli_error(ctx, e, "cleanup", additional_context={"keep_days": keep_days})
