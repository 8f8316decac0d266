"""
Migration Commands
------------------

Commands:
    - migrate: Copy data from the legacy directory to the current location
"""
import click

from tasknest.core.exceptions import MigrationError
from tasknest.core.logging_manager import TaskNestLogger, handle_cli_error
from tasknest.database.migration import LegacyMigrator
from . import get_backup_manager, get_checker


@click.command()
@click.pass_context
def migrate(ctx):
    """Migrate data from the legacy installation directory (once)."""
    db_path = ctx.obj["db_path"]
    legacy_dir = ctx.obj["legacy_dir"]
    logger = TaskNestLogger(ctx.obj["log_dir"], "migration", console=ctx.obj["verbose"])
    ctx.call_on_close(logger.close)
    try:
        migrator = LegacyMigrator(
            legacy_dir,
            db_path.parent,
            get_backup_manager(ctx),
            logger=logger,
            checker=get_checker(ctx),
            db_filename=db_path.name,
        )
        result = migrator.migrate()

        if not result.success:
            raise MigrationError(result.message)

        if not result.migrated:
            click.echo(f"ℹ️  {result.message}")
            return

        click.echo(f"✅ {result.message}")
        details = result.details
        if details.pre_migration_backup_path:
            click.echo(f"🛟 Pre-migration backup: {details.pre_migration_backup_path}")
        if details.attachments_failed:
            click.echo(f"⚠️  {details.attachments_failed} attachment(s) could not be copied")
        click.echo(f"📁 Legacy data preserved in {legacy_dir}")

    except MigrationError as e:
        handle_cli_error(
            ctx,
            e,
            "migrate",
            additional_context={"legacy_dir": str(legacy_dir), "db_path": str(db_path)},
        )
