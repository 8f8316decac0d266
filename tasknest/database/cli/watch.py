"""
Monitoring Commands
-------------------

Commands:
    - watch: Watch the database file and report if it is deleted
"""
import queue

import click

from tasknest.core.exceptions import DatabaseError
from tasknest.core.logging_manager import TaskNestLogger, handle_cli_error
from tasknest.database.configs.resilience_configs import DELETION_LOG
from tasknest.database.watcher import default_deletion_handler, start_watching


@click.command()
@click.option(
    "--timeout",
    type=float,
    default=None,
    help="Stop watching after this many seconds (default: until interrupted)",
)
@click.pass_context
def watch(ctx, timeout):
    """Watch the database file and report its deletion."""
    db_path = ctx.obj["db_path"]
    log_dir = ctx.obj["log_dir"]
    logger = TaskNestLogger(log_dir, "watcher", console=ctx.obj["verbose"])
    ctx.call_on_close(logger.close)

    def on_deletion(event):
        default_deletion_handler(
            event,
            logger=logger,
            backups_dir=ctx.obj["backup_dir"],
            events_log=log_dir / DELETION_LOG,
        )

    try:
        handle = start_watching(db_path, handler=on_deletion, logger=logger)
    except DatabaseError as e:
        handle_cli_error(ctx, e, "watch", additional_context={"db_path": str(db_path)})
        return

    click.echo(f"👀 Watching {db_path} (Ctrl+C to stop)")
    try:
        event = handle.events.get(timeout=timeout)
    except queue.Empty:
        click.echo("⏱️  No deletion detected")
        return
    except KeyboardInterrupt:
        click.echo("\n👋 Stopped")
        return
    finally:
        handle.stop()

    click.echo(f"🚨 Database deleted: {event.path}", err=True)
    click.echo("   Restore the newest backup with: nestdb restore --latest", err=True)
    ctx.exit(2)
