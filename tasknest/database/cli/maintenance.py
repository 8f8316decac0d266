"""
Health & Maintenance Commands
-----------------------------

Commands:
    - check: Quick integrity check, or the full health report with --full
    - checkpoint: Fold the WAL back into the database file
"""
import json

import click

from tasknest.core.exceptions import DatabaseError, HealthCheckError
from tasknest.core.logging_manager import handle_cli_error
from tasknest.database.integrity import HealthStatus
from . import get_backup_manager, get_checker

_STATUS_ICONS = {
    HealthStatus.OK: "✅",
    HealthStatus.WARNING: "⚠️ ",
    HealthStatus.ERROR: "❌",
}


@click.command()
@click.option("--full", is_flag=True, help="Run every check and print a health report")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
@click.pass_context
def check(ctx, full, as_json):
    """Check database integrity."""
    db_path = ctx.obj["db_path"]
    try:
        checker = get_checker(ctx)

        if not full:
            result = checker.quick_check(db_path)
            if as_json:
                click.echo(json.dumps(result.to_dict(), indent=2))
            else:
                click.echo(f"{_STATUS_ICONS[result.status]} {result.message} ({result.duration_ms} ms)")
            if not result.success:
                ctx.exit(1)
            return

        report = checker.full_database_check(
            db_path, backups=get_backup_manager(ctx).list_backups()
        )

        if as_json:
            click.echo(json.dumps(report.to_dict(), indent=2))
        else:
            click.echo("\n🏥 Database Health Report")
            click.echo("=" * 70)
            for name, result in report.checks.items():
                click.echo(f"\n{_STATUS_ICONS[result.status]} {name}: {result.message}")
                for detail in result.details:
                    click.echo(f"    {detail}")

            click.echo(
                f"\nOverall: {report.overall_status.label.upper()} ({report.duration_ms} ms)"
            )
            if report.suggestions:
                click.echo("\n💡 Suggestions:")
                for suggestion in report.suggestions:
                    click.echo(f"  • {suggestion}")

        if report.overall_status is HealthStatus.ERROR:
            ctx.exit(1)

    except DatabaseError as e:
        handle_cli_error(
            ctx,
            HealthCheckError(str(e)),
            "check",
            additional_context={"db_path": str(db_path), "full": full},
        )


@click.command()
@click.option(
    "--mode",
    type=click.Choice(["PASSIVE", "FULL", "RESTART", "TRUNCATE"], case_sensitive=False),
    default="TRUNCATE",
    show_default=True,
)
@click.pass_context
def checkpoint(ctx, mode):
    """Run a WAL checkpoint on the database."""
    db_path = ctx.obj["db_path"]
    try:
        result = get_checker(ctx).checkpoint(db_path, mode)
        click.echo(
            f"✅ Checkpoint ({mode.upper()}): "
            f"{result['checkpointed_pages']}/{result['log_pages']} page(s) written"
        )
        if result["busy"]:
            click.echo("⚠️  Database was busy; checkpoint may be incomplete")

    except DatabaseError as e:
        handle_cli_error(ctx, e, "checkpoint", additional_context={"db_path": str(db_path)})
