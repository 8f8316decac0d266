"""
Setup Commands
--------------

Commands:
    - init: Create the required tables in a new or existing database
"""
import click
from sqlalchemy.exc import SQLAlchemyError

from tasknest.core.exceptions import DatabaseError
from tasknest.core.logging_manager import handle_cli_error
from tasknest.database.models import create_schema
from . import get_logger


@click.command()
@click.pass_context
def init(ctx):
    """Create the database schema (existing tables are kept)."""
    db_path = ctx.obj["db_path"]
    try:
        click.echo(f"🗄️  Initializing database schema at {db_path}...")
        try:
            create_schema(db_path)
        except (SQLAlchemyError, OSError) as e:
            raise DatabaseError(f"Could not initialize schema: {e}") from e
        get_logger(ctx).log_operation("schema_initialized", {"db_path": str(db_path)})
        click.echo("✅ Database initialized!")

    except DatabaseError as e:
        handle_cli_error(ctx, e, "init", additional_context={"db_path": str(db_path)})
