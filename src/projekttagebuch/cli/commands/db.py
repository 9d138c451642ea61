"""
Database management commands.

Usage:
    ptb db migrate                  # Apply pending migrations
    ptb db migrate --sql-dir ./sql  # Apply migrations from another directory
    ptb db status                   # Show applied and pending migrations
"""

import asyncio
from pathlib import Path

import click

from ...services.postgres import (
    DatabaseError,
    PostgresService,
    apply_migrations,
    migration_status,
)


def _service(connection: str | None) -> PostgresService:
    db = PostgresService.from_settings()
    if connection:
        db.connection_string = connection
    return db


@click.command()
@click.option("--connection", "-c", help="PostgreSQL connection string (overrides environment)")
@click.option(
    "--sql-dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Directory containing migration files (defaults to the packaged migrations)",
)
def migrate(connection: str | None, sql_dir: Path | None):
    """Apply pending database migrations in file name order."""
    asyncio.run(_migrate_async(connection, sql_dir))


async def _migrate_async(connection: str | None, sql_dir: Path | None):
    click.echo("Projekttagebuch Database Migration")
    click.echo("=" * 60)

    db = _service(connection)
    try:
        await db.connect()
        applied = await apply_migrations(db, sql_dir)
    except DatabaseError as e:
        click.secho(f"✗ Migration failed: {e}", fg="red")
        raise click.Abort()
    finally:
        await db.disconnect()

    if not applied:
        click.secho("✓ Database is up to date", fg="green")
        return
    for name in applied:
        click.secho(f"  ✓ {name}", fg="green")
    click.secho(f"✓ Applied {len(applied)} migration(s)", fg="green")


@click.command()
@click.option("--connection", "-c", help="PostgreSQL connection string (overrides environment)")
def status(connection: str | None):
    """Show migration status."""
    asyncio.run(_status_async(connection))


async def _status_async(connection: str | None):
    click.echo()
    click.echo("Projekttagebuch Migration Status")
    click.echo("=" * 60)

    db = _service(connection)
    try:
        await db.connect()
        rows = await migration_status(db)
    except DatabaseError as e:
        click.secho(f"✗ Error: {e}", fg="red")
        raise click.Abort()
    finally:
        await db.disconnect()

    for row in rows:
        if row.changed:
            click.secho(f"  ! {row.name}  applied {row.applied_at}, file changed since", fg="yellow")
        elif row.applied:
            click.secho(f"  ✓ {row.name}  applied {row.applied_at}", fg="green")
        else:
            click.echo(f"  · {row.name}  pending")

    pending = sum(1 for r in rows if not r.applied)
    click.echo()
    if pending:
        click.secho(f"{pending} pending. Run: ptb db migrate", fg="yellow")


def register_commands(db_group):
    """Register all db commands."""
    db_group.add_command(migrate)
    db_group.add_command(status)
