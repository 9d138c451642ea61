"""
Person commands.

Usage:
    ptb persons sync --file persons.yaml     # Resync once from a directory export
    ptb persons sync --watch                 # Resync every DIRECTORY__RESYNC_INTERVAL_MINUTES
    ptb persons list
"""

import asyncio
import signal

import click
from loguru import logger

from ...services.directory import DirectoryError, YamlDirectorySource
from ...services.postgres import DatabaseError, ProjectStore, get_project_store
from ...workers.directory_sync import run_directory_sync, sync_once


@click.command()
@click.option(
    "--file",
    "-f",
    "source_file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="YAML directory export (defaults to DIRECTORY__SOURCE_FILE)",
)
@click.option("--watch", is_flag=True, help="Keep running and resync every interval")
@click.option(
    "--interval",
    type=int,
    default=None,
    help="Minutes between runs with --watch (defaults to DIRECTORY__RESYNC_INTERVAL_MINUTES)",
)
def sync(source_file: str | None, watch: bool, interval: int | None):
    """Make the person table match the directory."""
    from ...settings import settings

    source_file = source_file or settings.directory.source_file
    if not source_file:
        click.secho("No directory file given (--file or DIRECTORY__SOURCE_FILE)", fg="red")
        raise click.Abort()

    minutes = interval or settings.directory.resync_interval_minutes
    asyncio.run(_sync_async(YamlDirectorySource(source_file), watch, minutes * 60))


async def _sync_async(source: YamlDirectorySource, watch: bool, interval: float):
    store = get_project_store()
    try:
        await store.connect()
        if watch:
            stop = asyncio.Event()
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, stop.set)
            await run_directory_sync(store, source, interval=interval, stop=stop)
            return

        plan = await sync_once(store, source)
    except (DirectoryError, DatabaseError) as e:
        click.secho(f"✗ Directory resync failed: {e}", fg="red")
        raise click.Abort()
    finally:
        await store.disconnect()

    click.secho(
        f"✓ {len(plan.to_insert)} inserted, {len(plan.to_update)} updated, "
        f"{len(plan.to_delete)} removed",
        fg="green",
    )


@click.command("list")
def list_persons():
    """List all stored people."""
    asyncio.run(_list_async(get_project_store()))


async def _list_async(store: ProjectStore):
    try:
        await store.connect()
        persons = await store.get_persons()
    except DatabaseError as e:
        logger.error(f"Unable to list persons: {e}")
        raise click.Abort()
    finally:
        await store.disconnect()

    for person in persons:
        marker = " (admin)" if person.is_global_admin() else ""
        click.echo(f"{person.name:<24} {person.display_name}{marker}")


def register_commands(persons_group):
    """Register all persons commands."""
    persons_group.add_command(sync)
    persons_group.add_command(list_persons)
