"""
Projekttagebuch CLI entry point.

Usage:
    ptb serve
    ptb db migrate
    ptb db status
    ptb persons sync --file persons.yaml
    ptb persons sync --watch
    ptb tokens create adam
"""

import sys

import click
from loguru import logger

from ..settings import settings


def configure_logging(level: str, log_file: str | None = None) -> None:
    """stderr sink at level, plus a daily rotated file sink when log_file is set."""
    logger.remove()
    logger.add(sys.stderr, level=level)
    if log_file:
        logger.add(log_file, level=level, rotation="1 day", retention="14 days")


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def cli(verbose: bool):
    """Projekttagebuch - projects with members, mirrored into Matrix rooms."""
    configure_logging("DEBUG" if verbose else settings.log_level, settings.log_file)


@cli.group()
def db():
    """Database operations (migrate, status)."""
    pass


@cli.group()
def persons():
    """People from the directory."""
    pass


@cli.group()
def tokens():
    """API tokens."""
    pass


# Register commands
from .commands.db import register_commands as register_db_commands
from .commands.persons import register_commands as register_persons_commands
from .commands.serve import register_command as register_serve_command
from .commands.tokens import register_commands as register_tokens_commands

register_db_commands(db)
register_persons_commands(persons)
register_tokens_commands(tokens)
register_serve_command(cli)


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
