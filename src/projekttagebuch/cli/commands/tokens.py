"""
API token commands.

Usage:
    ptb tokens create adam     # Print a new token for adam; only its hash is stored
"""

import asyncio

import click

from ...services.postgres import DatabaseError, get_project_store
from ...services.tokens import generate_token, hash_token


@click.command()
@click.argument("person_name")
def create(person_name: str):
    """Create an API token for PERSON_NAME and print it once."""
    token = asyncio.run(_create_async(person_name))
    click.echo(token)


async def _create_async(person_name: str) -> str:
    store = get_project_store()
    try:
        await store.connect()
        person = await store.get_person(person_name)
        if person is None:
            click.secho(f"✗ The person {person_name} does not exist", fg="red")
            raise click.Abort()
        token = generate_token()
        await store.add_api_token(person, hash_token(token))
    except DatabaseError as e:
        click.secho(f"✗ Unable to create token: {e}", fg="red")
        raise click.Abort()
    finally:
        await store.disconnect()
    return token


def register_commands(tokens_group):
    """Register all tokens commands."""
    tokens_group.add_command(create)
