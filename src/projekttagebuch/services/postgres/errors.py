"""Errors raised by the PostgreSQL layer."""

import asyncio
from contextlib import contextmanager
from typing import Iterator

import asyncpg

# Everything a driver call can raise when the database or the network misbehaves
DRIVER_ERRORS = (
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    OSError,
    asyncio.TimeoutError,
)


class DatabaseError(Exception):
    """Base class for store failures."""


class StoreUnavailable(DatabaseError):
    """No connection could be acquired or no transaction started."""


class QueryFailed(DatabaseError):
    """A statement failed."""


class IntegrityViolation(QueryFailed):
    """A statement violated a constraint (unique name, foreign key, ...)."""


class CommitFailed(DatabaseError):
    """The transaction could not be committed; nothing was written."""


class DataIntegrityError(DatabaseError):
    """Rows that the schema should make impossible were found."""


@contextmanager
def database_errors(action: str) -> Iterator[None]:
    """Translate driver exceptions raised inside the block into DatabaseError."""
    try:
        yield
    except asyncpg.IntegrityConstraintViolationError as e:
        raise IntegrityViolation(f"Unable to {action}: {e}") from e
    except DRIVER_ERRORS as e:
        raise QueryFailed(f"Unable to {action}: {e}") from e
