"""
PostgreSQL store for people, projects and memberships.
"""

from .errors import (
    CommitFailed,
    DatabaseError,
    DataIntegrityError,
    IntegrityViolation,
    QueryFailed,
    StoreUnavailable,
)
from .migrations import apply_migrations, migration_status
from .repository import ProjectStore
from .service import PostgresService, StagedTransaction


def get_project_store() -> ProjectStore:
    """ProjectStore backed by a PostgresService built from settings (not yet connected)."""
    return ProjectStore(PostgresService.from_settings())


__all__ = [
    "CommitFailed",
    "DatabaseError",
    "DataIntegrityError",
    "IntegrityViolation",
    "PostgresService",
    "ProjectStore",
    "QueryFailed",
    "StagedTransaction",
    "StoreUnavailable",
    "apply_migrations",
    "get_project_store",
    "migration_status",
]
