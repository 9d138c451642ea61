"""
Pytest configuration for integration tests.

Integration tests need a PostgreSQL reachable through
POSTGRES__CONNECTION_STRING; they are skipped when none answers. The schema is
migrated once and every test starts from empty tables.
"""

import pytest

from projekttagebuch.services.postgres import (
    PostgresService,
    ProjectStore,
    StoreUnavailable,
    apply_migrations,
)


def pytest_collection_modifyitems(items):
    """Add markers to integration tests."""
    for item in items:
        if "/integration/" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


@pytest.fixture
async def postgres_service():
    """Connected and migrated PostgresService."""
    db = PostgresService.from_settings()
    db.pool_timeout = 2.0
    try:
        await db.connect()
        await db.ping()
    except StoreUnavailable as e:
        await db.disconnect()
        pytest.skip(f"PostgreSQL not reachable: {e}")

    await apply_migrations(db)
    await db.execute("TRUNCATE api_token, person_project_map, project, person RESTART IDENTITY CASCADE")
    yield db
    await db.disconnect()


@pytest.fixture
async def project_store(postgres_service):
    return ProjectStore(postgres_service)
