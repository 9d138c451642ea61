"""
Schema migrations shipped inside the package.

Migrations are plain SQL files in projekttagebuch/sql/migrations, applied in
file name order. Each applied file is recorded in schema_migrations together
with its SHA-256 checksum; a recorded file whose checksum changed is reported
and not applied again.
"""

import hashlib
import importlib.resources
import time
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from .errors import DRIVER_ERRORS, QueryFailed
from .service import PostgresService

TRACKING_TABLE = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    name TEXT PRIMARY KEY,
    checksum TEXT NOT NULL,
    applied_at TIMESTAMP NOT NULL DEFAULT (now() AT TIME ZONE 'utc'),
    execution_ms INTEGER NOT NULL DEFAULT 0
)
"""


@dataclass
class Migration:
    name: str
    path: Path

    @property
    def checksum(self) -> str:
        return hashlib.sha256(self.path.read_bytes()).hexdigest()

    def read(self) -> str:
        return self.path.read_text(encoding="utf-8")


@dataclass
class MigrationStatus:
    name: str
    checksum: str
    applied_at: str | None = None
    changed: bool = False

    @property
    def applied(self) -> bool:
        return self.applied_at is not None


def default_migrations_dir() -> Path:
    return Path(str(importlib.resources.files("projekttagebuch") / "sql" / "migrations"))


def discover_migrations(migrations_dir: Path | None = None) -> list[Migration]:
    migrations_dir = migrations_dir or default_migrations_dir()
    return [Migration(name=f.name, path=f) for f in sorted(migrations_dir.glob("*.sql"))]


async def _applied(db: PostgresService) -> dict[str, dict]:
    await db.execute(TRACKING_TABLE)
    try:
        rows = await db.require_pool().fetch(
            "SELECT name, checksum, applied_at FROM schema_migrations ORDER BY name"
        )
    except DRIVER_ERRORS as e:
        raise QueryFailed(f"Unable to read schema_migrations: {e}") from e
    return {r["name"]: dict(r) for r in rows}


async def migration_status(
    db: PostgresService, migrations_dir: Path | None = None
) -> list[MigrationStatus]:
    applied = await _applied(db)
    result = []
    for migration in discover_migrations(migrations_dir):
        checksum = migration.checksum
        record = applied.get(migration.name)
        result.append(
            MigrationStatus(
                name=migration.name,
                checksum=checksum,
                applied_at=str(record["applied_at"]) if record else None,
                changed=bool(record) and record["checksum"] != checksum,
            )
        )
    return result


async def apply_migrations(
    db: PostgresService, migrations_dir: Path | None = None
) -> list[str]:
    """
    Apply every migration not yet recorded. Returns the applied names.

    Each file runs in its own transaction together with its tracking row.
    """
    applied = await _applied(db)
    done: list[str] = []

    for migration in discover_migrations(migrations_dir):
        record = applied.get(migration.name)
        if record:
            if record["checksum"] != migration.checksum:
                logger.warning(
                    f"Migration {migration.name} changed after it was applied; skipping"
                )
            continue

        logger.info(f"Applying migration {migration.name}")
        start = time.time()
        tx = await db.begin()
        async with tx:
            try:
                await tx.connection.execute(migration.read())
                await tx.connection.execute(
                    "INSERT INTO schema_migrations (name, checksum, execution_ms) VALUES ($1, $2, $3)",
                    migration.name,
                    migration.checksum,
                    int((time.time() - start) * 1000),
                )
            except DRIVER_ERRORS as e:
                logger.error(f"Migration {migration.name} failed: {e}")
                raise QueryFailed(f"Unable to apply {migration.name}: {e}") from e
            await tx.commit()
        done.append(migration.name)

    return done
