"""ProjectStore - relational persistence of people, projects and memberships.

Staged writes take a StagedTransaction and never commit it themselves; the
caller decides. Reads go through the pool unless a transaction is passed,
in which case they see the transaction's own writes.

Usage:
    store = ProjectStore(PostgresService.from_settings())
    await store.connect()

    tx = await store.begin()
    async with tx:
        await store.stage_rename_project(tx, project_id, "New name")
        ...                        # remote call
        await store.commit(tx)
"""

from typing import Any, Iterable

import asyncpg
from loguru import logger

from ...models import Identity, Member, Permission, Person, Project
from ..directory import PersonSyncPlan, plan_person_sync
from .errors import DataIntegrityError, database_errors
from .service import PostgresService, StagedTransaction

PERSON_COLUMNS = (
    "person.person_id, person.person_name, person.person_surname, "
    "person.person_firstname, person.is_global_admin"
)


def _affected(status: str) -> int:
    """Row count from a status tag such as 'INSERT 0 1' or 'UPDATE 3'."""
    try:
        return int(status.split()[-1])
    except (IndexError, ValueError):
        return 0


def person_from_row(row: asyncpg.Record | dict[str, Any]) -> Person:
    return Person(
        identity=Identity.stored(row["person_id"]),
        name=row["person_name"],
        global_permission=Permission.from_is_admin(row["is_global_admin"]),
        surname=row["person_surname"],
        firstname=row["person_firstname"],
    )


class ProjectStore:
    """Store adapter used by project actions and the directory resync."""

    def __init__(self, db: PostgresService):
        self.db = db

    async def connect(self) -> None:
        await self.db.connect()

    async def disconnect(self) -> None:
        await self.db.disconnect()

    async def ping(self) -> None:
        await self.db.ping()

    async def begin(self) -> StagedTransaction:
        return await self.db.begin()

    async def commit(self, tx: StagedTransaction) -> None:
        await tx.commit()

    def _executor(self, tx: StagedTransaction | None):
        return tx.connection if tx is not None else self.db.require_pool()

    # =========================================================================
    # PROJECTS
    # =========================================================================

    async def get_project(
        self, project_id: int, tx: StagedTransaction | None = None
    ) -> Project | None:
        """Get a project with its members, or None if the id has no row."""
        con = self._executor(tx)
        with database_errors("select project"):
            row = await con.fetchrow(
                "SELECT project_id, project_name, project_room_id FROM project WHERE project_id = $1",
                project_id,
            )
            if row is None:
                logger.trace(f"Project {project_id} does not exist.")
                return None
            member_rows = await con.fetch(
                f"""
                SELECT {PERSON_COLUMNS}, person_project_map.is_project_admin
                FROM person_project_map
                INNER JOIN person ON person.person_id = person_project_map.person_id
                WHERE person_project_map.project_id = $1
                ORDER BY person_project_map.map_id
                """,
                project_id,
            )

        return Project(
            identity=Identity.complete(row["project_id"], row["project_room_id"]),
            name=row["project_name"],
            members=[
                Member(
                    person=person_from_row(r),
                    permission=Permission.from_is_admin(r["is_project_admin"]),
                )
                for r in member_rows
            ],
        )

    async def get_projects(self) -> list[Project]:
        """All projects with members, read from one consistent snapshot."""
        pool = self.db.require_pool()
        with database_errors("select projects"):
            async with pool.acquire() as conn:
                async with conn.transaction(isolation="repeatable_read", readonly=True):
                    project_rows = await conn.fetch(
                        "SELECT project_id, project_name, project_room_id FROM project ORDER BY project_id"
                    )
                    member_rows = await conn.fetch(
                        f"""
                        SELECT person_project_map.project_id, {PERSON_COLUMNS},
                               person_project_map.is_project_admin
                        FROM person_project_map
                        INNER JOIN person ON person.person_id = person_project_map.person_id
                        ORDER BY person_project_map.map_id
                        """
                    )

        projects = {
            r["project_id"]: Project(
                identity=Identity.complete(r["project_id"], r["project_room_id"]),
                name=r["project_name"],
            )
            for r in project_rows
        }
        for r in member_rows:
            project = projects.get(r["project_id"])
            if project is None:
                logger.warning(
                    f"Person {r['person_id']} is mapped to project {r['project_id']} "
                    "but that project does not exist. Check DB data integrity!"
                )
                raise DataIntegrityError(
                    f"Person {r['person_id']} is mapped to missing project {r['project_id']}"
                )
            project.add_member(
                person_from_row(r), Permission.from_is_admin(r["is_project_admin"])
            )
        return list(projects.values())

    async def stage_insert_project(
        self,
        tx: StagedTransaction,
        name: str,
        room_id: str,
        members: Iterable[Member] = (),
    ) -> Project:
        """Insert a project whose room already exists, plus its initial members."""
        members = list(members)
        with database_errors("insert project"):
            project_id = await tx.connection.fetchval(
                "INSERT INTO project (project_name, project_room_id) VALUES ($1, $2) RETURNING project_id",
                name,
                room_id,
            )
            for member in members:
                await tx.connection.execute(
                    "INSERT INTO person_project_map (person_id, project_id, is_project_admin) "
                    "VALUES ($1, $2, $3)",
                    member.person.require_store_id(),
                    project_id,
                    member.permission.is_admin,
                )

        identity = Identity.unprovisioned().with_room_id(room_id).with_store_id(project_id)
        return Project(identity=identity, name=name, members=members)

    async def stage_update_membership(
        self,
        tx: StagedTransaction,
        project_id: int,
        adds: Iterable[tuple[int, Permission]] = (),
        removes: Iterable[int] = (),
    ) -> int:
        """
        Add and remove members inside tx; returns the number of changed rows.

        Adding someone who is already a member changes nothing.
        """
        adds = list(adds)
        removes = list(removes)
        changed = 0
        with database_errors("update project members"):
            if removes:
                changed += await tx.connection.fetchval(
                    """
                    WITH deleted AS (
                        DELETE FROM person_project_map
                        WHERE project_id = $1 AND person_id = ANY($2::integer[])
                        RETURNING 1
                    )
                    SELECT count(*) FROM deleted
                    """,
                    project_id,
                    removes,
                )
            for person_id, permission in adds:
                status = await tx.connection.execute(
                    "INSERT INTO person_project_map (person_id, project_id, is_project_admin) "
                    "VALUES ($1, $2, $3) ON CONFLICT (person_id, project_id) DO NOTHING",
                    person_id,
                    project_id,
                    permission.is_admin,
                )
                changed += _affected(status)
        logger.trace(
            f"Staged {len(adds)} additions and {len(removes)} removals for project {project_id}."
        )
        return changed

    async def update_member_permission(
        self, project_id: int, person_id: int, permission: Permission
    ) -> int:
        """Set the project permission of one member. Single statement, committed at once."""
        with database_errors("update member permission"):
            status = await self.db.require_pool().execute(
                "UPDATE person_project_map SET is_project_admin = $1 "
                "WHERE person_id = $2 AND project_id = $3",
                permission.is_admin,
                person_id,
                project_id,
            )
        return _affected(status)

    async def stage_rename_project(
        self, tx: StagedTransaction, project_id: int, new_name: str
    ) -> int:
        with database_errors("rename project"):
            status = await tx.connection.execute(
                "UPDATE project SET project_name = $1 WHERE project_id = $2",
                new_name,
                project_id,
            )
        return _affected(status)

    # =========================================================================
    # PERSONS
    # =========================================================================

    async def get_person(self, name: str) -> Person | None:
        """Get a person by exact name."""
        with database_errors("select person with exact name"):
            row = await self.db.require_pool().fetchrow(
                f"SELECT {PERSON_COLUMNS} FROM person WHERE person_name = $1", name
            )
        return person_from_row(row) if row else None

    async def get_persons(self) -> list[Person]:
        with database_errors("select persons"):
            rows = await self.db.require_pool().fetch(
                f"SELECT {PERSON_COLUMNS} FROM person ORDER BY person_name"
            )
        return [person_from_row(r) for r in rows]

    async def find_similar_persons(self, query: str, limit: int = 5) -> list[Person]:
        """People whose 'surname firstname' is most similar to query (pg_trgm)."""
        with database_errors("select similar names"):
            rows = await self.db.require_pool().fetch(
                f"""
                SELECT {PERSON_COLUMNS},
                       similarity(
                           $1,
                           coalesce(person.person_surname, '') || ' ' ||
                           coalesce(person.person_firstname, '') || ' ' || person.person_name
                       ) AS score
                FROM person
                ORDER BY score DESC, person.person_name
                LIMIT $2
                """,
                query,
                limit,
            )
        return [person_from_row(r) for r in rows]

    async def add_person(self, person: Person) -> Person:
        """Insert a person and return it with its store identity."""
        with database_errors("insert person"):
            person_id = await self.db.require_pool().fetchval(
                "INSERT INTO person (person_name, person_surname, person_firstname, is_global_admin) "
                "VALUES ($1, $2, $3, $4) RETURNING person_id",
                person.name,
                person.surname,
                person.firstname,
                person.is_global_admin(),
            )
        return person.model_copy(update={"identity": person.identity.with_store_id(person_id)})

    async def get_person_by_token_hash(self, token_hash: str) -> Person | None:
        with database_errors("select person by api token"):
            row = await self.db.require_pool().fetchrow(
                f"""
                SELECT {PERSON_COLUMNS}
                FROM api_token
                INNER JOIN person ON person.person_id = api_token.person_id
                WHERE api_token.token_hash = $1
                """,
                token_hash,
            )
        return person_from_row(row) if row else None

    async def add_api_token(self, person: Person, token_hash: str) -> None:
        with database_errors("insert api token"):
            await self.db.require_pool().execute(
                "INSERT INTO api_token (person_id, token_hash) VALUES ($1, $2)",
                person.require_store_id(),
                token_hash,
            )

    async def sync_persons(self, desired: list[Person]) -> PersonSyncPlan:
        """
        Make the person table match the directory, in one transaction.

        People missing from the directory are deleted; their membership rows
        go with them (ON DELETE CASCADE).
        """
        tx = await self.begin()
        async with tx:
            with database_errors("select persons"):
                rows = await tx.connection.fetch(
                    f"SELECT {PERSON_COLUMNS} FROM person FOR UPDATE"
                )
            plan = plan_person_sync([person_from_row(r) for r in rows], desired)

            with database_errors("sync persons"):
                for person in plan.to_delete:
                    await tx.connection.execute(
                        "DELETE FROM person WHERE person_id = $1", person.require_store_id()
                    )
                    logger.info(
                        f"Removed person {person.name} from DB. They no longer exist in the directory."
                    )
                for person in plan.to_insert:
                    await tx.connection.execute(
                        "INSERT INTO person (person_name, person_surname, person_firstname, is_global_admin) "
                        "VALUES ($1, $2, $3, $4)",
                        person.name,
                        person.surname,
                        person.firstname,
                        person.is_global_admin(),
                    )
                    logger.info(
                        f"Inserted new person {person.name} into DB as {person.global_permission}."
                    )
                for person in plan.to_update:
                    await tx.connection.execute(
                        "UPDATE person SET is_global_admin = $1, person_surname = $2, "
                        "person_firstname = $3, last_sync = now() AT TIME ZONE 'utc' WHERE person_id = $4",
                        person.is_global_admin(),
                        person.surname,
                        person.firstname,
                        person.require_store_id(),
                    )
                    logger.info(
                        f"Updated person {person.name}; global permission is now {person.global_permission}."
                    )
                await tx.connection.execute("UPDATE person SET last_sync = now() AT TIME ZONE 'utc'")

            await tx.commit()
        return plan
