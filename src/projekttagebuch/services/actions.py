"""
ProjectActions - the mutating actions on projects.

Web and API handlers call these once they have extracted the requester and
the target from the request, and translate the errors (projekttagebuch.errors)
into responses themselves.

Every action follows the same shape:

    Load       project (and target person) from the store
    Authorize  against the freshly loaded project
    Stage      open a transaction and write, without committing
    Reconcile  call the room service
    Commit     only when the room service agreed

Leaving the staged transaction without commit discards it. Nothing is retried
here; a failed action is reported once and the caller decides.

When the room service fails after staging, the store does not change but the
room may have. That window is logged as a reconcile_failed event with the
error id so the room can be checked by hand.
"""

from contextlib import contextmanager
from typing import Iterable, Iterator

from loguru import logger

from ..errors import (
    Forbidden,
    InvalidProjectName,
    MemberNotFound,
    PersonNotFound,
    ProjectNotFound,
    RemoteError,
    StoreError,
)
from ..models import Member, Permission, Person, Project
from .matrix import MatrixClient, MatrixError
from .permissions import Action, authorized_for
from .postgres import DatabaseError, ProjectStore, StagedTransaction


class ProjectActions:
    """Orchestrates store and room service for every project mutation."""

    def __init__(self, store: ProjectStore, rooms: MatrixClient):
        self.store = store
        self.rooms = rooms

    # =========================================================================
    # PHASES
    # =========================================================================

    @contextmanager
    def _store_phase(self, action: Action, project_name: str | None = None) -> Iterator[None]:
        try:
            yield
        except DatabaseError as e:
            error = StoreError(f"Store failure during {action.value}: {e}")
            logger.bind(
                event="store_failed",
                action=action.value,
                project=project_name,
                error_id=error.error_id,
            ).error(str(error))
            raise error from e

    @contextmanager
    def _remote_phase(self, action: Action, project_name: str) -> Iterator[None]:
        try:
            yield
        except MatrixError as e:
            error = RemoteError(f"Room service failure during {action.value}: {e}")
            logger.bind(
                event="reconcile_failed",
                action=action.value,
                project=project_name,
                error_id=error.error_id,
            ).error(f"{error}; store changes were not committed, room state may differ")
            raise error from e

    async def _commit(self, action: Action, project_name: str, tx: StagedTransaction) -> None:
        try:
            await self.store.commit(tx)
        except DatabaseError as e:
            error = StoreError(f"Commit failed during {action.value}: {e}")
            logger.bind(
                event="store_commit_failed_after_remote",
                action=action.value,
                project=project_name,
                error_id=error.error_id,
            ).error(f"{error}; the room service already applied the change")
            raise error from e

    async def _begin(self, action: Action, project_name: str) -> StagedTransaction:
        with self._store_phase(action, project_name):
            return await self.store.begin()

    async def _load_project(self, action: Action, project_id: int) -> Project:
        with self._store_phase(action):
            project = await self.store.get_project(project_id)
        if project is None:
            raise ProjectNotFound(project_id)
        return project

    async def _load_person(self, action: Action, name: str, project_name: str) -> Person:
        with self._store_phase(action, project_name):
            person = await self.store.get_person(name)
        if person is None:
            raise PersonNotFound(name)
        return person

    @staticmethod
    def _authorize(action: Action, requester: Person, project: Project) -> None:
        if not authorized_for(action, requester, project):
            logger.debug(f"{requester.name} may not {action.value} in {project.name}")
            raise Forbidden(project.name)

    @staticmethod
    def _check_name(name: str) -> str:
        stripped = name.strip()
        if not stripped:
            raise InvalidProjectName(name)
        return stripped

    # =========================================================================
    # ACTIONS
    # =========================================================================

    async def create_project(self, requester: Person, name: str) -> tuple[Person, Project]:
        """
        Create a room and a project row, requester becomes project admin.

        The room service has no prepare step for rooms, so the store is pinged
        first and the room is created before the project row is staged. If the
        store fails after that, the room is left behind (orphaned_room event).
        """
        action = Action.CREATE_PROJECT
        if not authorized_for(action, requester):
            raise Forbidden(name)
        name = self._check_name(name)
        requester.require_store_id()

        with self._store_phase(action, name):
            await self.store.ping()

        with self._remote_phase(action, name):
            room_id = await self.rooms.create_room(name, [requester])

        try:
            tx = await self._begin(action, name)
            async with tx:
                with self._store_phase(action, name):
                    project = await self.store.stage_insert_project(
                        tx, name, room_id, [Member(person=requester, permission=Permission.ADMIN)]
                    )
                await self._commit(action, name, tx)
        except StoreError as e:
            logger.bind(
                event="orphaned_room", room_id=room_id, project=name, error_id=e.error_id
            ).error(f"Room {room_id} was created for {name} but the project was not stored")
            raise

        logger.info(
            f"Created project {project.name} with room {room_id}; request made by {requester.name}."
        )
        return requester, project

    async def rename_project(
        self, requester: Person, project_id: int, new_name: str
    ) -> tuple[Person, Project]:
        action = Action.RENAME_PROJECT
        new_name = self._check_name(new_name)
        project = await self._load_project(action, project_id)
        self._authorize(action, requester, project)
        store_id, room_id = project.require_complete()

        tx = await self._begin(action, project.name)
        async with tx:
            with self._store_phase(action, project.name):
                await self.store.stage_rename_project(tx, store_id, new_name)
            with self._remote_phase(action, project.name):
                await self.rooms.rename_room(room_id, new_name)
            await self._commit(action, project.name, tx)

        logger.info(
            f"Renamed {project.name} to {new_name}; request made by {requester.name}."
        )
        return requester, project.renamed(new_name)

    async def add_member(
        self, requester: Person, project_id: int, person_name: str
    ) -> tuple[Person, Project]:
        """Add person_name as User and invite them into the room."""
        action = Action.ADD_MEMBER
        project = await self._load_project(action, project_id)
        new_member = await self._load_person(action, person_name, project.name)
        self._authorize(action, requester, project)
        store_id, room_id = project.require_complete()

        existing = project.local_permission_for(new_member)
        tx = await self._begin(action, project.name)
        async with tx:
            if existing is None:
                with self._store_phase(action, project.name):
                    await self.store.stage_update_membership(
                        tx, store_id, adds=[(new_member.require_store_id(), Permission.USER)]
                    )
            with self._remote_phase(action, project.name):
                await self.rooms.ensure_member_present(room_id, new_member)
            await self._commit(action, project.name, tx)

        if existing is None:
            logger.info(
                f"Added {new_member.name} to {project.name} as User; request made by {requester.name}."
            )
        else:
            logger.info(
                f"{new_member.name} is already a member of {project.name} as {existing}; "
                f"room membership ensured; request made by {requester.name}."
            )
        return new_member, project.with_member(new_member)

    async def remove_members(
        self, requester: Person, project_id: int, person_names: Iterable[str]
    ) -> tuple[list[Person], Project]:
        """
        Remove several people in one transaction.

        Everyone is kicked from the room first; the removal is committed only
        when every kick succeeded. People already gone from the room count as
        removed.
        """
        action = Action.REMOVE_MEMBER
        project = await self._load_project(action, project_id)
        removed = [
            await self._load_person(action, name, project.name) for name in person_names
        ]
        self._authorize(action, requester, project)
        store_id, room_id = project.require_complete()

        tx = await self._begin(action, project.name)
        async with tx:
            with self._store_phase(action, project.name):
                await self.store.stage_update_membership(
                    tx, store_id, removes=[p.require_store_id() for p in removed]
                )
            with self._remote_phase(action, project.name):
                for person in removed:
                    await self.rooms.ensure_member_absent(room_id, person)
            await self._commit(action, project.name, tx)

        for person in removed:
            logger.info(
                f"Removed {person.name} from {project.name}; request made by {requester.name}."
            )
        return removed, project.without_members(removed)

    async def remove_member(
        self, requester: Person, project_id: int, person_name: str
    ) -> tuple[Person, Project]:
        removed, project = await self.remove_members(requester, project_id, [person_name])
        return removed[0], project

    async def set_member_permission(
        self,
        requester: Person,
        project_id: int,
        person_name: str,
        permission: Permission,
    ) -> tuple[Person, Project]:
        """Change the project permission of a member. No room service call."""
        action = Action.SET_MEMBER_PERMISSION
        project = await self._load_project(action, project_id)
        member = await self._load_person(action, person_name, project.name)
        self._authorize(action, requester, project)
        if not project.has_member(member):
            raise MemberNotFound(member.name, project.name)

        with self._store_phase(action, project.name):
            await self.store.update_member_permission(
                project.require_store_id(), member.require_store_id(), permission
            )

        logger.info(
            f"Updated permission for {member.name} in {project.name}; is now {permission}; "
            f"request made by {requester.name}."
        )
        return member, project.with_member_permission(member, permission)
